# piggies/models/favorite_user.py
from sqlalchemy import Column, Integer, ForeignKey, DateTime, UniqueConstraint, Index
from piggies.db import Base


class FavoriteUser(Base):
    """user_id добавил favorite_id в избранное."""
    __tablename__ = "favorite_users"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    favorite_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    favorited_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "favorite_id", name="uq_favorite_user"),
        Index("ix_favorite_users_favorite", "favorite_id"),
    )

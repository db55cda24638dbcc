# piggies/models/looking_now.py
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Index
from piggies.db import Base


class LookingNowPost(Base):
    """
    Короткий пост "ищу сейчас". У пользователя не больше одного активного
    поста; пост живёт до expires_at (free 1 ч, Ultra 4 ч), после чего
    ежедневная доводка снимает is_active.
    """
    __tablename__ = "looking_now_posts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    message = Column(String(500), nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location_name = Column(String(128), nullable=True)
    can_host = Column(Boolean, nullable=True, comment="None - не указано")
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_looking_now_user", "user_id", "created_at"),
        Index("ix_looking_now_active", "is_active", "created_at"),
    )

    def __repr__(self):
        return f"<LookingNowPost(id={self.id}, user={self.user_id}, active={self.is_active})>"

# piggies/models/blocked_user.py
from sqlalchemy import Column, Integer, ForeignKey, DateTime, UniqueConstraint, Index, func
from piggies.db import Base


class BlockedUser(Base):
    """
    Направленная блокировка: blocker_id заблокировал blocked_id.
    Для выдачи и сообщений блок действует в обе стороны.
    """
    __tablename__ = "blocked_users"

    id = Column(Integer, primary_key=True, index=True)
    blocker_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    blocked_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    blocked_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("blocker_id", "blocked_id", name="uq_blocked_pair"),
        Index("ix_blocked_users_blocked", "blocked_id"),
    )

    def __repr__(self):
        return f"<BlockedUser(blocker={self.blocker_id}, blocked={self.blocked_id})>"

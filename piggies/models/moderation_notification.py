# piggies/models/moderation_notification.py

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from piggies.db import Base

NOTIFICATION_TYPES = ("warning", "suspension", "ban", "appeal_accepted", "appeal_rejected")


class ModerationNotification(Base):
    """Уведомление пользователю о модерационном действии (показывается в UI до прочтения)."""
    __tablename__ = "moderation_notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(32), nullable=False)
    reason = Column(String, nullable=True)
    suspended_until = Column(DateTime, nullable=True)
    warning_number = Column(Integer, nullable=True)
    appeal_id = Column(Integer, ForeignKey("appeals.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False)
    read_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_moderation_notifications_user_read", "user_id", "read_at"),
    )

    def __repr__(self) -> str:
        return f"<ModerationNotification id={self.id} user={self.user_id} type={self.type}>"

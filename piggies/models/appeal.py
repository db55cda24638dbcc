# piggies/models/appeal.py

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import relationship
from piggies.db import Base

APPEAL_TYPES = ("ban", "suspension", "warning")
APPEAL_STATUSES = ("pending", "under_review", "accepted", "rejected")
OPEN_APPEAL_STATUSES = ("pending", "under_review")


class Appeal(Base):
    """
    Апелляция пользователя на модерационное действие.

    status: pending -> under_review -> accepted | rejected
    (pending может сразу закрыться). original_* - снимок ограничения
    на момент подачи, чтобы админ видел контекст даже после изменений.
    """
    __tablename__ = "appeals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    appeal_type = Column(String(16), nullable=False)
    reason = Column(Text, nullable=False)
    additional_info = Column(Text, nullable=True)
    submitted_at = Column(DateTime, nullable=False)
    status = Column(String(16), nullable=False, default="pending")

    reviewed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    admin_response = Column(Text, nullable=True)

    original_banned_reason = Column(String, nullable=True)
    original_suspended_until = Column(DateTime, nullable=True)
    original_warning_count = Column(Integer, nullable=True)

    __table_args__ = (
        Index("ix_appeals_user_status", "user_id", "status"),
        Index("ix_appeals_status", "status"),
        Index("ix_appeals_submitted_at", "submitted_at"),
    )

    user = relationship("User", foreign_keys=[user_id])
    reviewer = relationship("User", foreign_keys=[reviewed_by])

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_APPEAL_STATUSES

    def __repr__(self):
        return f"<Appeal(id={self.id}, user={self.user_id}, type={self.appeal_type}, status={self.status})>"

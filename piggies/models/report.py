# piggies/models/report.py
# Жалобы на пользователей и на отдельные сообщения.

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, UniqueConstraint
from piggies.db import Base

REPORT_STATUSES = ("pending", "reviewed", "resolved", "dismissed")
USER_REPORT_ACTIONS = ("none", "warning", "suspension", "ban")
MESSAGE_REPORT_ACTIONS = ("none", "message_hidden", "user_warning", "user_suspension", "user_ban")


class UserReport(Base):
    __tablename__ = "user_reports"

    id = Column(Integer, primary_key=True, index=True)
    reporter_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    reported_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    reason = Column(String(255), nullable=False)
    details = Column(String, nullable=True)
    reported_at = Column(DateTime, nullable=False)
    status = Column(String(16), nullable=False, default="pending")

    reviewed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    admin_notes = Column(String, nullable=True)
    action_taken = Column(String(16), nullable=True)

    __table_args__ = (
        Index("ix_user_reports_status", "status"),
        Index("ix_user_reports_reported", "reported_id"),
        Index("ix_user_reports_reporter", "reporter_id"),
    )


class MessageReport(Base):
    __tablename__ = "message_reports"

    id = Column(Integer, primary_key=True, index=True)
    reporter_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    message_sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    reason = Column(String(255), nullable=False)
    details = Column(String, nullable=True)
    reported_at = Column(DateTime, nullable=False)
    status = Column(String(16), nullable=False, default="pending")

    reviewed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    admin_notes = Column(String, nullable=True)
    action_taken = Column(String(32), nullable=True)

    __table_args__ = (
        UniqueConstraint("message_id", "reporter_id", name="uq_message_report_once"),
        Index("ix_message_reports_status", "status"),
        Index("ix_message_reports_sender", "message_sender_id"),
    )

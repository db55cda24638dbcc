# piggies/services/reports.py
# -----------------------------------------------------------------------------
# Жалобы пользователей на пользователей и на сообщения + разбор админом.
#
# Действие по жалобе (предупреждение/приостановка/бан) идёт через те же
# функции services/moderation.py, что и ручные действия админа, поэтому
# уведомление, аудит и проверки "не себя / не админа" одинаковые.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from piggies.models.message import Message
from piggies.models.moderation_notification import ModerationNotification
from piggies.models.report import (
    UserReport, MessageReport,
    REPORT_STATUSES, USER_REPORT_ACTIONS, MESSAGE_REPORT_ACTIONS,
)
from piggies.models.user import User
from piggies.services import moderation
from piggies.services.errors import InvalidState, NotFound, ValidationFailed
from piggies.services.events import log_event, MESSAGE_HIDDEN, REPORT_REVIEWED

log = logging.getLogger(__name__)

MAX_REASON_LEN = 255
DEFAULT_SUSPENSION_DAYS = 7


def _clean(reason: Optional[str], details: Optional[str]) -> Tuple[str, Optional[str]]:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("reason_required", "Reason is required")
    if len(reason) > MAX_REASON_LEN:
        raise ValidationFailed("reason_too_long", f"Reason must be at most {MAX_REASON_LEN} characters")
    return reason, (details or "").strip() or None


def _after_report(db: Session, reported_id: int, now: datetime) -> None:
    """Прогон правил эскалации по числу жалоб на пользователя."""
    user = moderation.lock_user(db, reported_id)
    moderation.evaluate_rules(db, user, "report_count", moderation.report_count(db, user.id), now)


# ===== Подача жалоб ============================================================

def report_user(db: Session, reporter: User, reported_id: int, reason: str, now: datetime,
                details: Optional[str] = None) -> UserReport:
    moderation.require_not_moderated(reporter, now)
    if reporter.id == reported_id:
        raise ValidationFailed("cannot_report_self", "Cannot report yourself")
    reason, details = _clean(reason, details)
    if not db.query(User.id).filter(User.id == reported_id).first():
        raise NotFound("user_not_found", "User not found")

    report = UserReport(
        reporter_id=reporter.id, reported_id=reported_id, reason=reason, details=details,
        reported_at=now, status="pending",
    )
    db.add(report)
    db.flush()
    _after_report(db, reported_id, now)
    return report


def report_message(db: Session, reporter: User, message_id: int, reason: str, now: datetime,
                   details: Optional[str] = None) -> MessageReport:
    """Пожаловаться можно только на чужое сообщение в своём диалоге и только один раз."""
    moderation.require_not_moderated(reporter, now)
    reason, details = _clean(reason, details)

    msg = db.query(Message).filter(Message.id == message_id).first()
    if not msg:
        raise NotFound("message_not_found", "Message not found")
    if reporter.id not in msg.conversation.participant_ids():
        raise NotFound("message_not_found", "Message not found")
    if msg.sender_id == reporter.id:
        raise ValidationFailed("cannot_report_own_message", "Cannot report your own message")

    existing = db.query(MessageReport.id).filter(
        MessageReport.message_id == msg.id, MessageReport.reporter_id == reporter.id,
    ).first()
    if existing:
        raise InvalidState("already_reported", "You have already reported this message")

    report = MessageReport(
        reporter_id=reporter.id, message_id=msg.id, conversation_id=msg.conversation_id,
        message_sender_id=msg.sender_id, reason=reason, details=details,
        reported_at=now, status="pending",
    )
    db.add(report)
    db.flush()
    _after_report(db, msg.sender_id, now)
    return report


# ===== Разбор админом ==========================================================

def _page(q, limit: int, offset: int) -> dict:
    limit = max(1, min(limit, 200))
    offset = max(0, offset)
    total = q.count()
    return {"items": q.offset(offset).limit(limit).all(), "total": total, "has_more": offset + limit < total}


def list_user_reports(db: Session, admin: User, status: Optional[str] = None,
                      limit: int = 50, offset: int = 0) -> dict:
    moderation.require_admin(admin)
    q = db.query(UserReport)
    if status:
        q = q.filter(UserReport.status == status)
    return _page(q.order_by(UserReport.reported_at.desc(), UserReport.id.desc()), limit, offset)


def list_message_reports(db: Session, admin: User, status: Optional[str] = None,
                         limit: int = 50, offset: int = 0) -> dict:
    moderation.require_admin(admin)
    q = db.query(MessageReport)
    if status:
        q = q.filter(MessageReport.status == status)
    return _page(q.order_by(MessageReport.reported_at.desc(), MessageReport.id.desc()), limit, offset)


def _review(report, admin: User, status: str, now: datetime, admin_notes: Optional[str], action: Optional[str]) -> None:
    if status not in REPORT_STATUSES:
        raise ValidationFailed("invalid_status", f"status must be one of {REPORT_STATUSES}")
    report.status = status
    report.reviewed_by = admin.id
    report.reviewed_at = now
    if admin_notes is not None:
        report.admin_notes = admin_notes.strip() or None
    report.action_taken = action


def _take_action(db: Session, admin: User, target_id: int, action: str, now: datetime,
                 reason: str, suspension_days: Optional[int]) -> Optional[ModerationNotification]:
    if action == "warning":
        return moderation.warn_user(db, target_id, reason, now, actor=admin)
    if action == "suspension":
        return moderation.suspend_user(
            db, admin, target_id, now, days=suspension_days or DEFAULT_SUSPENSION_DAYS, reason=reason,
        )
    if action == "ban":
        return moderation.ban_user(db, admin, target_id, reason, now)
    return None


def update_user_report_status(
    db: Session,
    admin: User,
    report_id: int,
    status: str,
    now: datetime,
    *,
    admin_notes: Optional[str] = None,
    action_taken: Optional[str] = None,
    suspension_days: Optional[int] = None,
) -> Tuple[UserReport, Optional[ModerationNotification]]:
    """Меняет статус жалобы и, если указано, применяет действие к автору нарушения."""
    moderation.require_admin(admin)
    if action_taken is not None and action_taken not in USER_REPORT_ACTIONS:
        raise ValidationFailed("invalid_action", f"action_taken must be one of {USER_REPORT_ACTIONS}")
    report = db.query(UserReport).filter(UserReport.id == report_id).with_for_update().first()
    if not report:
        raise NotFound("report_not_found", "Report not found")

    _review(report, admin, status, now, admin_notes, action_taken)
    note = None
    if action_taken and action_taken != "none":
        note = _take_action(db, admin, report.reported_id, action_taken, now,
                            report.admin_notes or report.reason, suspension_days)

    log_event(db, type=REPORT_REVIEWED, actor_id=admin.id, target_user_id=report.reported_id,
              data={"report_id": report.id, "kind": "user", "status": status, "action": action_taken})
    return report, note


def hide_message(db: Session, admin: User, message: Message, now: datetime, reason: Optional[str]) -> Message:
    if message.is_hidden:
        return message
    message.is_hidden = True
    message.hidden_at = now
    message.hidden_by = admin.id
    message.hidden_reason = reason
    log_event(db, type=MESSAGE_HIDDEN, actor_id=admin.id, target_user_id=message.sender_id,
              data={"message_id": message.id, "conversation_id": message.conversation_id, "reason": reason})
    return message


def update_message_report_status(
    db: Session,
    admin: User,
    report_id: int,
    status: str,
    now: datetime,
    *,
    admin_notes: Optional[str] = None,
    action_taken: Optional[str] = None,
    suspension_days: Optional[int] = None,
) -> Tuple[MessageReport, Optional[ModerationNotification]]:
    """
    message_hidden - сообщение скрывается у обоих участников;
    user_warning / user_suspension / user_ban - действие над отправителем.
    """
    moderation.require_admin(admin)
    if action_taken is not None and action_taken not in MESSAGE_REPORT_ACTIONS:
        raise ValidationFailed("invalid_action", f"action_taken must be one of {MESSAGE_REPORT_ACTIONS}")
    report = db.query(MessageReport).filter(MessageReport.id == report_id).with_for_update().first()
    if not report:
        raise NotFound("report_not_found", "Report not found")

    _review(report, admin, status, now, admin_notes, action_taken)
    note = None
    reason = report.admin_notes or report.reason
    if action_taken == "message_hidden":
        msg = db.query(Message).filter(Message.id == report.message_id).first()
        if not msg:
            raise NotFound("message_not_found", "Message not found")
        hide_message(db, admin, msg, now, reason)
    elif action_taken and action_taken.startswith("user_"):
        note = _take_action(db, admin, report.message_sender_id, action_taken[len("user_"):], now,
                            reason, suspension_days)

    log_event(db, type=REPORT_REVIEWED, actor_id=admin.id, target_user_id=report.message_sender_id,
              data={"report_id": report.id, "kind": "message", "status": status, "action": action_taken})
    return report, note


# piggies/services/moderation.py
# -----------------------------------------------------------------------------
# Модерация: предупреждения, приостановки, баны, апелляции, уведомления
# о модерационных действиях и правила авто-эскалации.
#
# Все изменения статуса идут через чистый services/standing.transition(),
# строка пользователя при этом блокируется (SELECT ... FOR UPDATE), чтобы
# параллельные действия админа/автомодерации не перетирали друг друга.
# Функции не делают commit: транзакцией владеет роутер.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from piggies.models.appeal import Appeal, APPEAL_TYPES, OPEN_APPEAL_STATUSES
from piggies.models.moderation_notification import ModerationNotification
from piggies.models.moderation_rule import ModerationRule, RULE_TRIGGERS, RULE_ACTIONS
from piggies.models.report import UserReport, MessageReport
from piggies.models.user import User
from piggies.services import standing as st
from piggies.services.errors import InvalidState, NotFound, PermissionDenied, ValidationFailed
from piggies.services.events import (
    log_event,
    USER_WARNED, USER_SUSPENDED, USER_UNSUSPENDED, USER_BANNED, USER_UNBANNED,
    WARNINGS_CLEARED, APPEAL_SUBMITTED, APPEAL_STATUS_CHANGED,
)
from piggies.services.referrals import expire_pending_referral
from piggies.services.notifications import make_payload, queue_push

log = logging.getLogger(__name__)

MAX_REASON_LEN = 2000
MAX_SUSPENSION_DAYS = 365


# ===== Общие проверки ==========================================================

def require_admin(user: User) -> None:
    if not user or not user.is_admin:
        raise PermissionDenied("admin_required", "Admin access required")


def require_not_moderated(user: User, now: datetime) -> None:
    """Забаненные и (действующе) приостановленные не могут выполнять действия."""
    current = st.standing_of(user, now)
    if isinstance(current, st.Banned):
        raise PermissionDenied("account_banned", "Your account has been banned. You cannot perform this action.")
    if isinstance(current, st.Suspended):
        raise PermissionDenied(
            "account_suspended",
            f"Your account is suspended until {current.until:%Y-%m-%d}. You cannot perform this action.",
        )


def lock_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).with_for_update().first()
    if not user:
        raise NotFound("user_not_found", "User not found")
    return user


def _check_target(admin: User, target: User) -> None:
    if admin.id == target.id:
        raise PermissionDenied("cannot_moderate_self", "You cannot moderate yourself")
    if target.is_admin:
        raise PermissionDenied("cannot_moderate_admin", "You cannot moderate another admin")


def _clean_reason(reason: Optional[str], *, required: bool) -> Optional[str]:
    reason = (reason or "").strip()
    if not reason:
        if required:
            raise ValidationFailed("reason_required", "Reason is required")
        return None
    if len(reason) > MAX_REASON_LEN:
        raise ValidationFailed("reason_too_long", f"Reason must be at most {MAX_REASON_LEN} characters")
    return reason


def _apply(user: User, action: st.Action, now: datetime) -> st.Standing:
    new_standing = st.transition(st.standing_of(user, now), action, now)
    st.apply_standing(user, new_standing)
    user.updated_at = now
    return new_standing


def _notify(db: Session, user_id: int, type: str, now: datetime, **fields) -> ModerationNotification:
    n = ModerationNotification(user_id=user_id, type=type, created_at=now, **fields)
    db.add(n)
    db.flush()
    return n


# ===== Действия над статусом ===================================================

def warn_user(
    db: Session,
    target_id: int,
    reason: Optional[str],
    now: datetime,
    *,
    actor: Optional[User] = None,
) -> ModerationNotification:
    """
    +1 предупреждение. actor=None - автоматическая проверка контента.
    Бан/приостановку не меняет; после - прогон правил эскалации.
    """
    if actor is not None:
        require_admin(actor)
    reason = _clean_reason(reason, required=False)
    user = lock_user(db, target_id)
    if actor is not None:
        _check_target(actor, user)

    new_standing = _apply(user, st.Warn(reason), now)
    note = _notify(db, user.id, "warning", now, reason=reason, warning_number=new_standing.warnings)
    log_event(
        db, type=USER_WARNED, actor_id=actor.id if actor else None, target_user_id=user.id,
        data={"reason": reason, "warning_count": new_standing.warnings, "automated": actor is None},
    )
    log.info("user %s warned (count=%s, automated=%s)", user.id, new_standing.warnings, actor is None)

    evaluate_rules(db, user, "warning_count", new_standing.warnings, now)
    return note


def suspend_user(
    db: Session,
    admin: User,
    target_id: int,
    now: datetime,
    *,
    days: Optional[int] = None,
    until: Optional[datetime] = None,
    reason: Optional[str] = None,
) -> ModerationNotification:
    require_admin(admin)
    if until is None:
        if days is None or days < 1 or days > MAX_SUSPENSION_DAYS:
            raise ValidationFailed("invalid_days", f"Suspension must be 1..{MAX_SUSPENSION_DAYS} days")
        until = now + timedelta(days=days)
    reason = _clean_reason(reason, required=False)

    user = lock_user(db, target_id)
    _check_target(admin, user)
    _apply(user, st.Suspend(until=until, reason=reason), now)

    note = _notify(db, user.id, "suspension", now, reason=reason, suspended_until=until)
    log_event(db, type=USER_SUSPENDED, actor_id=admin.id, target_user_id=user.id,
              data={"reason": reason, "until": until.isoformat()})
    return note


def ban_user(db: Session, admin: User, target_id: int, reason: str, now: datetime) -> ModerationNotification:
    require_admin(admin)
    reason = _clean_reason(reason, required=True)

    user = lock_user(db, target_id)
    _check_target(admin, user)
    _apply(user, st.Ban(reason), now)

    # бан в окне активации навсегда "сжигает" реферал
    expire_pending_referral(db, user.id, now)

    note = _notify(db, user.id, "ban", now, reason=reason)
    log_event(db, type=USER_BANNED, actor_id=admin.id, target_user_id=user.id, data={"reason": reason})
    log.info("user %s banned by admin %s", user.id, admin.id)
    return note


def unban_user(db: Session, admin: User, target_id: int, now: datetime) -> User:
    require_admin(admin)
    user = lock_user(db, target_id)
    _apply(user, st.Unban(), now)
    log_event(db, type=USER_UNBANNED, actor_id=admin.id, target_user_id=user.id)
    return user


def unsuspend_user(db: Session, admin: User, target_id: int, now: datetime) -> User:
    require_admin(admin)
    user = lock_user(db, target_id)
    _apply(user, st.Unsuspend(), now)
    log_event(db, type=USER_UNSUSPENDED, actor_id=admin.id, target_user_id=user.id)
    return user


def clear_warnings(db: Session, admin: User, target_id: int, now: datetime) -> User:
    require_admin(admin)
    user = lock_user(db, target_id)
    _apply(user, st.ClearWarnings(), now)
    log_event(db, type=WARNINGS_CLEARED, actor_id=admin.id, target_user_id=user.id)
    return user


def clear_expired_suspensions(db: Session, now: datetime) -> int:
    """
    Физически снимает истёкшие приостановки. Для логики это не нужно
    (прошедший suspended_until и так читается как "не приостановлен"),
    но держит админские фильтры и выборки чистыми.
    """
    rows = (
        db.query(User)
        .filter(User.is_suspended.is_(True), User.suspended_until <= now)
        .all()
    )
    for u in rows:
        st.apply_standing(u, st.standing_of(u, now))
    return len(rows)


# ===== Правила авто-эскалации ==================================================

def _rule_action(rule: ModerationRule, now: datetime) -> st.Action:
    reason = f"Automatic: {rule.name}"
    if rule.action == "ban":
        return st.Ban(reason)
    if rule.action == "suspension":
        return st.Suspend(until=now + timedelta(days=rule.suspension_days or 1), reason=reason)
    return st.Warn(reason)


def evaluate_rules(db: Session, user: User, trigger_type: str, value: int, now: datetime) -> List[ModerationRule]:
    """
    Применяет включённые правила, чей порог ровно достигнут значением value.
    Правил по умолчанию нет, без них функция ничего не делает.
    Админы не эскалируются автоматически.
    """
    if user.is_admin:
        return []
    rules = (
        db.query(ModerationRule)
        .filter(
            ModerationRule.enabled.is_(True),
            ModerationRule.trigger_type == trigger_type,
            ModerationRule.threshold == value,
        )
        .order_by(ModerationRule.id.asc())
        .all()
    )
    fired: List[ModerationRule] = []
    for rule in rules:
        current = st.standing_of(user, now)
        if isinstance(current, st.Banned):
            break
        action = _rule_action(rule, now)
        # правило-предупреждение на счётчике предупреждений не должно зацикливаться
        if isinstance(action, st.Warn) and trigger_type == "warning_count":
            continue
        new_standing = _apply(user, action, now)
        fired.append(rule)

        if isinstance(action, st.Ban):
            expire_pending_referral(db, user.id, now)
            _notify(db, user.id, "ban", now, reason=action.reason)
            log_event(db, type=USER_BANNED, actor_id=None, target_user_id=user.id,
                      data={"reason": action.reason, "rule_id": rule.id})
        elif isinstance(action, st.Suspend):
            _notify(db, user.id, "suspension", now, reason=action.reason, suspended_until=action.until)
            log_event(db, type=USER_SUSPENDED, actor_id=None, target_user_id=user.id,
                      data={"reason": action.reason, "until": action.until.isoformat(), "rule_id": rule.id})
        else:
            _notify(db, user.id, "warning", now, reason=action.reason, warning_number=new_standing.warnings)
            log_event(db, type=USER_WARNED, actor_id=None, target_user_id=user.id,
                      data={"reason": action.reason, "rule_id": rule.id, "automated": True})
        log.info("moderation rule %s fired for user %s (%s=%s)", rule.id, user.id, trigger_type, value)
    return fired


def report_count(db: Session, user_id: int) -> int:
    """Сколько жалоб (на пользователя и на его сообщения) накопилось."""
    users = db.query(func.count(UserReport.id)).filter(UserReport.reported_id == user_id).scalar() or 0
    msgs = db.query(func.count(MessageReport.id)).filter(MessageReport.message_sender_id == user_id).scalar() or 0
    return int(users) + int(msgs)


def _validate_rule_fields(trigger_type: str, threshold: int, action: str, suspension_days: Optional[int]) -> None:
    if trigger_type not in RULE_TRIGGERS:
        raise ValidationFailed("invalid_trigger", f"trigger_type must be one of {RULE_TRIGGERS}")
    if action not in RULE_ACTIONS:
        raise ValidationFailed("invalid_action", f"action must be one of {RULE_ACTIONS}")
    if threshold is None or threshold < 1:
        raise ValidationFailed("invalid_threshold", "threshold must be >= 1")
    if action == "suspension" and (not suspension_days or suspension_days < 1 or suspension_days > MAX_SUSPENSION_DAYS):
        raise ValidationFailed("invalid_days", f"Suspension must be 1..{MAX_SUSPENSION_DAYS} days")


def create_rule(db: Session, admin: User, *, name: str, trigger_type: str, threshold: int, action: str,
                suspension_days: Optional[int] = None, description: Optional[str] = None,
                enabled: bool = False, now: datetime) -> ModerationRule:
    require_admin(admin)
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("name_required", "Rule name is required")
    _validate_rule_fields(trigger_type, threshold, action, suspension_days)
    rule = ModerationRule(
        name=name, description=description, enabled=enabled, trigger_type=trigger_type,
        threshold=threshold, action=action,
        suspension_days=suspension_days if action == "suspension" else None,
        created_at=now, updated_at=now,
    )
    db.add(rule)
    db.flush()
    return rule


def update_rule(db: Session, admin: User, rule_id: int, now: datetime, **changes) -> ModerationRule:
    require_admin(admin)
    rule = db.query(ModerationRule).filter(ModerationRule.id == rule_id).first()
    if not rule:
        raise NotFound("rule_not_found", "Rule not found")
    for field, value in changes.items():
        if value is not None:
            setattr(rule, field, value)
    _validate_rule_fields(rule.trigger_type, rule.threshold, rule.action, rule.suspension_days)
    rule.updated_at = now
    return rule


def list_rules(db: Session, admin: User) -> List[ModerationRule]:
    require_admin(admin)
    return db.query(ModerationRule).order_by(ModerationRule.trigger_type, ModerationRule.threshold, ModerationRule.id).all()


def delete_rule(db: Session, admin: User, rule_id: int) -> bool:
    require_admin(admin)
    rule = db.query(ModerationRule).filter(ModerationRule.id == rule_id).first()
    if not rule:
        raise NotFound("rule_not_found", "Rule not found")
    db.delete(rule)
    return True


# ===== Апелляции ===============================================================

def _open_appeal(db: Session, user_id: int) -> Optional[Appeal]:
    return (
        db.query(Appeal)
        .filter(Appeal.user_id == user_id, Appeal.status.in_(OPEN_APPEAL_STATUSES))
        .order_by(Appeal.submitted_at.desc())
        .first()
    )


def can_submit_appeal(db: Session, user_id: int) -> dict:
    """
    False, пока есть апелляция в pending/under_review. Наличие ограничения
    не проверяет: это делает submit_appeal.
    """
    existing = _open_appeal(db, user_id)
    if existing is None:
        return {"can_submit": True, "reason": None, "existing_appeal_status": None}
    reason = (
        "Your appeal is currently under review" if existing.status == "under_review"
        else "You already have a pending appeal"
    )
    return {"can_submit": False, "reason": reason, "existing_appeal_status": existing.status}


def _has_restriction(current: st.Standing, appeal_type: str) -> bool:
    if appeal_type == "ban":
        return isinstance(current, st.Banned)
    if appeal_type == "suspension":
        return isinstance(current, st.Suspended)
    return current.warnings > 0


def submit_appeal(
    db: Session,
    user: User,
    appeal_type: str,
    reason: str,
    now: datetime,
    additional_info: Optional[str] = None,
) -> Appeal:
    if appeal_type not in APPEAL_TYPES:
        raise ValidationFailed("invalid_appeal_type", f"appeal_type must be one of {APPEAL_TYPES}")
    reason = _clean_reason(reason, required=True)
    additional_info = (additional_info or "").strip() or None

    locked = lock_user(db, user.id)
    if _open_appeal(db, locked.id) is not None:
        raise InvalidState("appeal_outstanding", "You already have an appeal awaiting review")
    if not _has_restriction(st.standing_of(locked, now), appeal_type):
        raise InvalidState("nothing_to_appeal", f"You have no active {appeal_type} to appeal")

    appeal = Appeal(
        user_id=locked.id,
        appeal_type=appeal_type,
        reason=reason,
        additional_info=additional_info,
        submitted_at=now,
        status="pending",
        original_banned_reason=locked.banned_reason,
        original_suspended_until=locked.suspended_until,
        original_warning_count=locked.warning_count,
    )
    db.add(appeal)
    db.flush()
    log_event(db, type=APPEAL_SUBMITTED, actor_id=locked.id, target_user_id=locked.id,
              data={"appeal_id": appeal.id, "appeal_type": appeal_type})
    return appeal


_LIFT_ACTIONS = {
    "ban": st.Unban,
    "suspension": st.Unsuspend,
    "warning": st.RemoveWarning,
}


def update_appeal_status(
    db: Session,
    admin: User,
    appeal_id: int,
    status: str,
    now: datetime,
    admin_response: Optional[str] = None,
) -> Appeal:
    """
    pending -> under_review -> accepted | rejected (pending может закрыться сразу).
    accepted снимает соответствующее ограничение в той же транзакции:
    апелляция и флаги пользователя меняются вместе или не меняются вовсе.
    """
    require_admin(admin)
    if status not in ("under_review", "accepted", "rejected"):
        raise ValidationFailed("invalid_status", "status must be under_review, accepted or rejected")

    appeal = db.query(Appeal).filter(Appeal.id == appeal_id).with_for_update().first()
    if not appeal:
        raise NotFound("appeal_not_found", "Appeal not found")
    if not appeal.is_open:
        raise InvalidState("appeal_closed", f"Appeal is already {appeal.status}")
    if status == "under_review" and appeal.status == "under_review":
        raise InvalidState("appeal_already_under_review", "Appeal is already under review")
    if appeal.user_id == admin.id:
        raise PermissionDenied("cannot_review_own_appeal", "You cannot review your own appeal")

    previous = appeal.status
    appeal.status = status
    appeal.reviewed_by = admin.id
    appeal.reviewed_at = now
    if admin_response is not None:
        appeal.admin_response = admin_response.strip() or None

    if status == "accepted":
        user = lock_user(db, appeal.user_id)
        _apply(user, _LIFT_ACTIONS[appeal.appeal_type](), now)
        _notify(db, user.id, "appeal_accepted", now, reason=appeal.admin_response, appeal_id=appeal.id)
    elif status == "rejected":
        _notify(db, appeal.user_id, "appeal_rejected", now, reason=appeal.admin_response, appeal_id=appeal.id)

    log_event(db, type=APPEAL_STATUS_CHANGED, actor_id=admin.id, target_user_id=appeal.user_id,
              data={"appeal_id": appeal.id, "from": previous, "to": status})
    return appeal


def list_user_appeals(db: Session, user_id: int) -> List[Appeal]:
    return (
        db.query(Appeal)
        .filter(Appeal.user_id == user_id)
        .order_by(Appeal.submitted_at.desc(), Appeal.id.desc())
        .all()
    )


def get_user_appeal(db: Session, user: User, appeal_id: int) -> Appeal:
    appeal = db.query(Appeal).filter(Appeal.id == appeal_id).first()
    if not appeal or (appeal.user_id != user.id and not user.is_admin):
        raise NotFound("appeal_not_found", "Appeal not found")
    return appeal


def list_appeals(db: Session, admin: User, status: Optional[str] = None) -> List[Appeal]:
    require_admin(admin)
    q = db.query(Appeal)
    if status:
        q = q.filter(Appeal.status == status)
    return q.order_by(Appeal.submitted_at.desc(), Appeal.id.desc()).all()


# ===== Уведомления о модерации =================================================

def list_notifications(db: Session, user_id: int, *, unread_only: bool = False) -> List[ModerationNotification]:
    q = db.query(ModerationNotification).filter(ModerationNotification.user_id == user_id)
    if unread_only:
        q = q.filter(ModerationNotification.read_at.is_(None))
    return q.order_by(ModerationNotification.created_at.desc(), ModerationNotification.id.desc()).all()


def mark_notification_read(db: Session, user_id: int, notification_id: int, now: datetime) -> ModerationNotification:
    n = (
        db.query(ModerationNotification)
        .filter(ModerationNotification.id == notification_id, ModerationNotification.user_id == user_id)
        .first()
    )
    if not n:
        raise NotFound("notification_not_found", "Notification not found")
    if n.read_at is None:
        n.read_at = now
    return n


def mark_all_notifications_read(db: Session, user_id: int, now: datetime) -> int:
    return (
        db.query(ModerationNotification)
        .filter(ModerationNotification.user_id == user_id, ModerationNotification.read_at.is_(None))
        .update({ModerationNotification.read_at: now}, synchronize_session=False)
    )


_PUSH_TEXT = {
    "warning": ("You received a warning", "Please review our community guidelines."),
    "suspension": ("Your account was suspended", "You can submit an appeal from the app."),
    "ban": ("Your account was banned", "You can submit an appeal from the app."),
    "appeal_accepted": ("Your appeal was accepted", "The restriction has been lifted."),
    "appeal_rejected": ("Your appeal was rejected", "Open the app for details."),
}


def push_payload_for(note: ModerationNotification) -> dict:
    title, body = _PUSH_TEXT.get(note.type, ("Account notice", "Open the app for details."))
    return make_payload(title, body, kind="moderation", url="/moderation", notification_id=note.id)


def latest_notification(db: Session, user_id: int, type: str) -> Optional[ModerationNotification]:
    return (
        db.query(ModerationNotification)
        .filter(ModerationNotification.user_id == user_id, ModerationNotification.type == type)
        .order_by(ModerationNotification.id.desc())
        .first()
    )


def push_notification(background, db: Session, note: Optional[ModerationNotification]) -> bool:
    """Push по уведомлению о модерации; вызывать после commit."""
    if note is None:
        return False
    return queue_push(background, db, note.user_id, push_payload_for(note))


def push_if_auto_warned(background, db: Session, user: User, warnings_before: int) -> bool:
    """Если проверка контента добавила предупреждение, шлём push о нём."""
    if (user.warning_count or 0) <= warnings_before:
        return False
    return push_notification(background, db, latest_notification(db, user.id, "warning"))

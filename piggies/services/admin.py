# piggies/services/admin.py
# Админка: сводная статистика, список пользователей с фильтрами, карточка
# пользователя и выдача/снятие прав администратора.

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from piggies.models.profile import Profile
from piggies.models.report import UserReport, MessageReport
from piggies.models.user import User
from piggies.services import standing as st
from piggies.services.errors import NotFound, PermissionDenied, ValidationFailed
from piggies.services.events import log_event, ADMIN_STATUS_CHANGED
from piggies.services.moderation import lock_user, require_admin
from piggies.utils.media import storage_url

USER_FILTERS = ("all", "banned", "suspended", "warned", "admin")
ACTIVE_WINDOW = timedelta(days=7)


def get_admin_stats(db: Session, admin: User, now: datetime) -> dict:
    require_admin(admin)
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    def count(q):
        return q.scalar() or 0

    return {
        "total_users": count(db.query(func.count(User.id))),
        "active_users": count(db.query(func.count(User.id)).filter(User.last_active > now - ACTIVE_WINDOW)),
        "banned_users": count(db.query(func.count(User.id)).filter(User.is_banned.is_(True))),
        "suspended_users": count(
            db.query(func.count(User.id)).filter(User.is_suspended.is_(True), User.suspended_until > now)
        ),
        "pending_reports": count(db.query(func.count(UserReport.id)).filter(UserReport.status == "pending")),
        "pending_message_reports": count(
            db.query(func.count(MessageReport.id)).filter(MessageReport.status == "pending")
        ),
        "total_reports": count(db.query(func.count(UserReport.id))),
        "reports_today": count(db.query(func.count(UserReport.id)).filter(UserReport.reported_at >= day_start)),
        "new_users_today": count(db.query(func.count(User.id)).filter(User.created_at >= day_start)),
    }


def _user_row(db: Session, user: User, profile: Optional[Profile], now: datetime) -> dict:
    current = st.standing_of(user, now)
    reports = db.query(func.count(UserReport.id)).filter(UserReport.reported_id == user.id).scalar() or 0
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "image_url": user.image_url,
        "created_at": user.created_at,
        "last_active": user.last_active,
        "is_online": user.is_online,
        "is_admin": user.is_admin,
        "is_banned": isinstance(current, st.Banned),
        "banned_at": user.banned_at,
        "banned_reason": user.banned_reason,
        "is_suspended": isinstance(current, st.Suspended),
        "suspended_until": user.suspended_until if isinstance(current, st.Suspended) else None,
        "warning_count": current.warnings,
        "status": st.status_label(current),
        "subscription_tier": user.subscription_tier,
        "display_name": profile.display_name if profile else None,
        "onboarding_complete": bool(profile and profile.onboarding_complete),
        "report_count": reports,
    }


def list_users(
    db: Session,
    admin: User,
    now: datetime,
    *,
    filter: str = "all",
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    require_admin(admin)
    if filter not in USER_FILTERS:
        raise ValidationFailed("invalid_filter", f"filter must be one of {USER_FILTERS}")

    q = db.query(User, Profile).outerjoin(Profile, Profile.user_id == User.id)
    if filter == "banned":
        q = q.filter(User.is_banned.is_(True))
    elif filter == "suspended":
        q = q.filter(User.is_suspended.is_(True), User.suspended_until > now)
    elif filter == "warned":
        q = q.filter(User.warning_count > 0)
    elif filter == "admin":
        q = q.filter(User.is_admin.is_(True))

    term = (search or "").strip().lower()
    if term:
        like = f"%{term}%"
        q = q.filter(or_(
            func.lower(User.name).like(like),
            func.lower(func.coalesce(User.email, "")).like(like),
        ))

    limit = max(1, min(limit, 200))
    offset = max(0, offset)
    total = q.count()
    rows = q.order_by(User.id.desc()).offset(offset).limit(limit).all()
    return {
        "users": [_user_row(db, u, p, now) for u, p in rows],
        "total": total,
        "has_more": offset + limit < total,
    }


def get_user_details(db: Session, admin: User, user_id: int, now: datetime,
                     base_url: Optional[str] = None) -> dict:
    require_admin(admin)
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("user_not_found", "User not found")
    profile = db.query(Profile).filter(Profile.user_id == user.id).first()

    against = (
        db.query(UserReport)
        .filter(UserReport.reported_id == user.id)
        .order_by(UserReport.reported_at.desc())
        .all()
    )
    made = db.query(func.count(UserReport.id)).filter(UserReport.reporter_id == user.id).scalar() or 0

    out = _user_row(db, user, profile, now)
    out.update({
        "subscription_status": user.subscription_status,
        "referral_credits": user.referral_credits or 0,
        "profile": {
            "display_name": profile.display_name,
            "bio": profile.bio,
            "age": profile.age,
            "looking_for": profile.looking_for,
            "interests": profile.interests or [],
            "onboarding_complete": profile.onboarding_complete,
            "photo_urls": [storage_url(k, base_url) for k in (profile.photo_keys or [])],
        } if profile else None,
        "reports_against_count": len(against),
        "reports_made_count": made,
        "recent_reports": [
            {"id": r.id, "reason": r.reason, "status": r.status, "reported_at": r.reported_at}
            for r in against[:5]
        ],
    })
    return out


def toggle_admin_status(db: Session, admin: User, user_id: int) -> User:
    """Переключает is_admin. Снять права с самого себя нельзя."""
    require_admin(admin)
    if admin.id == user_id:
        raise PermissionDenied("cannot_change_own_admin", "You cannot change your own admin status")
    user = lock_user(db, user_id)
    user.is_admin = not user.is_admin
    log_event(db, type=ADMIN_STATUS_CHANGED, actor_id=admin.id, target_user_id=user.id,
              data={"is_admin": user.is_admin})
    return user

# piggies/services/admirers.py
# -----------------------------------------------------------------------------
# "Поклонники": взмахи и гости анкеты.
#
#   • Взмах - один на направленную пару, повтор не ошибка (already_waved).
#   • Просмотр чужой анкеты записывается раз в UTC-сутки на пару. Free видит
#     не больше 5 новых анкет в сутки, повторный просмотр той же анкеты
#     лимит не тратит. Свою анкету смотреть можно всегда.
#   • Списки взмахов и гостей режутся тарифом: free 3 последних, Ultra 50;
#     total_count считается по всем.
# Заблокированные в любую сторону и забаненные в списках не показываются.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from piggies.models.admirer import ProfileView, Wave
from piggies.models.user import User
from piggies.services.blocks import blocked_ids_for, is_blocked_between
from piggies.services.errors import NotFound, PermissionDenied, ValidationFailed
from piggies.services.moderation import require_not_moderated
from piggies.services.tiers import admirers_limit, daily_profile_view_limit, is_ultra

log = logging.getLogger(__name__)


def _effective_limit(user: User, now: datetime, requested: Optional[int]) -> int:
    cap = admirers_limit(user, now)
    if requested is None:
        return cap
    return max(1, min(requested, cap))


def _visible_user_ids(db: Session, viewer_id: int, user_ids: List[int]) -> set:
    if not user_ids:
        return set()
    hidden = blocked_ids_for(db, viewer_id)
    rows = db.query(User.id).filter(User.id.in_(user_ids), User.is_banned.is_(False)).all()
    return {uid for (uid,) in rows if uid not in hidden}


# ===== Взмахи ==================================================================

def send_wave(db: Session, waver: User, waved_at_id: int, now: datetime) -> Tuple[Wave, bool]:
    """Возвращает (взмах, already_waved)."""
    if waved_at_id == waver.id:
        raise ValidationFailed("cannot_wave_self", "You cannot wave at yourself")
    require_not_moderated(waver, now)
    target = db.query(User).filter(User.id == waved_at_id).first()
    if not target or target.is_banned or is_blocked_between(db, waver.id, waved_at_id):
        raise NotFound("user_not_found", "User not found")

    existing = (
        db.query(Wave)
        .filter(Wave.waver_id == waver.id, Wave.waved_at_id == waved_at_id)
        .first()
    )
    if existing:
        return existing, True
    wave = Wave(waver_id=waver.id, waved_at_id=waved_at_id, waved_at=now)
    db.add(wave)
    db.flush()
    log.debug("user %s waved at %s", waver.id, waved_at_id)
    return wave, False


def has_waved_at(db: Session, waver_id: int, waved_at_id: int) -> bool:
    return db.query(Wave.id).filter(Wave.waver_id == waver_id, Wave.waved_at_id == waved_at_id).first() is not None


def list_my_waves(db: Session, user: User, now: datetime, limit: Optional[int] = None) -> dict:
    limit = _effective_limit(user, now, limit)
    waves = (
        db.query(Wave)
        .filter(Wave.waved_at_id == user.id)
        .order_by(Wave.waved_at.desc(), Wave.id.desc())
        .all()
    )
    visible = _visible_user_ids(db, user.id, [w.waver_id for w in waves])
    waves = [w for w in waves if w.waver_id in visible]
    return {
        "items": [{"user_id": w.waver_id, "at": w.waved_at} for w in waves[:limit]],
        "total_count": len(waves),
        "has_more": len(waves) > limit,
    }


# ===== Просмотры анкет =========================================================

def _view_today(db: Session, viewer_id: int, viewed_id: int, day: date) -> Optional[ProfileView]:
    return (
        db.query(ProfileView)
        .filter(
            ProfileView.viewer_id == viewer_id,
            ProfileView.viewed_id == viewed_id,
            ProfileView.view_date == day,
        )
        .first()
    )


def views_today(db: Session, viewer_id: int, now: datetime) -> int:
    return (
        db.query(func.count(ProfileView.id))
        .filter(ProfileView.viewer_id == viewer_id, ProfileView.view_date == now.date())
        .scalar()
        or 0
    )


def can_view_profile(db: Session, viewer: User, target_id: int, now: datetime) -> dict:
    limit = daily_profile_view_limit(viewer, now)
    if target_id == viewer.id:
        return {"can_view": True, "views_today": 0, "limit": limit, "already_viewed": False}
    used = views_today(db, viewer.id, now)
    already = _view_today(db, viewer.id, target_id, now.date()) is not None
    return {
        "can_view": already or limit is None or used < limit,
        "views_today": used,
        "limit": limit,
        "already_viewed": already,
    }


def record_profile_view(db: Session, viewer: User, viewed_id: int, now: datetime) -> dict:
    """
    Записывает просмотр. Новая анкета сверх дневного лимита -> ошибка
    авторизации, ничего не записывается.
    """
    status = can_view_profile(db, viewer, viewed_id, now)
    if viewed_id == viewer.id:
        return status
    if not status["can_view"]:
        raise PermissionDenied(
            "daily_view_limit",
            f"Free tier allows {status['limit']} new profiles per day. Upgrade to Ultra for unlimited views.",
        )
    if status["already_viewed"]:
        _view_today(db, viewer.id, viewed_id, now.date()).viewed_at = now
        return status

    db.add(ProfileView(viewer_id=viewer.id, viewed_id=viewed_id, view_date=now.date(), viewed_at=now))
    db.flush()
    return {**status, "views_today": status["views_today"] + 1, "already_viewed": True}


def daily_limits(db: Session, user: User, now: datetime) -> dict:
    used = views_today(db, user.id, now)
    limit = daily_profile_view_limit(user, now)
    return {
        "profile_views": {
            "used": used,
            "limit": limit,
            "remaining": None if limit is None else max(0, limit - used),
        },
    }


def _last_view_per_viewer(db: Session, user_id: int) -> List[Tuple[int, datetime]]:
    rows = (
        db.query(ProfileView.viewer_id, func.max(ProfileView.viewed_at))
        .filter(ProfileView.viewed_id == user_id)
        .group_by(ProfileView.viewer_id)
        .all()
    )
    return sorted(rows, key=lambda r: (r[1], r[0]), reverse=True)


def list_profile_viewers(db: Session, user: User, now: datetime, limit: Optional[int] = None) -> dict:
    """Уникальные гости анкеты с моментом последнего просмотра, новые сверху."""
    limit = _effective_limit(user, now, limit)
    rows = _last_view_per_viewer(db, user.id)
    visible = _visible_user_ids(db, user.id, [viewer_id for viewer_id, _ in rows])
    rows = [(viewer_id, at) for viewer_id, at in rows if viewer_id in visible]
    return {
        "items": [{"user_id": viewer_id, "at": at} for viewer_id, at in rows[:limit]],
        "total_count": len(rows),
        "has_more": len(rows) > limit,
    }


def admirers_stats(db: Session, user: User, now: datetime) -> dict:
    waves = list_my_waves(db, user, now)
    viewers = list_profile_viewers(db, user, now)
    cap = admirers_limit(user, now)
    return {
        "total_waves": waves["total_count"],
        "total_viewers": viewers["total_count"],
        "is_ultra": is_ultra(user, now),
        "waves_limit": cap,
        "viewers_limit": cap,
    }

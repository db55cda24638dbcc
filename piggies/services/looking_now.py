# piggies/services/looking_now.py
# -----------------------------------------------------------------------------
# "Ищу сейчас": короткие посты с временем жизни.
#
#   • У пользователя один активный пост; новый пост гасит предыдущий.
#   • Free - 1 пост в UTC-сутки и 1 час жизни, Ultra - без лимита и 4 часа.
#   • Лента: активные неистёкшие посты, новые сверху, без забаненных,
#     действующе приостановленных и заблокированных в любую сторону.
#   • cleanup_expired_posts() снимает is_active с истёкших (ежедневная доводка).
# Текст поста проходит проверку контента так же, как анкета.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from piggies.models.looking_now import LookingNowPost
from piggies.models.user import User
from piggies.services.blocks import blocked_ids_for
from piggies.services.content_check import ContentChecker, get_content_checker
from piggies.services.errors import InvalidState, NotFound, PermissionDenied, ValidationFailed
from piggies.services.moderation import require_not_moderated, warn_user
from piggies.services.tiers import FREE_LOOKING_NOW_POSTS_PER_DAY, is_ultra, looking_now_hours

log = logging.getLogger(__name__)

MAX_MESSAGE_LEN = 500
MAX_LOCATION_NAME_LEN = 128
FEED_LIMIT = 50


def _day_start(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def posts_today(db: Session, user_id: int, now: datetime) -> int:
    return (
        db.query(func.count(LookingNowPost.id))
        .filter(LookingNowPost.user_id == user_id, LookingNowPost.created_at >= _day_start(now))
        .scalar()
        or 0
    )


def posting_status(db: Session, user: User, now: datetime) -> dict:
    """daily_limit=None - без ограничения."""
    ultra = is_ultra(user, now)
    used = posts_today(db, user.id, now)
    return {
        "can_post": ultra or used < FREE_LOOKING_NOW_POSTS_PER_DAY,
        "is_ultra": ultra,
        "posts_used_today": used,
        "daily_limit": None if ultra else FREE_LOOKING_NOW_POSTS_PER_DAY,
        "post_duration_hours": looking_now_hours(user, now),
    }


def _clean_message(message: Optional[str]) -> str:
    message = (message or "").strip()
    if not message:
        raise ValidationFailed("message_required", "Post message is required")
    if len(message) > MAX_MESSAGE_LEN:
        raise ValidationFailed("message_too_long", f"Post must be at most {MAX_MESSAGE_LEN} characters")
    return message


def _clean_location_name(name: Optional[str]) -> Optional[str]:
    name = (name or "").strip() or None
    if name and len(name) > MAX_LOCATION_NAME_LEN:
        raise ValidationFailed("location_name_too_long", f"Location must be at most {MAX_LOCATION_NAME_LEN} characters")
    return name


def _check_text(db: Session, user: User, text: str, now: datetime, checker: Optional[ContentChecker]) -> None:
    verdict = (checker or get_content_checker()).check(text)
    if verdict.flagged:
        log.info("content check flagged looking-now post of user %s", user.id)
        warn_user(db, user.id, verdict.reason, now)


def create_post(
    db: Session,
    user: User,
    now: datetime,
    *,
    message: str,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    location_name: Optional[str] = None,
    can_host: Optional[bool] = None,
    checker: Optional[ContentChecker] = None,
) -> LookingNowPost:
    require_not_moderated(user, now)
    message = _clean_message(message)
    location_name = _clean_location_name(location_name)
    if (latitude is None) != (longitude is None):
        raise ValidationFailed("invalid_location", "latitude and longitude go together")
    if latitude is not None and not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        raise ValidationFailed("invalid_location", "coordinates out of range")

    status = posting_status(db, user, now)
    if not status["can_post"]:
        raise PermissionDenied(
            "daily_post_limit",
            f"Free tier allows {FREE_LOOKING_NOW_POSTS_PER_DAY} post per day. Upgrade to Ultra for unlimited posts.",
        )

    for previous in db.query(LookingNowPost).filter(
        LookingNowPost.user_id == user.id, LookingNowPost.is_active.is_(True),
    ):
        previous.is_active = False

    post = LookingNowPost(
        user_id=user.id,
        message=message,
        latitude=latitude,
        longitude=longitude,
        location_name=location_name,
        can_host=can_host,
        created_at=now,
        expires_at=now + timedelta(hours=status["post_duration_hours"]),
        is_active=True,
    )
    db.add(post)
    db.flush()
    _check_text(db, user, message, now, checker)
    return post


def my_active_post(db: Session, user: User, now: datetime) -> Optional[LookingNowPost]:
    return (
        db.query(LookingNowPost)
        .filter(
            LookingNowPost.user_id == user.id,
            LookingNowPost.is_active.is_(True),
            LookingNowPost.expires_at > now,
        )
        .order_by(LookingNowPost.created_at.desc())
        .first()
    )


def _owned_post(db: Session, user: User, post_id: int) -> LookingNowPost:
    post = db.query(LookingNowPost).filter(LookingNowPost.id == post_id).first()
    if not post:
        raise NotFound("post_not_found", "Post not found")
    if post.user_id != user.id:
        raise PermissionDenied("not_post_owner", "You can only change your own post")
    return post


def update_post(
    db: Session,
    user: User,
    post_id: int,
    changes: dict,
    now: datetime,
    *,
    checker: Optional[ContentChecker] = None,
) -> LookingNowPost:
    """Текст, место и can_host; срок жизни не продлевается."""
    post = _owned_post(db, user, post_id)
    if not post.is_active or post.expires_at <= now:
        raise InvalidState("post_inactive", "This post is no longer active")
    if "message" in changes:
        post.message = _clean_message(changes["message"])
        _check_text(db, user, post.message, now, checker)
    if "location_name" in changes:
        post.location_name = _clean_location_name(changes["location_name"])
    if "can_host" in changes:
        post.can_host = changes["can_host"]
    return post


def delete_post(db: Session, user: User, post_id: int) -> LookingNowPost:
    post = _owned_post(db, user, post_id)
    post.is_active = False
    return post


def list_active_posts(db: Session, viewer: User, now: datetime, limit: int = FEED_LIMIT) -> List[dict]:
    hidden = blocked_ids_for(db, viewer.id)
    rows = (
        db.query(LookingNowPost, User)
        .join(User, User.id == LookingNowPost.user_id)
        .filter(
            LookingNowPost.is_active.is_(True),
            LookingNowPost.expires_at > now,
            User.is_banned.is_(False),
            or_(
                User.is_suspended.is_(False),
                User.suspended_until.is_(None),
                User.suspended_until <= now,
            ),
        )
        .order_by(LookingNowPost.created_at.desc(), LookingNowPost.id.desc())
        .all()
    )
    out = []
    for post, user in rows:
        if user.id in hidden:
            continue
        out.append({"post": post, "user": user, "is_own": user.id == viewer.id})
    return out[:max(1, min(limit, FEED_LIMIT))]


def cleanup_expired_posts(db: Session, now: datetime) -> int:
    return (
        db.query(LookingNowPost)
        .filter(LookingNowPost.is_active.is_(True), LookingNowPost.expires_at <= now)
        .update({LookingNowPost.is_active: False}, synchronize_session=False)
    )

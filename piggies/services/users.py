# piggies/services/users.py
# -----------------------------------------------------------------------------
# Пользователи и анкеты: upsert по данным провайдера идентификации,
# редактирование анкеты, геопозиция, онлайн-статус, настройки приватности,
# фото анкеты, поиск по имени, избранные пользователи, карточки для списков.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from piggies.models.favorite_user import FavoriteUser
from piggies.models.profile import Profile
from piggies.models.user import User
from piggies.services import moderation
from piggies.services.blocks import blocked_ids_for, is_blocked_between
from piggies.services.content_check import ContentChecker, get_content_checker
from piggies.services.errors import NotFound, ValidationFailed
from piggies.services.referrals import apply_referral_code, generate_code
from piggies.services.uploads import require_own_upload
from piggies.utils.media import storage_url
from piggies.utils.user import get_display_name

log = logging.getLogger(__name__)

MIN_AGE = 18
MAX_AGE = 120
MAX_PROFILE_PHOTOS = 6
MAX_INTERESTS = 20
PROFILE_FIELDS = ("display_name", "bio", "age", "looking_for", "interests", "onboarding_complete")
PREFERENCE_FIELDS = ("show_online_status", "hide_from_discovery", "push_notifications_enabled")


# ===== Вход через провайдера идентификации =====================================

def upsert_user_from_claims(
    db: Session,
    claims: dict,
    now: datetime,
    *,
    referral_code: Optional[str] = None,
) -> Tuple[User, bool, Optional[str]]:
    """
    Находит пользователя по sub или создаёт нового (с пустой анкетой и
    реферальным кодом). Реферальный код применяется только при создании.
    Возвращает (user, created, referral_result).
    """
    external_id = str(claims.get("sub") or "").strip()
    if not external_id:
        raise ValidationFailed("invalid_identity", "Identity token has no subject")

    email = claims.get("email")
    name = get_display_name(name=claims.get("name") or "", email=email or "")
    picture = claims.get("picture")

    user = db.query(User).filter(User.external_id == external_id).first()
    if user is not None:
        user.email = email or user.email
        user.name = name or user.name
        user.image_url = picture or user.image_url
        user.last_active = now
        user.is_online = True
        if not user.referral_code:
            generate_code(db, user)
        return user, False, None

    user = User(
        external_id=external_id,
        email=email,
        name=name,
        image_url=picture,
        last_active=now,
        is_online=True,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.flush()
    db.add(Profile(user_id=user.id, photo_keys=[], interests=[]))
    generate_code(db, user)

    referral_result = None
    if referral_code:
        _, referral_result = apply_referral_code(db, user, referral_code, now)
    log.info("new user %s created (referral=%s)", user.id, referral_result)
    return user, True, referral_result


def get_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("user_not_found", "User not found")
    return user


# ===== Анкета ==================================================================

def get_profile(db: Session, user_id: int) -> Profile:
    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    if not profile:
        raise NotFound("profile_not_found", "Profile not found")
    return profile


def _clean_interests(interests: List[str]) -> List[str]:
    out: List[str] = []
    for item in interests:
        item = (item or "").strip()
        if item and item not in out:
            out.append(item)
    if len(out) > MAX_INTERESTS:
        raise ValidationFailed("too_many_interests", f"At most {MAX_INTERESTS} interests allowed")
    return out


def update_profile(
    db: Session,
    user: User,
    changes: dict,
    now: datetime,
    *,
    checker: Optional[ContentChecker] = None,
) -> Profile:
    """
    Частичное обновление анкеты (None - поле не трогаем).
    Текст анкеты проходит проверку контента: при срабатывании
    пользователь получает автоматическое предупреждение, анкета сохраняется.
    """
    profile = get_profile(db, user.id)
    changes = {k: v for k, v in changes.items() if k in PROFILE_FIELDS and v is not None}

    if "age" in changes and not (MIN_AGE <= changes["age"] <= MAX_AGE):
        raise ValidationFailed("invalid_age", f"age must be between {MIN_AGE} and {MAX_AGE}")
    if "display_name" in changes:
        changes["display_name"] = changes["display_name"].strip() or None
    if "bio" in changes:
        changes["bio"] = changes["bio"].strip() or None
    if "interests" in changes:
        changes["interests"] = _clean_interests(changes["interests"])

    for k, v in changes.items():
        setattr(profile, k, v)
    user.updated_at = now

    text = " ".join(t for t in (changes.get("display_name"), changes.get("bio")) if t)
    if text:
        verdict = (checker or get_content_checker()).check(text)
        if verdict.flagged:
            moderation.warn_user(db, user.id, verdict.reason, now)
    return profile


def update_location(db: Session, user: User, latitude: float, longitude: float,
                    location_name: Optional[str] = None) -> Profile:
    if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        raise ValidationFailed("invalid_location", "coordinates out of range")
    profile = get_profile(db, user.id)
    profile.latitude = latitude
    profile.longitude = longitude
    profile.location_name = (location_name or "").strip() or None
    return profile


def set_online(user: User, is_online: bool, now: datetime) -> User:
    user.is_online = is_online
    user.last_active = now
    return user


def update_preferences(user: User, changes: dict) -> User:
    for k, v in changes.items():
        if k in PREFERENCE_FIELDS and v is not None:
            setattr(user, k, bool(v))
    return user


# ===== Фото анкеты =============================================================

def add_profile_photo(db: Session, user: User, storage_key: str) -> Profile:
    profile = get_profile(db, user.id)
    keys = list(profile.photo_keys or [])
    require_own_upload(db, user, storage_key, ("photos",))
    if storage_key in keys:
        return profile
    if len(keys) >= MAX_PROFILE_PHOTOS:
        raise ValidationFailed("photo_limit_reached", f"Maximum {MAX_PROFILE_PHOTOS} profile photos allowed")
    profile.photo_keys = keys + [storage_key]
    return profile


def remove_profile_photo(db: Session, user: User, storage_key: str) -> bool:
    """True, если ключ был в анкете; сам файл удаляет роутер после commit."""
    profile = get_profile(db, user.id)
    keys = list(profile.photo_keys or [])
    if storage_key not in keys:
        return False
    profile.photo_keys = [k for k in keys if k != storage_key]
    return True


def reorder_profile_photos(db: Session, user: User, storage_keys: List[str]) -> Profile:
    """Первое фото - главное. Набор ключей должен совпадать с текущим."""
    profile = get_profile(db, user.id)
    current = list(profile.photo_keys or [])
    if len(storage_keys) != len(current) or set(storage_keys) != set(current):
        raise ValidationFailed("invalid_photo_ids", "Invalid photo IDs provided")
    profile.photo_keys = list(storage_keys)
    return profile


# ===== Поиск ===================================================================

def search_users(db: Session, viewer: User, query: str, limit: int = 10) -> List[User]:
    term = (query or "").strip().lower()
    if not term:
        return []
    excluded = blocked_ids_for(db, viewer.id) | {viewer.id}
    rows = (
        db.query(User)
        .filter(func.lower(User.name).like(f"%{term}%"), User.is_banned.is_(False))
        .order_by(User.id.asc())
        .limit(max(1, min(limit, 50)) + len(excluded))
        .all()
    )
    return [u for u in rows if u.id not in excluded][:max(1, min(limit, 50))]


# ===== Избранные пользователи ==================================================

def _favorite(db: Session, user_id: int, favorite_id: int) -> Optional[FavoriteUser]:
    return (
        db.query(FavoriteUser)
        .filter(FavoriteUser.user_id == user_id, FavoriteUser.favorite_id == favorite_id)
        .first()
    )


def add_favorite_user(db: Session, user: User, favorite_id: int, now: datetime) -> FavoriteUser:
    """Идемпотентно: повторное добавление возвращает существующую запись."""
    if favorite_id == user.id:
        raise ValidationFailed("cannot_favorite_self", "You cannot favorite yourself")
    target = get_user(db, favorite_id)
    if is_blocked_between(db, user.id, target.id):
        raise NotFound("user_not_found", "User not found")
    existing = _favorite(db, user.id, target.id)
    if existing:
        return existing
    row = FavoriteUser(user_id=user.id, favorite_id=target.id, favorited_at=now)
    db.add(row)
    db.flush()
    return row


def remove_favorite_user(db: Session, user: User, favorite_id: int) -> bool:
    row = _favorite(db, user.id, favorite_id)
    if not row:
        return False
    db.delete(row)
    return True


def is_favorite_user(db: Session, user_id: int, favorite_id: int) -> bool:
    return _favorite(db, user_id, favorite_id) is not None


def list_favorite_users(db: Session, user: User) -> List[Tuple[FavoriteUser, User, Optional[Profile]]]:
    """Новые сверху; заблокированные в любую сторону не показываются."""
    hidden = blocked_ids_for(db, user.id)
    rows = (
        db.query(FavoriteUser, User)
        .join(User, User.id == FavoriteUser.favorite_id)
        .filter(FavoriteUser.user_id == user.id)
        .order_by(FavoriteUser.favorited_at.desc(), FavoriteUser.id.desc())
        .all()
    )
    rows = [(fav, u) for fav, u in rows if u.id not in hidden]
    profiles = profiles_by_user_id(db, [u.id for _, u in rows])
    return [(fav, u, profiles.get(u.id)) for fav, u in rows]


# ===== Карточки для списков ====================================================

def profiles_by_user_id(db: Session, user_ids: Iterable[int]) -> Dict[int, Profile]:
    ids = list(set(user_ids))
    if not ids:
        return {}
    return {p.user_id: p for p in db.query(Profile).filter(Profile.user_id.in_(ids)).all()}


def user_card(user: User, profile: Optional[Profile], base_url: Optional[str] = None) -> dict:
    """Короткая карточка: поклонники, избранное, ленты, "ищу сейчас"."""
    keys = list(profile.photo_keys or []) if profile else []
    return {
        "id": user.id,
        "name": get_display_name(
            display_name=(profile.display_name or "") if profile else "",
            name=user.name, user_id=user.id,
        ),
        "image_url": user.image_url,
        "photo_url": storage_url(keys[0], base_url) if keys else None,
        "age": profile.age if profile else None,
        "looking_for": profile.looking_for if profile else None,
        "is_online": bool(user.is_online and user.show_online_status),
        "last_active": user.last_active if user.show_online_status else None,
    }

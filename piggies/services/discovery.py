# piggies/services/discovery.py
# -----------------------------------------------------------------------------
# Выдача "люди рядом".
#
# Кандидаты: все, кроме себя (если не include_self), забаненных, действующе
# приостановленных, скрытых из выдачи, без завершённого онбординга и тех,
# с кем есть блок в любую сторону.
#
# Порядок: расстояние по возрастанию (неизвестное - в конце), при равенстве
# онлайн раньше офлайн, затем id. Себя, если включён, - первым; себя
# показываем только с завершённым онбордингом, фильтры анкеты действуют и на
# себя, а расстояние и название места - нет.
# Видимая выдача ограничена тарифом: free 20, Ultra 200; limit и offset
# листают страницы внутри этого окна.
#
# Ленты главной (новые за сутки, рекомендованные с фото) используют тот же
# набор видимых пользователей.
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from piggies.models.profile import Profile
from piggies.models.user import User
from piggies.services.blocks import blocked_ids_for
from piggies.services.errors import ValidationFailed
from piggies.services.tiers import discovery_limit
from piggies.utils.geo import distance_or_none

MIN_AGE = 18
MAX_AGE = 120


@dataclass
class DiscoveryFilters:
    online_only: bool = False
    with_photos: bool = False
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    interests: List[str] = field(default_factory=list)
    include_self: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    max_distance_miles: Optional[float] = None
    location_name: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0

    def validate(self) -> None:
        for name in ("min_age", "max_age"):
            v = getattr(self, name)
            if v is not None and not (MIN_AGE <= v <= MAX_AGE):
                raise ValidationFailed("invalid_age", f"{name} must be between {MIN_AGE} and {MAX_AGE}")
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValidationFailed("invalid_age", "min_age must not exceed max_age")
        if self.max_distance_miles is not None and self.max_distance_miles <= 0:
            raise ValidationFailed("invalid_distance", "max_distance_miles must be positive")
        if (self.latitude is None) != (self.longitude is None):
            raise ValidationFailed("invalid_location", "latitude and longitude go together")
        if self.latitude is not None and not (-90 <= self.latitude <= 90 and -180 <= self.longitude <= 180):
            raise ValidationFailed("invalid_location", "coordinates out of range")
        if self.limit is not None and self.limit < 1:
            raise ValidationFailed("invalid_limit", "limit must be positive")
        if self.offset < 0:
            raise ValidationFailed("invalid_offset", "offset must not be negative")


@dataclass
class NearbyUser:
    user: User
    profile: Profile
    distance_miles: Optional[float]
    is_self: bool = False


def _visible_online(user: User) -> bool:
    # скрывший онлайн-статус выглядит офлайн
    return bool(user.is_online and user.show_online_status)


def _sort_key(item: NearbyUser):
    # (себя первым, известное расстояние, расстояние, онлайн первым, id)
    return (
        0 if item.is_self else 1,
        item.distance_miles is None,
        item.distance_miles if item.distance_miles is not None else 0.0,
        0 if _visible_online(item.user) else 1,
        item.user.id,
    )


def _passes(item: NearbyUser, f: DiscoveryFilters, has_origin: bool) -> bool:
    p = item.profile
    online = bool(item.user.is_online) if item.is_self else _visible_online(item.user)
    if f.online_only and not online:
        return False
    if f.with_photos and not (p.photo_keys or []):
        return False
    if f.min_age is not None or f.max_age is not None:
        if p.age is None:
            return False
        if f.min_age is not None and p.age < f.min_age:
            return False
        if f.max_age is not None and p.age > f.max_age:
            return False
    if f.interests:
        mine = set(p.interests or [])
        if not mine.intersection(f.interests):
            return False
    if item.is_self:
        return True
    if has_origin and f.max_distance_miles is not None:
        if item.distance_miles is None or item.distance_miles > f.max_distance_miles:
            return False
    if f.location_name:
        term = f.location_name.strip().lower()
        if term and term not in (p.location_name or "").lower():
            return False
    return True


def _discoverable(db: Session, current_user: User, now: datetime):
    """Все, кого можно показать в выдаче и лентах, кроме блоков (их режем в Python)."""
    return (
        db.query(User, Profile)
        .join(Profile, Profile.user_id == User.id)
        .filter(
            User.is_banned.is_(False),
            or_(
                User.is_suspended.is_(False),
                User.suspended_until.is_(None),
                User.suspended_until <= now,
            ),
            User.hide_from_discovery.is_(False),
            Profile.onboarding_complete.is_(True),
            User.id != current_user.id,
        )
    )


def get_nearby_users(db: Session, current_user: User, filters: DiscoveryFilters, now: datetime) -> List[NearbyUser]:
    filters.validate()

    my_profile = db.query(Profile).filter(Profile.user_id == current_user.id).first()
    origin_lat, origin_lon = filters.latitude, filters.longitude
    if origin_lat is None and my_profile is not None:
        origin_lat, origin_lon = my_profile.latitude, my_profile.longitude
    has_origin = origin_lat is not None and origin_lon is not None

    excluded = blocked_ids_for(db, current_user.id)
    rows = _discoverable(db, current_user, now).all()

    candidates: List[NearbyUser] = []
    for user, profile in rows:
        if user.id in excluded:
            continue
        dist = distance_or_none(origin_lat, origin_lon, profile.latitude, profile.longitude)
        candidates.append(NearbyUser(user=user, profile=profile, distance_miles=dist))

    if filters.include_self and my_profile is not None and my_profile.onboarding_complete:
        candidates.append(NearbyUser(user=current_user, profile=my_profile, distance_miles=0.0 if has_origin else None, is_self=True))

    result = [c for c in candidates if _passes(c, filters, has_origin)]
    result.sort(key=_sort_key)

    # тарифный лимит режет всю видимую выдачу, offset листает внутри неё
    visible = result[:discovery_limit(current_user, now)]
    page_size = filters.limit if filters.limit is not None else len(visible)
    return visible[filters.offset:filters.offset + page_size]


# ===== Ленты главной: новые и рекомендованные ==================================

NEW_PROFILE_WINDOW = timedelta(hours=24)
FEED_LIMIT = 10
MAX_FEED_LIMIT = 50


def _feed_limit(limit: Optional[int]) -> int:
    return FEED_LIMIT if limit is None else max(1, min(limit, MAX_FEED_LIMIT))


def get_new_profiles(db: Session, current_user: User, now: datetime, limit: Optional[int] = None) -> List[Tuple[User, Profile]]:
    """Зарегистрировались за последние сутки, новые сверху."""
    excluded = blocked_ids_for(db, current_user.id)
    rows = (
        _discoverable(db, current_user, now)
        .filter(User.created_at >= now - NEW_PROFILE_WINDOW)
        .order_by(User.created_at.desc(), User.id.desc())
        .all()
    )
    return [(u, p) for u, p in rows if u.id not in excluded][:_feed_limit(limit)]


def get_recommended_profiles(
    db: Session, current_user: User, now: datetime, limit: Optional[int] = None,
) -> List[Tuple[User, Profile]]:
    """С фото; онлайн первыми, дальше по последней активности."""
    excluded = blocked_ids_for(db, current_user.id)
    rows = [
        (u, p) for u, p in _discoverable(db, current_user, now).all()
        if u.id not in excluded and (p.photo_keys or [])
    ]
    rows.sort(key=lambda r: (
        0 if _visible_online(r[0]) else 1,
        r[0].last_active is None,
        -(r[0].last_active.timestamp()) if r[0].last_active else 0.0,
        r[0].id,
    ))
    return rows[:_feed_limit(limit)]

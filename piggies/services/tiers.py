# piggies/services/tiers.py
# Тарифные лимиты. Ultra - оплаченная активная подписка ИЛИ действующий
# Ultra за рефералов.

from __future__ import annotations

from datetime import datetime
from typing import Optional

FREE_DISCOVERY_LIMIT = 20
ULTRA_DISCOVERY_LIMIT = 200

FREE_MAX_ALBUMS = 1
ULTRA_MAX_ALBUMS = 10
FREE_MAX_ALBUM_PHOTOS = 10

FREE_MAX_VENUE_FAVORITES = 10
FREE_VENUE_SUBMISSIONS_PER_WEEK = 1

# сколько последних взмахов и гостей анкеты видно
FREE_ADMIRERS_LIMIT = 3
ULTRA_ADMIRERS_LIMIT = 50

# новых чужих анкет в UTC-сутки; у Ultra без ограничения
FREE_DAILY_PROFILE_VIEWS = 5

FREE_LOOKING_NOW_HOURS = 1
ULTRA_LOOKING_NOW_HOURS = 4
FREE_LOOKING_NOW_POSTS_PER_DAY = 1


def has_paid_ultra(user) -> bool:
    return user.subscription_tier == "ultra" and user.subscription_status == "active"


def has_referral_ultra(user, now: datetime) -> bool:
    return user.referral_ultra_expires_at is not None and user.referral_ultra_expires_at > now


def is_ultra(user, now: datetime) -> bool:
    return has_paid_ultra(user) or has_referral_ultra(user, now)


def discovery_limit(user, now: datetime) -> int:
    return ULTRA_DISCOVERY_LIMIT if is_ultra(user, now) else FREE_DISCOVERY_LIMIT


def max_albums(user, now: datetime) -> int:
    return ULTRA_MAX_ALBUMS if is_ultra(user, now) else FREE_MAX_ALBUMS


def admirers_limit(user, now: datetime) -> int:
    return ULTRA_ADMIRERS_LIMIT if is_ultra(user, now) else FREE_ADMIRERS_LIMIT


def daily_profile_view_limit(user, now: datetime) -> Optional[int]:
    """None - без ограничения."""
    return None if is_ultra(user, now) else FREE_DAILY_PROFILE_VIEWS


def looking_now_hours(user, now: datetime) -> int:
    return ULTRA_LOOKING_NOW_HOURS if is_ultra(user, now) else FREE_LOOKING_NOW_HOURS

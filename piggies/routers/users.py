# piggies/routers/users.py
# -----------------------------------------------------------------------------
# Пользователь, анкета, геопозиция, настройки, блокировки, жалобы и выдача
# "люди рядом", ленты новых и рекомендованных, избранные пользователи и
# дневной лимит просмотров анкет. Порядок маршрутов: статические (/me,
# /nearby, ...) раньше параметрических (/{user_id}).
# -----------------------------------------------------------------------------

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from piggies.db import get_db
from piggies.models.profile import Profile
from piggies.models.user import User
from piggies.schemas.moderation import StandingOut
from piggies.schemas.user import (
    UserOut, PublicUserOut, ProfileOut, ProfileUpdate, LocationIn, OnlineIn, PreferencesIn,
    PhotoKeyIn, PhotoOrderIn, NearbyUserOut, BlockedUserOut, ReportUserIn,
    NewProfileOut, RecommendedProfileOut, FavoriteUserOut, FavoriteStatusOut, CanViewProfileOut, DailyLimitsOut,
)
from piggies.services import admirers, blocks, moderation, reports, uploads, users as users_service
from piggies.services import standing as st
from piggies.services.discovery import DiscoveryFilters, get_nearby_users, get_new_profiles, get_recommended_profiles
from piggies.services.errors import NotFound
from piggies.utils.auth_dep import get_current_user
from piggies.utils.dates import utc_now
from piggies.utils.media import delete_stored, public_base_url, storage_url
from piggies.utils.user import get_display_name

router = APIRouter()


def _profile_out(profile: Profile, base: str) -> dict:
    keys = list(profile.photo_keys or [])
    return {
        "user_id": profile.user_id,
        "display_name": profile.display_name,
        "bio": profile.bio,
        "age": profile.age,
        "photo_urls": [storage_url(k, base) for k in keys],
        "photo_keys": keys,
        "latitude": profile.latitude,
        "longitude": profile.longitude,
        "location_name": profile.location_name,
        "onboarding_complete": bool(profile.onboarding_complete),
        "looking_for": profile.looking_for,
        "interests": list(profile.interests or []),
    }


# ===== Я =======================================================================

@router.get("/me", response_model=UserOut)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("/me/standing", response_model=StandingOut)
def get_my_standing(current_user: User = Depends(get_current_user)):
    """Текущий модерационный статус; истёкшая приостановка уже не считается."""
    return st.standing_summary(current_user, utc_now())


@router.get("/me/profile", response_model=ProfileOut)
def get_my_profile(request: Request, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _profile_out(users_service.get_profile(db, current_user.id), public_base_url(request))


@router.patch("/me/profile", response_model=ProfileOut)
def update_my_profile(
    payload: ProfileUpdate,
    request: Request,
    background: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    warnings_before = current_user.warning_count or 0
    profile = users_service.update_profile(db, current_user, payload.model_dump(exclude_unset=True), utc_now())
    db.commit()
    db.refresh(profile)
    moderation.push_if_auto_warned(background, db, current_user, warnings_before)
    return _profile_out(profile, public_base_url(request))


@router.put("/me/location", response_model=ProfileOut)
def update_my_location(
    payload: LocationIn,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profile = users_service.update_location(db, current_user, payload.latitude, payload.longitude, payload.location_name)
    db.commit()
    db.refresh(profile)
    return _profile_out(profile, public_base_url(request))


@router.put("/me/online", response_model=UserOut)
def update_my_online(payload: OnlineIn, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    users_service.set_online(current_user, payload.is_online, utc_now())
    db.commit()
    db.refresh(current_user)
    return current_user


@router.patch("/me/preferences", response_model=UserOut)
def update_my_preferences(
    payload: PreferencesIn,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    users_service.update_preferences(current_user, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(current_user)
    return current_user


# --- Фото анкеты ---

@router.post("/me/photos", response_model=ProfileOut)
def add_my_photo(
    payload: PhotoKeyIn,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profile = users_service.add_profile_photo(db, current_user, payload.storage_key)
    db.commit()
    db.refresh(profile)
    return _profile_out(profile, public_base_url(request))


@router.post("/me/photos/remove", response_model=ProfileOut)
def remove_my_photo(
    payload: PhotoKeyIn,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    removed = users_service.remove_profile_photo(db, current_user, payload.storage_key)
    released = removed and uploads.release_upload(db, payload.storage_key)
    db.commit()
    if released:
        delete_stored(payload.storage_key)
    return _profile_out(users_service.get_profile(db, current_user.id), public_base_url(request))


@router.put("/me/photos/order", response_model=ProfileOut)
def reorder_my_photos(
    payload: PhotoOrderIn,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profile = users_service.reorder_profile_photos(db, current_user, payload.storage_keys)
    db.commit()
    db.refresh(profile)
    return _profile_out(profile, public_base_url(request))


# ===== Люди рядом ==============================================================

@router.get("/nearby", response_model=List[NearbyUserOut])
def nearby_users(
    request: Request,
    online_only: bool = Query(False),
    with_photos: bool = Query(False),
    min_age: Optional[int] = Query(None),
    max_age: Optional[int] = Query(None),
    interests: Optional[List[str]] = Query(None),
    include_self: bool = Query(False),
    latitude: Optional[float] = Query(None),
    longitude: Optional[float] = Query(None),
    max_distance_miles: Optional[float] = Query(None),
    location_name: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    filters = DiscoveryFilters(
        online_only=online_only,
        with_photos=with_photos,
        min_age=min_age,
        max_age=max_age,
        interests=interests or [],
        include_self=include_self,
        latitude=latitude,
        longitude=longitude,
        max_distance_miles=max_distance_miles,
        location_name=location_name,
        limit=limit,
        offset=offset,
    )
    base = public_base_url(request)
    out = []
    for item in get_nearby_users(db, current_user, filters, utc_now()):
        u, p = item.user, item.profile
        keys = list(p.photo_keys or [])
        visible_online = bool(u.is_online and u.show_online_status) or item.is_self
        out.append({
            "id": u.id,
            "name": get_display_name(display_name=p.display_name or "", name=u.name, user_id=u.id),
            "display_name": p.display_name,
            "image_url": u.image_url,
            "photo_url": storage_url(keys[0], base) if keys else None,
            "age": p.age,
            "bio": p.bio,
            "interests": list(p.interests or []),
            "location_name": p.location_name,
            "distance_miles": round(item.distance_miles, 1) if item.distance_miles is not None else None,
            "is_online": visible_online,
            "last_active": u.last_active if u.show_online_status or item.is_self else None,
            "is_self": item.is_self,
        })
    return out


@router.get("/search", response_model=List[PublicUserOut])
def search_users(
    q: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return users_service.search_users(db, current_user, q, limit)


# ===== Ленты главной ===========================================================

@router.get("/new", response_model=List[NewProfileOut])
def new_profiles(
    request: Request,
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    base = public_base_url(request)
    return [
        {**users_service.user_card(u, p, base), "created_at": u.created_at}
        for u, p in get_new_profiles(db, current_user, utc_now(), limit)
    ]


@router.get("/recommended", response_model=List[RecommendedProfileOut])
def recommended_profiles(
    request: Request,
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    base = public_base_url(request)
    return [
        {**users_service.user_card(u, p, base), "interests": list(p.interests or [])}
        for u, p in get_recommended_profiles(db, current_user, utc_now(), limit)
    ]


# ===== Избранное и дневные лимиты ==============================================

@router.get("/me/favorites", response_model=List[FavoriteUserOut])
def my_favorite_users(request: Request, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    base = public_base_url(request)
    return [
        {"user": users_service.user_card(u, p, base), "favorited_at": fav.favorited_at}
        for fav, u, p in users_service.list_favorite_users(db, current_user)
    ]


@router.get("/me/daily-limits", response_model=DailyLimitsOut)
def my_daily_limits(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return admirers.daily_limits(db, current_user, utc_now())


# ===== Блокировки ==============================================================

@router.get("/blocked", response_model=List[BlockedUserOut])
def list_blocked_users(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [
        {"id": u.id, "name": u.name, "image_url": u.image_url, "blocked_at": row.blocked_at}
        for row, u in blocks.list_blocked(db, current_user.id)
    ]


@router.post("/{user_id}/block")
def block(user_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    blocks.block_user(db, current_user, user_id, utc_now())
    db.commit()
    return {"success": True}


@router.delete("/{user_id}/block")
def unblock(user_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    removed = blocks.unblock_user(db, current_user, user_id)
    db.commit()
    return {"success": removed}


@router.post("/{user_id}/report")
def report(
    user_id: int,
    payload: ReportUserIn,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = reports.report_user(db, current_user, user_id, payload.reason, utc_now(), payload.details)
    db.commit()
    return {"success": True, "report_id": row.id}


# ===== Чужой профиль ===========================================================

@router.get("/{user_id}", response_model=PublicUserOut)
def get_user(user_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if blocks.is_blocked_between(db, current_user.id, user_id):
        raise NotFound("user_not_found", "User not found")
    user = users_service.get_user(db, user_id)
    return {
        "id": user.id,
        "name": user.name,
        "image_url": user.image_url,
        "is_online": bool(user.is_online and user.show_online_status),
    }


@router.get("/{user_id}/profile", response_model=ProfileOut)
def get_user_profile(
    user_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Чужая анкета; просмотр записывается и тратит дневной лимит free."""
    if blocks.is_blocked_between(db, current_user.id, user_id):
        raise NotFound("user_not_found", "User not found")
    profile = users_service.get_profile(db, user_id)
    admirers.record_profile_view(db, current_user, user_id, utc_now())
    db.commit()
    return _profile_out(profile, public_base_url(request))


@router.get("/{user_id}/can-view", response_model=CanViewProfileOut)
def can_view_profile(user_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return admirers.can_view_profile(db, current_user, user_id, utc_now())


@router.get("/{user_id}/favorite", response_model=FavoriteStatusOut)
def favorite_status(user_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"is_favorite": users_service.is_favorite_user(db, current_user.id, user_id)}


@router.post("/{user_id}/favorite", response_model=FavoriteStatusOut)
def add_favorite(user_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    users_service.add_favorite_user(db, current_user, user_id, utc_now())
    db.commit()
    return {"is_favorite": True}


@router.delete("/{user_id}/favorite", response_model=FavoriteStatusOut)
def remove_favorite(user_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    users_service.remove_favorite_user(db, current_user, user_id)
    db.commit()
    return {"is_favorite": False}

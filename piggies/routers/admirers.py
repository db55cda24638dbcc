# piggies/routers/admirers.py
# -----------------------------------------------------------------------------
# "Поклонники": взмахи, гости анкеты и сводка.
# Просмотры анкет записывает GET /api/users/{user_id}/profile.
# -----------------------------------------------------------------------------

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from piggies.db import get_db
from piggies.models.user import User
from piggies.schemas.admirers import AdmirerListOut, AdmirersStatsOut, WaveResultOut, WaveStatusOut
from piggies.services import admirers
from piggies.services.users import profiles_by_user_id, user_card
from piggies.utils.auth_dep import get_current_user
from piggies.utils.dates import utc_now
from piggies.utils.media import public_base_url

router = APIRouter()


def _with_cards(db: Session, listing: dict, base: str) -> dict:
    ids = [item["user_id"] for item in listing["items"]]
    users = {u.id: u for u in db.query(User).filter(User.id.in_(ids)).all()} if ids else {}
    profiles = profiles_by_user_id(db, ids)
    return {
        "items": [
            {"user": user_card(users[item["user_id"]], profiles.get(item["user_id"]), base), "at": item["at"]}
            for item in listing["items"] if item["user_id"] in users
        ],
        "total_count": listing["total_count"],
        "has_more": listing["has_more"],
    }


# ===== Взмахи ==================================================================

@router.post("/waves/{user_id}", response_model=WaveResultOut)
def wave(user_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    _, already = admirers.send_wave(db, current_user, user_id, utc_now())
    db.commit()
    return {"success": True, "already_waved": already}


@router.get("/waves/{user_id}/status", response_model=WaveStatusOut)
def wave_status(user_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"has_waved": admirers.has_waved_at(db, current_user.id, user_id)}


@router.get("/waves", response_model=AdmirerListOut)
def my_waves(
    request: Request,
    limit: Optional[int] = Query(None, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    listing = admirers.list_my_waves(db, current_user, utc_now(), limit)
    return _with_cards(db, listing, public_base_url(request))


# ===== Гости анкеты ============================================================

@router.get("/viewers", response_model=AdmirerListOut)
def my_viewers(
    request: Request,
    limit: Optional[int] = Query(None, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    listing = admirers.list_profile_viewers(db, current_user, utc_now(), limit)
    return _with_cards(db, listing, public_base_url(request))


@router.get("/stats", response_model=AdmirersStatsOut)
def stats(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return admirers.admirers_stats(db, current_user, utc_now())

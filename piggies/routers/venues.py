# piggies/routers/venues.py
# -----------------------------------------------------------------------------
# Каталог мест: поиск рядом, предложение нового места, избранное, жалобы.
# Модерация каталога - routers/admin_venues.py.
# -----------------------------------------------------------------------------

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from piggies.db import get_db
from piggies.models.user import User
from piggies.schemas.venue import (
    VenueIn, VenueOut, NearbyVenueOut, CanSubmitVenueOut, VenueReportIn, FavoriteToggleOut,
)
from piggies.services import venues
from piggies.utils.auth_dep import get_current_user
from piggies.utils.dates import utc_now

router = APIRouter()


@router.get("/", response_model=List[NearbyVenueOut])
def nearby(
    latitude: Optional[float] = Query(None),
    longitude: Optional[float] = Query(None),
    max_distance_miles: Optional[float] = Query(None, gt=0),
    category: Optional[str] = Query(None),
    features: Optional[List[str]] = Query(None),
    search: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = venues.get_nearby_venues(
        db, latitude=latitude, longitude=longitude, max_distance_miles=max_distance_miles,
        category=category, features=features, search=search, city=city, limit=limit,
    )
    favorites = venues.favorite_ids_for(db, current_user.id)
    return [
        {
            "venue": v,
            "distance_miles": round(dist, 1) if dist is not None else None,
            "is_favorite": v.id in favorites,
        }
        for v, dist in rows
    ]


@router.get("/can-submit", response_model=CanSubmitVenueOut)
def can_submit(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return venues.can_submit_venue(db, current_user, utc_now())


@router.post("/", response_model=VenueOut)
def submit(payload: VenueIn, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    venue = venues.submit_venue(db, current_user, payload.model_dump(), utc_now())
    db.commit()
    db.refresh(venue)
    return venue


@router.get("/mine", response_model=List[VenueOut])
def my_submissions(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return venues.list_my_submissions(db, current_user)


@router.get("/favorites", response_model=List[VenueOut])
def favorites(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return venues.list_favorites(db, current_user)


@router.post("/{venue_id}/favorite", response_model=FavoriteToggleOut)
def toggle_favorite(venue_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    is_favorite = venues.toggle_favorite(db, current_user, venue_id, utc_now())
    db.commit()
    venue = venues.get_venue(db, venue_id)
    return {"venue_id": venue.id, "is_favorite": is_favorite, "favorite_count": venue.favorite_count}


@router.post("/{venue_id}/view")
def record_view(venue_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    venues.view_venue(db, venue_id, current_user)
    count = venues.record_view(db, venue_id)
    db.commit()
    return {"view_count": count}


@router.post("/{venue_id}/report")
def report(
    venue_id: int,
    payload: VenueReportIn,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = venues.report_venue(db, current_user, venue_id, payload.reason, utc_now(), payload.details)
    db.commit()
    return {"success": True, "report_id": row.id}


@router.get("/{venue_id}", response_model=VenueOut)
def get_venue(venue_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return venues.view_venue(db, venue_id, current_user)

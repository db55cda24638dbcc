# piggies/routers/admin_venues.py
# Модерация каталога мест: очередь на одобрение, правка, жалобы.

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from piggies.db import get_db
from piggies.models.user import User
from piggies.schemas.venue import VenueIn, VenueUpdate, VenueOut, VenueReportOut, RejectIn, ResolveReportIn
from piggies.services import venues
from piggies.utils.auth_dep import get_current_admin
from piggies.utils.dates import utc_now

router = APIRouter()


@router.get("/", response_model=List[VenueOut])
def list_venues(
    status: Optional[str] = Query(None),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return venues.list_venues(db, admin, status)


@router.post("/", response_model=VenueOut)
def create_venue(payload: VenueIn, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    venue = venues.admin_create_venue(db, admin, payload.model_dump(), utc_now())
    db.commit()
    db.refresh(venue)
    return venue


# ----- жалобы на места -----

@router.get("/reports", response_model=List[VenueReportOut])
def list_reports(
    status: Optional[str] = Query("pending"),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return venues.list_venue_reports(db, admin, status)


@router.post("/reports/{report_id}/resolve", response_model=VenueReportOut)
def resolve_report(
    report_id: int,
    payload: ResolveReportIn,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    report = venues.resolve_venue_report(db, admin, report_id, payload.action, utc_now())
    db.commit()
    db.refresh(report)
    return report


# ----- конкретное место -----

@router.patch("/{venue_id}", response_model=VenueOut)
def update_venue(venue_id: int, payload: VenueUpdate, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    venue = venues.admin_update_venue(db, admin, venue_id, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(venue)
    return venue


@router.delete("/{venue_id}")
def delete_venue(venue_id: int, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    venues.admin_delete_venue(db, admin, venue_id)
    db.commit()
    return {"success": True}


@router.post("/{venue_id}/approve", response_model=VenueOut)
def approve(venue_id: int, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    venue = venues.approve_venue(db, admin, venue_id, utc_now())
    db.commit()
    db.refresh(venue)
    return venue


@router.post("/{venue_id}/reject", response_model=VenueOut)
def reject(venue_id: int, payload: RejectIn, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    venue = venues.reject_venue(db, admin, venue_id, utc_now(), payload.reason)
    db.commit()
    db.refresh(venue)
    return venue


@router.post("/{venue_id}/restore", response_model=VenueOut)
def restore(venue_id: int, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    venue = venues.restore_venue(db, admin, venue_id, utc_now())
    db.commit()
    db.refresh(venue)
    return venue

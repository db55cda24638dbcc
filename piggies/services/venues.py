# piggies/services/venues.py
# -----------------------------------------------------------------------------
# Каталог мест сообщества.
#
# Статусы: pending -> approved | rejected; approved -> flagged (3 жалобы);
# flagged -> approved (восстановление админом или все жалобы отклонены)
#         -> rejected (жалоба удовлетворена с удалением места).
# Free: 1 предложение места за 7 дней и до 10 избранных.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Set

from sqlalchemy import func
from sqlalchemy.orm import Session

from piggies.models.user import User
from piggies.models.venue import (
    Venue, VenueFavorite, VenueReport,
    VENUE_CATEGORIES, VENUE_STATUSES, VENUE_REPORT_REASONS,
)
from piggies.services.errors import InvalidState, NotFound, PermissionDenied, ValidationFailed
from piggies.services.events import log_event, VENUE_STATUS_CHANGED
from piggies.services.geocoding import geocode_address
from piggies.services.moderation import require_admin, require_not_moderated
from piggies.services.tiers import is_ultra, FREE_MAX_VENUE_FAVORITES, FREE_VENUE_SUBMISSIONS_PER_WEEK
from piggies.utils.geo import distance_or_none

log = logging.getLogger(__name__)

REPORTS_TO_AUTO_FLAG = 3
SUBMISSION_WINDOW = timedelta(days=7)
DEFAULT_MAX_DISTANCE_MILES = 50.0
EDITABLE_FIELDS = (
    "name", "description", "category", "latitude", "longitude", "address", "city", "state",
    "country", "phone", "website", "instagram", "features", "hours_note",
)


def get_venue(db: Session, venue_id: int) -> Venue:
    venue = db.query(Venue).filter(Venue.id == venue_id).first()
    if not venue:
        raise NotFound("venue_not_found", "Venue not found")
    return venue


def _set_status(db: Session, venue: Venue, status: str, actor: Optional[User], now: datetime, **extra) -> None:
    previous = venue.status
    venue.status = status
    if actor is not None:
        venue.reviewed_by = actor.id
        venue.reviewed_at = now
    log_event(
        db, type=VENUE_STATUS_CHANGED, actor_id=actor.id if actor else None,
        data={"venue_id": venue.id, "from": previous, "to": status, **extra},
    )


def _validate_fields(data: dict) -> None:
    if "category" in data and data["category"] not in VENUE_CATEGORIES:
        raise ValidationFailed("invalid_category", f"category must be one of {VENUE_CATEGORIES}")
    for name in ("name", "address", "city", "country"):
        if name in data and not (data[name] or "").strip():
            raise ValidationFailed(f"{name}_required", f"{name} is required")


# ===== Предложение места =======================================================

def submissions_this_week(db: Session, user_id: int, now: datetime) -> int:
    return db.query(func.count(Venue.id)).filter(
        Venue.submitted_by == user_id,
        Venue.submitted_at >= now - SUBMISSION_WINDOW,
    ).scalar() or 0


def can_submit_venue(db: Session, user: User, now: datetime) -> dict:
    if is_ultra(user, now):
        return {"can_submit": True, "submissions_this_week": submissions_this_week(db, user.id, now),
                "limit": None, "is_ultra": True}
    count = submissions_this_week(db, user.id, now)
    return {
        "can_submit": count < FREE_VENUE_SUBMISSIONS_PER_WEEK,
        "submissions_this_week": count,
        "limit": FREE_VENUE_SUBMISSIONS_PER_WEEK,
        "is_ultra": False,
    }


def submit_venue(db: Session, user: User, data: dict, now: datetime) -> Venue:
    """
    Новое место уходит на модерацию (pending). Без координат адрес
    геокодируется; сбой геокодера -> ValidationFailed("address_not_found").
    """
    require_not_moderated(user, now)
    _validate_fields({k: data.get(k) for k in ("name", "category", "address", "city", "country")})
    if not can_submit_venue(db, user, now)["can_submit"]:
        raise PermissionDenied(
            "venue_submission_limit",
            "Free users can submit 1 venue per week. Upgrade to Ultra for unlimited submissions!",
        )

    lat, lon = data.get("latitude"), data.get("longitude")
    if lat is None or lon is None:
        query = ", ".join(p for p in (data.get("address"), data.get("city"), data.get("state"), data.get("country")) if p)
        point = geocode_address(query)
        lat, lon = point.latitude, point.longitude

    venue = Venue(
        name=data["name"].strip(),
        description=data.get("description"),
        category=data["category"],
        latitude=lat,
        longitude=lon,
        address=data["address"].strip(),
        city=data["city"].strip(),
        state=data.get("state"),
        country=data["country"].strip(),
        phone=data.get("phone"),
        website=data.get("website"),
        instagram=data.get("instagram"),
        features=list(data.get("features") or []),
        hours_note=data.get("hours_note"),
        submitted_by=user.id,
        submitted_at=now,
        status="pending",
        view_count=0,
        favorite_count=0,
    )
    db.add(venue)
    db.flush()
    return venue


def list_my_submissions(db: Session, user: User) -> List[Venue]:
    return (
        db.query(Venue)
        .filter(Venue.submitted_by == user.id)
        .order_by(Venue.submitted_at.desc(), Venue.id.desc())
        .all()
    )


# ===== Поиск и просмотр ========================================================

def get_nearby_venues(
    db: Session,
    *,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    max_distance_miles: Optional[float] = None,
    category: Optional[str] = None,
    features: Optional[List[str]] = None,
    search: Optional[str] = None,
    city: Optional[str] = None,
    limit: int = 50,
) -> List[tuple]:
    """Одобренные места [(venue, distance_miles)], ближайшие первыми."""
    if category is not None and category not in VENUE_CATEGORIES:
        raise ValidationFailed("invalid_category", f"category must be one of {VENUE_CATEGORIES}")
    q = db.query(Venue).filter(Venue.status == "approved")
    if category:
        q = q.filter(Venue.category == category)
    if city:
        q = q.filter(func.lower(Venue.city) == city.strip().lower())

    has_origin = latitude is not None and longitude is not None
    max_distance = max_distance_miles if max_distance_miles is not None else DEFAULT_MAX_DISTANCE_MILES
    term = (search or "").strip().lower()

    out = []
    for v in q.all():
        dist = distance_or_none(latitude, longitude, v.latitude, v.longitude)
        if has_origin and (dist is None or dist > max_distance):
            continue
        if features and not set(v.features or []).intersection(features):
            continue
        if term and not (
            term in v.name.lower() or term in v.city.lower() or term in (v.description or "").lower()
        ):
            continue
        out.append((v, dist))

    out.sort(key=lambda pair: (pair[1] is None, pair[1] or 0.0, pair[0].id))
    return out[:max(1, min(limit, 200))]


def view_venue(db: Session, venue_id: int, viewer: User) -> Venue:
    """Неодобренные места видят только автор и админы."""
    venue = get_venue(db, venue_id)
    if venue.status != "approved" and venue.submitted_by != viewer.id and not viewer.is_admin:
        raise NotFound("venue_not_found", "Venue not found")
    return venue


def record_view(db: Session, venue_id: int) -> int:
    venue = get_venue(db, venue_id)
    venue.view_count = (venue.view_count or 0) + 1
    return venue.view_count


# ===== Избранное ===============================================================

def toggle_favorite(db: Session, user: User, venue_id: int, now: datetime) -> bool:
    """Возвращает новое состояние: True - в избранном."""
    venue = get_venue(db, venue_id)
    existing = (
        db.query(VenueFavorite)
        .filter(VenueFavorite.user_id == user.id, VenueFavorite.venue_id == venue.id)
        .first()
    )
    if existing:
        db.delete(existing)
        venue.favorite_count = max(0, (venue.favorite_count or 0) - 1)
        return False

    if venue.status != "approved":
        raise InvalidState("venue_not_approved", "Only approved venues can be favorited")
    if not is_ultra(user, now):
        count = db.query(func.count(VenueFavorite.id)).filter(VenueFavorite.user_id == user.id).scalar() or 0
        if count >= FREE_MAX_VENUE_FAVORITES:
            raise PermissionDenied(
                "favorite_limit_reached",
                f"Free users can only favorite {FREE_MAX_VENUE_FAVORITES} venues. Upgrade to Ultra for unlimited!",
            )
    db.add(VenueFavorite(user_id=user.id, venue_id=venue.id, favorited_at=now))
    venue.favorite_count = (venue.favorite_count or 0) + 1
    db.flush()
    return True


def favorite_ids_for(db: Session, user_id: int) -> Set[int]:
    return {vid for (vid,) in db.query(VenueFavorite.venue_id).filter(VenueFavorite.user_id == user_id).all()}


def list_favorites(db: Session, user: User) -> List[Venue]:
    return (
        db.query(Venue)
        .join(VenueFavorite, VenueFavorite.venue_id == Venue.id)
        .filter(VenueFavorite.user_id == user.id, Venue.status == "approved")
        .order_by(VenueFavorite.favorited_at.desc())
        .all()
    )


# ===== Жалобы ==================================================================

def _pending_report_count(db: Session, venue_id: int) -> int:
    return db.query(func.count(VenueReport.id)).filter(
        VenueReport.venue_id == venue_id, VenueReport.status == "pending",
    ).scalar() or 0


def report_venue(db: Session, reporter: User, venue_id: int, reason: str, now: datetime,
                 details: Optional[str] = None) -> VenueReport:
    """Одна жалоба от пользователя на место; 3 открытые жалобы -> approved становится flagged."""
    require_not_moderated(reporter, now)
    if reason not in VENUE_REPORT_REASONS:
        raise ValidationFailed("invalid_reason", f"reason must be one of {VENUE_REPORT_REASONS}")
    venue = db.query(Venue).filter(Venue.id == venue_id).with_for_update().first()
    if not venue:
        raise NotFound("venue_not_found", "Venue not found")
    existing = db.query(VenueReport.id).filter(
        VenueReport.venue_id == venue.id, VenueReport.reporter_id == reporter.id,
    ).first()
    if existing:
        raise InvalidState("already_reported", "You have already reported this venue")

    report = VenueReport(
        venue_id=venue.id, reporter_id=reporter.id, reason=reason,
        details=(details or "").strip() or None, reported_at=now, status="pending",
    )
    db.add(report)
    db.flush()

    if venue.status == "approved" and _pending_report_count(db, venue.id) >= REPORTS_TO_AUTO_FLAG:
        _set_status(db, venue, "flagged", None, now, reason="reports")
        log.info("venue %s auto-flagged after %s reports", venue.id, REPORTS_TO_AUTO_FLAG)
    return report


def resolve_venue_report(db: Session, admin: User, report_id: int, action: str, now: datetime) -> VenueReport:
    """
    dismiss - жалоба отклонена; если у flagged-места не осталось открытых
    жалоб, оно возвращается в approved. remove_venue - место -> rejected.
    """
    require_admin(admin)
    if action not in ("dismiss", "remove_venue"):
        raise ValidationFailed("invalid_action", "action must be dismiss or remove_venue")
    report = db.query(VenueReport).filter(VenueReport.id == report_id).first()
    if not report:
        raise NotFound("report_not_found", "Report not found")
    if report.status != "pending":
        raise InvalidState("report_closed", f"Report is already {report.status}")

    report.status = "resolved"
    report.reviewed_by = admin.id
    report.reviewed_at = now
    db.flush()

    venue = get_venue(db, report.venue_id)
    if action == "remove_venue":
        if venue.status != "rejected":
            _set_status(db, venue, "rejected", admin, now, report_id=report.id)
            venue.rejection_reason = f"Removed after report: {report.reason}"
    elif venue.status == "flagged" and _pending_report_count(db, venue.id) == 0:
        _set_status(db, venue, "approved", admin, now, report_id=report.id)
    return report


def list_venue_reports(db: Session, admin: User, status: Optional[str] = "pending") -> List[VenueReport]:
    require_admin(admin)
    q = db.query(VenueReport)
    if status:
        q = q.filter(VenueReport.status == status)
    return q.order_by(VenueReport.reported_at.desc()).all()


# ===== Админка =================================================================

def approve_venue(db: Session, admin: User, venue_id: int, now: datetime) -> Venue:
    require_admin(admin)
    venue = get_venue(db, venue_id)
    if venue.status != "pending":
        raise InvalidState("venue_not_pending", f"Venue is {venue.status}, only pending venues can be approved")
    venue.rejection_reason = None
    _set_status(db, venue, "approved", admin, now)
    return venue


def reject_venue(db: Session, admin: User, venue_id: int, now: datetime, reason: Optional[str] = None) -> Venue:
    require_admin(admin)
    venue = get_venue(db, venue_id)
    if venue.status not in ("pending", "flagged"):
        raise InvalidState("venue_not_reviewable", f"Venue is {venue.status}")
    venue.rejection_reason = (reason or "").strip() or None
    _set_status(db, venue, "rejected", admin, now)
    return venue


def restore_venue(db: Session, admin: User, venue_id: int, now: datetime) -> Venue:
    """flagged -> approved; открытые жалобы закрываются как reviewed."""
    require_admin(admin)
    venue = get_venue(db, venue_id)
    if venue.status != "flagged":
        raise InvalidState("venue_not_flagged", f"Venue is {venue.status}, only flagged venues can be restored")
    db.query(VenueReport).filter(
        VenueReport.venue_id == venue.id, VenueReport.status == "pending",
    ).update(
        {VenueReport.status: "reviewed", VenueReport.reviewed_by: admin.id, VenueReport.reviewed_at: now},
        synchronize_session=False,
    )
    _set_status(db, venue, "approved", admin, now)
    return venue


def admin_create_venue(db: Session, admin: User, data: dict, now: datetime) -> Venue:
    """Созданное админом место сразу approved."""
    require_admin(admin)
    _validate_fields({k: data.get(k) for k in ("name", "category", "address", "city", "country")})
    if data.get("latitude") is None or data.get("longitude") is None:
        query = ", ".join(p for p in (data.get("address"), data.get("city"), data.get("country")) if p)
        point = geocode_address(query)
        data = {**data, "latitude": point.latitude, "longitude": point.longitude}
    venue = Venue(
        **{k: data.get(k) for k in EDITABLE_FIELDS if k != "features"},
        features=list(data.get("features") or []),
        submitted_by=admin.id, submitted_at=now, status="approved",
        reviewed_by=admin.id, reviewed_at=now, view_count=0, favorite_count=0,
    )
    db.add(venue)
    db.flush()
    return venue


def admin_update_venue(db: Session, admin: User, venue_id: int, changes: dict) -> Venue:
    require_admin(admin)
    venue = get_venue(db, venue_id)
    changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
    _validate_fields(changes)
    for k, v in changes.items():
        setattr(venue, k, v)
    return venue


def admin_delete_venue(db: Session, admin: User, venue_id: int) -> bool:
    require_admin(admin)
    venue = get_venue(db, venue_id)
    db.query(VenueFavorite).filter(VenueFavorite.venue_id == venue.id).delete(synchronize_session=False)
    db.query(VenueReport).filter(VenueReport.venue_id == venue.id).delete(synchronize_session=False)
    db.delete(venue)
    return True


def list_venues(db: Session, admin: User, status: Optional[str] = None) -> List[Venue]:
    require_admin(admin)
    if status is not None and status not in VENUE_STATUSES:
        raise ValidationFailed("invalid_status", f"status must be one of {VENUE_STATUSES}")
    q = db.query(Venue)
    if status:
        q = q.filter(Venue.status == status)
    return q.order_by(Venue.submitted_at.desc(), Venue.id.desc()).all()

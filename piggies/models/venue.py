# piggies/models/venue.py
# -----------------------------------------------------------------------------
# Каталог мест сообщества: места, избранное и жалобы на места.
# -----------------------------------------------------------------------------

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, ForeignKey, JSON,
    UniqueConstraint, Index,
)
from piggies.db import Base

VENUE_CATEGORIES = ("bars_nightlife", "adult_venues", "fitness_wellness", "events_social", "health_clinics")
VENUE_STATUSES = ("pending", "approved", "rejected", "flagged")
VENUE_REPORT_REASONS = ("closed_permanently", "incorrect_info", "inappropriate", "duplicate", "other")
VENUE_REPORT_STATUSES = ("pending", "reviewed", "resolved")


class Venue(Base):
    """
    Место, предложенное пользователем.

    status: pending -> approved | rejected; approved -> flagged (по жалобам);
    flagged -> approved (восстановление) | rejected (удаление по жалобе).
    """
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), nullable=False)
    description = Column(String(1000), nullable=True)
    category = Column(String(32), nullable=False)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(String(255), nullable=False)
    city = Column(String(128), nullable=False)
    state = Column(String(128), nullable=True)
    country = Column(String(128), nullable=False)

    phone = Column(String(64), nullable=True)
    website = Column(String(512), nullable=True)
    instagram = Column(String(128), nullable=True)
    features = Column(JSON, nullable=False, default=list)
    hours_note = Column(String(255), nullable=True)

    submitted_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    submitted_at = Column(DateTime, nullable=False)

    status = Column(String(16), nullable=False, default="pending")
    reviewed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    rejection_reason = Column(String, nullable=True)

    view_count = Column(Integer, nullable=False, default=0)
    favorite_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_venues_status", "status"),
        Index("ix_venues_category_status", "category", "status"),
        Index("ix_venues_submitted_by", "submitted_by", "submitted_at"),
        Index("ix_venues_city", "city"),
    )

    def __repr__(self):
        return f"<Venue(id={self.id}, name={self.name}, status={self.status})>"


class VenueFavorite(Base):
    __tablename__ = "venue_favorites"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    venue_id = Column(Integer, ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)
    favorited_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "venue_id", name="uq_venue_favorite"),
        Index("ix_venue_favorites_venue", "venue_id"),
    )


class VenueReport(Base):
    __tablename__ = "venue_reports"

    id = Column(Integer, primary_key=True, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)
    reporter_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    reason = Column(String(32), nullable=False)
    details = Column(String(1000), nullable=True)
    reported_at = Column(DateTime, nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    reviewed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("venue_id", "reporter_id", name="uq_venue_report_once"),
        Index("ix_venue_reports_status", "status"),
    )

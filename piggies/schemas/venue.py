# piggies/schemas/venue.py

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class VenueIn(BaseModel):
    name: str = Field(..., max_length=128)
    description: Optional[str] = Field(None, max_length=1000)
    category: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: str = Field(..., max_length=255)
    city: str = Field(..., max_length=128)
    state: Optional[str] = Field(None, max_length=128)
    country: str = Field(..., max_length=128)
    phone: Optional[str] = Field(None, max_length=64)
    website: Optional[str] = Field(None, max_length=512)
    instagram: Optional[str] = Field(None, max_length=128)
    features: List[str] = []
    hours_note: Optional[str] = Field(None, max_length=255)


class VenueUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=128)
    description: Optional[str] = Field(None, max_length=1000)
    category: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=128)
    state: Optional[str] = Field(None, max_length=128)
    country: Optional[str] = Field(None, max_length=128)
    phone: Optional[str] = Field(None, max_length=64)
    website: Optional[str] = Field(None, max_length=512)
    instagram: Optional[str] = Field(None, max_length=128)
    features: Optional[List[str]] = None
    hours_note: Optional[str] = Field(None, max_length=255)


class VenueOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    category: str
    latitude: float
    longitude: float
    address: str
    city: str
    state: Optional[str] = None
    country: str
    phone: Optional[str] = None
    website: Optional[str] = None
    instagram: Optional[str] = None
    features: List[str] = []
    hours_note: Optional[str] = None
    submitted_by: Optional[int] = None
    submitted_at: datetime
    status: str
    rejection_reason: Optional[str] = None
    view_count: int
    favorite_count: int

    class Config:
        from_attributes = True


class NearbyVenueOut(BaseModel):
    venue: VenueOut
    distance_miles: Optional[float] = None
    is_favorite: bool = False


class CanSubmitVenueOut(BaseModel):
    can_submit: bool
    submissions_this_week: int
    limit: Optional[int] = None
    is_ultra: bool


class VenueReportIn(BaseModel):
    reason: str
    details: Optional[str] = Field(None, max_length=2000)


class VenueReportOut(BaseModel):
    id: int
    venue_id: int
    reporter_id: int
    reason: str
    details: Optional[str] = None
    reported_at: datetime
    status: str
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RejectIn(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ResolveReportIn(BaseModel):
    action: Literal["dismiss", "remove_venue"]


class FavoriteToggleOut(BaseModel):
    venue_id: int
    is_favorite: bool
    favorite_count: int

# piggies/schemas/user.py

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class SessionIn(BaseModel):
    # токен провайдера можно передать в теле вместо заголовка Authorization
    token: Optional[str] = None
    referral_code: Optional[str] = None


class UserOut(BaseModel):
    id: int
    external_id: str
    email: Optional[str] = None
    name: str
    image_url: Optional[str] = None
    last_active: Optional[datetime] = None
    is_online: bool
    subscription_tier: str
    subscription_status: Optional[str] = None
    show_online_status: bool
    hide_from_discovery: bool
    push_notifications_enabled: bool
    referral_code: Optional[str] = None
    referral_credits: int
    referral_ultra_expires_at: Optional[datetime] = None
    is_admin: bool
    is_banned: bool
    banned_reason: Optional[str] = None
    is_suspended: bool
    suspended_until: Optional[datetime] = None
    suspended_reason: Optional[str] = None
    warning_count: int
    created_at: datetime

    class Config:
        from_attributes = True


class SessionOut(BaseModel):
    user: UserOut
    created: bool
    is_ultra: bool
    referral_result: Optional[str] = None


class PublicUserOut(BaseModel):
    id: int
    name: str
    image_url: Optional[str] = None
    is_online: bool = False

    class Config:
        from_attributes = True


class ProfileOut(BaseModel):
    user_id: int
    display_name: Optional[str] = None
    bio: Optional[str] = None
    age: Optional[int] = None
    photo_urls: List[str] = []
    photo_keys: List[str] = []
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_name: Optional[str] = None
    onboarding_complete: bool = False
    looking_for: Optional[str] = None
    interests: List[str] = []


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(None, max_length=64)
    bio: Optional[str] = Field(None, max_length=1000)
    age: Optional[int] = None
    looking_for: Optional[str] = Field(None, max_length=255)
    interests: Optional[List[str]] = None
    onboarding_complete: Optional[bool] = None


class LocationIn(BaseModel):
    latitude: float
    longitude: float
    location_name: Optional[str] = Field(None, max_length=128)


class OnlineIn(BaseModel):
    is_online: bool


class PreferencesIn(BaseModel):
    show_online_status: Optional[bool] = None
    hide_from_discovery: Optional[bool] = None
    push_notifications_enabled: Optional[bool] = None


class PhotoKeyIn(BaseModel):
    storage_key: str


class PhotoOrderIn(BaseModel):
    storage_keys: List[str]


class NearbyUserOut(BaseModel):
    id: int
    name: str
    display_name: Optional[str] = None
    image_url: Optional[str] = None
    photo_url: Optional[str] = None
    age: Optional[int] = None
    bio: Optional[str] = None
    interests: List[str] = []
    location_name: Optional[str] = None
    distance_miles: Optional[float] = None
    is_online: bool
    last_active: Optional[datetime] = None
    is_self: bool = False


class BlockedUserOut(BaseModel):
    id: int
    name: str
    image_url: Optional[str] = None
    blocked_at: datetime


class ReportUserIn(BaseModel):
    reason: str = Field(..., max_length=255)
    details: Optional[str] = Field(None, max_length=2000)


class UserCardOut(BaseModel):
    id: int
    name: str
    image_url: Optional[str] = None
    photo_url: Optional[str] = None
    age: Optional[int] = None
    looking_for: Optional[str] = None
    is_online: bool = False
    last_active: Optional[datetime] = None


class NewProfileOut(UserCardOut):
    created_at: datetime


class RecommendedProfileOut(UserCardOut):
    interests: List[str] = []


class FavoriteUserOut(BaseModel):
    user: UserCardOut
    favorited_at: datetime


class FavoriteStatusOut(BaseModel):
    is_favorite: bool


class CanViewProfileOut(BaseModel):
    can_view: bool
    views_today: int
    limit: Optional[int] = None
    already_viewed: bool


class DailyCounterOut(BaseModel):
    used: int
    limit: Optional[int] = None
    remaining: Optional[int] = None


class DailyLimitsOut(BaseModel):
    profile_views: DailyCounterOut

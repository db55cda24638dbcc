# piggies/schemas/looking_now.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from piggies.schemas.user import UserCardOut


class PostCreate(BaseModel):
    message: str = Field(..., max_length=500)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_name: Optional[str] = Field(None, max_length=128)
    can_host: Optional[bool] = None


class PostUpdate(BaseModel):
    message: Optional[str] = Field(None, max_length=500)
    location_name: Optional[str] = Field(None, max_length=128)
    can_host: Optional[bool] = None


class PostOut(BaseModel):
    id: int
    user_id: int
    message: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_name: Optional[str] = None
    can_host: Optional[bool] = None
    created_at: datetime
    expires_at: datetime
    is_active: bool

    class Config:
        from_attributes = True


class FeedPostOut(BaseModel):
    id: int
    message: str
    location_name: Optional[str] = None
    can_host: Optional[bool] = None
    created_at: datetime
    expires_at: datetime
    user: UserCardOut
    is_own: bool


class PostingStatusOut(BaseModel):
    can_post: bool
    is_ultra: bool
    posts_used_today: int
    daily_limit: Optional[int] = None
    post_duration_hours: int

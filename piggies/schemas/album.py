# piggies/schemas/album.py

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class AlbumCreate(BaseModel):
    name: str = Field(..., max_length=64)
    description: Optional[str] = Field(None, max_length=500)


class AlbumUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=64)
    description: Optional[str] = Field(None, max_length=500)
    cover_photo_id: Optional[int] = None


class AlbumOut(BaseModel):
    id: int
    user_id: int
    name: str
    description: Optional[str] = None
    cover_photo_id: Optional[int] = None
    is_default: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PhotoAdd(BaseModel):
    storage_key: str
    album_id: Optional[int] = None
    caption: Optional[str] = Field(None, max_length=280)


class CaptionIn(BaseModel):
    caption: Optional[str] = Field(None, max_length=280)


class PhotoOrder(BaseModel):
    photo_ids: List[int]


class AlbumPhotoOut(BaseModel):
    id: int
    url: Optional[str] = None
    caption: Optional[str] = None
    order: int
    uploaded_at: datetime


class AlbumViewOut(BaseModel):
    album: AlbumOut
    expires_at: Optional[datetime] = None
    photos: List[AlbumPhotoOut] = []


class ShareIn(BaseModel):
    grantee_id: int
    conversation_id: int
    expires_in: Optional[Literal["24h", "7d"]] = None
    album_id: Optional[int] = None


class RevokeIn(BaseModel):
    grantee_id: int
    album_id: Optional[int] = None


class GrantOut(BaseModel):
    id: int
    album_id: int
    owner_user_id: int
    granted_user_id: int
    conversation_id: Optional[int] = None
    granted_at: datetime
    expires_at: Optional[datetime] = None
    is_revoked: bool

    class Config:
        from_attributes = True


class PersonOut(BaseModel):
    id: int
    name: str
    image_url: Optional[str] = None


class MyShareOut(BaseModel):
    grant: GrantOut
    user: PersonOut


class SharedWithMeOut(BaseModel):
    grant: GrantOut
    album: AlbumOut
    user: PersonOut
    photo_count: int
    preview_url: Optional[str] = None


class SharingStatusOut(BaseModel):
    other_user_id: int
    i_shared: bool
    my_share_expires_at: Optional[datetime] = None
    they_shared: bool
    their_share_expires_at: Optional[datetime] = None
    their_album_ids: List[int] = []

# piggies/schemas/message.py

from datetime import datetime
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field

MessageFormat = Literal["text", "image", "video", "gif", "location", "album_share", "snap"]


class MessageSend(BaseModel):
    content: str = Field("", max_length=5000)
    format: MessageFormat = "text"
    storage_key: Optional[str] = None
    snap_view_mode: Optional[Literal["view_once", "timed"]] = None
    snap_duration: Optional[Literal[5, 10, 30]] = None


class MessageToUser(MessageSend):
    receiver_id: int


class MessageOut(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    format: str
    media_url: Optional[str] = None
    sent_at: datetime
    read_at: Dict[str, str] = {}
    snap_view_mode: Optional[str] = None
    snap_duration: Optional[int] = None
    snap_viewed_at: Optional[datetime] = None
    snap_expired: bool = False


class ConversationOut(BaseModel):
    id: int
    other_user_id: int
    other_user_name: str
    other_user_image_url: Optional[str] = None
    other_user_online: bool = False
    last_message: Optional[MessageOut] = None
    last_message_at: Optional[datetime] = None
    has_unread: bool = False


class SnapViewOut(BaseModel):
    message: MessageOut
    expires_at: Optional[datetime] = None


class ReportMessageIn(BaseModel):
    reason: str = Field(..., max_length=255)
    details: Optional[str] = Field(None, max_length=2000)

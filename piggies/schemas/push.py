# piggies/schemas/push.py

from pydantic import BaseModel, Field


class PushKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscribeIn(BaseModel):
    endpoint: str = Field(..., max_length=1024)
    keys: PushKeys


class PushUnsubscribeIn(BaseModel):
    endpoint: str

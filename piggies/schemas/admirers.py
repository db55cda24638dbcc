# piggies/schemas/admirers.py

from datetime import datetime
from typing import List

from pydantic import BaseModel

from piggies.schemas.user import UserCardOut


class WaveResultOut(BaseModel):
    success: bool
    already_waved: bool


class WaveStatusOut(BaseModel):
    has_waved: bool


class AdmirerOut(BaseModel):
    user: UserCardOut
    at: datetime


class AdmirerListOut(BaseModel):
    items: List[AdmirerOut] = []
    total_count: int
    has_more: bool


class AdmirersStatsOut(BaseModel):
    total_waves: int
    total_viewers: int
    is_ultra: bool
    waves_limit: int
    viewers_limit: int

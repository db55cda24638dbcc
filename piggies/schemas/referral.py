# piggies/schemas/referral.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ReferralStatsOut(BaseModel):
    referral_code: Optional[str] = None
    total_referrals: int
    pending_referrals: int
    activated_referrals: int
    expired_referrals: int
    credits: int
    credits_to_next_reward: int
    referral_ultra_expires_at: Optional[datetime] = None
    referral_ultra_days_remaining: Optional[int] = None
    has_referral_ultra: bool


class ReferralHistoryItem(BaseModel):
    id: int
    referred_user_name: str
    status: str
    created_at: datetime
    activated_at: Optional[datetime] = None
    days_until_activation: Optional[int] = None


class ReferrerOut(BaseModel):
    id: int
    name: str
    image_url: Optional[str] = None


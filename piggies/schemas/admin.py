# piggies/schemas/admin.py
# Ответы админки: сводка и строки списка пользователей.

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class AdminStatsOut(BaseModel):
    total_users: int
    active_users: int
    banned_users: int
    suspended_users: int
    pending_reports: int
    pending_message_reports: int
    total_reports: int
    reports_today: int
    new_users_today: int


class AdminUserRow(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    image_url: Optional[str] = None
    created_at: datetime
    last_active: Optional[datetime] = None
    is_online: bool
    is_admin: bool
    is_banned: bool
    banned_at: Optional[datetime] = None
    banned_reason: Optional[str] = None
    is_suspended: bool
    suspended_until: Optional[datetime] = None
    warning_count: int
    status: str
    subscription_tier: Optional[str] = None
    display_name: Optional[str] = None
    onboarding_complete: bool
    report_count: int


class AdminUserPage(BaseModel):
    users: List[AdminUserRow]
    total: int
    has_more: bool


class AdminUserDetails(AdminUserRow):
    subscription_status: Optional[str] = None
    referral_credits: int = 0
    profile: Optional[Dict[str, Any]] = None
    reports_against_count: int
    reports_made_count: int
    recent_reports: List[Dict[str, Any]] = []

# piggies/schemas/moderation.py
# Схемы модерации: действия админа, апелляции, уведомления, правила, жалобы.

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


# --- Действия над пользователем ---

class WarnIn(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class SuspendIn(BaseModel):
    days: Optional[int] = Field(None, ge=1, le=365)
    until: Optional[datetime] = None
    reason: Optional[str] = Field(None, max_length=2000)


class BanIn(BaseModel):
    reason: str = Field(..., max_length=2000)


class ModerationNotificationOut(BaseModel):
    id: int
    user_id: int
    type: str
    reason: Optional[str] = None
    suspended_until: Optional[datetime] = None
    warning_number: Optional[int] = None
    appeal_id: Optional[int] = None
    created_at: datetime
    read_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StandingOut(BaseModel):
    user_id: int
    status: str
    is_banned: bool
    banned_reason: Optional[str] = None
    is_suspended: bool
    suspended_until: Optional[datetime] = None
    suspended_reason: Optional[str] = None
    warning_count: int


# --- Апелляции ---

class AppealIn(BaseModel):
    appeal_type: Literal["ban", "suspension", "warning"]
    reason: str = Field(..., max_length=2000)
    additional_info: Optional[str] = Field(None, max_length=2000)


class AppealStatusIn(BaseModel):
    status: Literal["under_review", "accepted", "rejected"]
    admin_response: Optional[str] = Field(None, max_length=2000)


class AppealOut(BaseModel):
    id: int
    user_id: int
    appeal_type: str
    reason: str
    additional_info: Optional[str] = None
    submitted_at: datetime
    status: str
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    admin_response: Optional[str] = None
    original_banned_reason: Optional[str] = None
    original_suspended_until: Optional[datetime] = None
    original_warning_count: Optional[int] = None

    class Config:
        from_attributes = True


class CanSubmitAppealOut(BaseModel):
    can_submit: bool
    reason: Optional[str] = None
    existing_appeal_status: Optional[str] = None


# --- Правила авто-эскалации ---

class RuleIn(BaseModel):
    name: str = Field(..., max_length=128)
    description: Optional[str] = None
    enabled: bool = False
    trigger_type: Literal["warning_count", "report_count"]
    threshold: int = Field(..., ge=1)
    action: Literal["warning", "suspension", "ban"]
    suspension_days: Optional[int] = Field(None, ge=1, le=365)


class RuleUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=128)
    description: Optional[str] = None
    enabled: Optional[bool] = None
    trigger_type: Optional[Literal["warning_count", "report_count"]] = None
    threshold: Optional[int] = Field(None, ge=1)
    action: Optional[Literal["warning", "suspension", "ban"]] = None
    suspension_days: Optional[int] = Field(None, ge=1, le=365)


class RuleOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    enabled: bool
    trigger_type: str
    threshold: int
    action: str
    suspension_days: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# --- Жалобы ---

class UserReportOut(BaseModel):
    id: int
    reporter_id: int
    reported_id: int
    reason: str
    details: Optional[str] = None
    reported_at: datetime
    status: str
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    action_taken: Optional[str] = None

    class Config:
        from_attributes = True


class MessageReportOut(BaseModel):
    id: int
    reporter_id: int
    message_id: int
    conversation_id: int
    message_sender_id: int
    reason: str
    details: Optional[str] = None
    reported_at: datetime
    status: str
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    action_taken: Optional[str] = None

    class Config:
        from_attributes = True


class UserReportPage(BaseModel):
    reports: List[UserReportOut]
    total: int
    has_more: bool


class MessageReportPage(BaseModel):
    reports: List[MessageReportOut]
    total: int
    has_more: bool


class ReportStatusIn(BaseModel):
    status: Literal["pending", "reviewed", "resolved", "dismissed"]
    admin_notes: Optional[str] = Field(None, max_length=2000)
    action_taken: Optional[str] = None
    suspension_days: Optional[int] = Field(None, ge=1, le=365)

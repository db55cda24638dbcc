# piggies/routers/admin.py
# -----------------------------------------------------------------------------
# РОУТЕР: Админка
#   • сводка и пользователи (карточка, модерационные действия, права админа)
#   • жалобы на пользователей и сообщения
#   • правила авто-эскалации
#   • апелляции
# Все маршруты требуют is_admin. Push о модерации уходит после commit.
# -----------------------------------------------------------------------------

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from piggies.db import get_db
from piggies.models.user import User
from piggies.schemas.admin import AdminStatsOut, AdminUserPage, AdminUserDetails
from piggies.schemas.moderation import (
    WarnIn, SuspendIn, BanIn, StandingOut, AppealOut, AppealStatusIn, RuleIn, RuleUpdate, RuleOut,
    UserReportOut, MessageReportOut, UserReportPage, MessageReportPage, ReportStatusIn,
)
from piggies.services import admin as admin_service
from piggies.services import moderation, reports
from piggies.services.standing import standing_summary
from piggies.services.users import get_user
from piggies.utils.auth_dep import get_current_admin
from piggies.utils.dates import utc_now
from piggies.utils.media import public_base_url

router = APIRouter()


# ===== Сводка и пользователи ===================================================

@router.get("/stats", response_model=AdminStatsOut)
def stats(admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    return admin_service.get_admin_stats(db, admin, utc_now())


@router.get("/users", response_model=AdminUserPage)
def list_users(
    filter: str = Query("all"),
    search: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return admin_service.list_users(db, admin, utc_now(), filter=filter, search=search, limit=limit, offset=offset)


@router.get("/users/{user_id}", response_model=AdminUserDetails)
def user_details(user_id: int, request: Request, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    return admin_service.get_user_details(db, admin, user_id, utc_now(), public_base_url(request))


@router.post("/users/{user_id}/warn", response_model=StandingOut)
def warn(
    user_id: int,
    payload: WarnIn,
    background: BackgroundTasks,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    now = utc_now()
    note = moderation.warn_user(db, user_id, payload.reason, now, actor=admin)
    db.commit()
    moderation.push_notification(background, db, note)
    return standing_summary(get_user(db, user_id), now)


@router.post("/users/{user_id}/suspend", response_model=StandingOut)
def suspend(
    user_id: int,
    payload: SuspendIn,
    background: BackgroundTasks,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    now = utc_now()
    note = moderation.suspend_user(
        db, admin, user_id, now, days=payload.days, until=payload.until, reason=payload.reason,
    )
    db.commit()
    moderation.push_notification(background, db, note)
    return standing_summary(get_user(db, user_id), now)


@router.post("/users/{user_id}/ban", response_model=StandingOut)
def ban(
    user_id: int,
    payload: BanIn,
    background: BackgroundTasks,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    now = utc_now()
    note = moderation.ban_user(db, admin, user_id, payload.reason, now)
    db.commit()
    moderation.push_notification(background, db, note)
    return standing_summary(get_user(db, user_id), now)


@router.post("/users/{user_id}/unban", response_model=StandingOut)
def unban(user_id: int, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    now = utc_now()
    user = moderation.unban_user(db, admin, user_id, now)
    db.commit()
    db.refresh(user)
    return standing_summary(user, now)


@router.post("/users/{user_id}/unsuspend", response_model=StandingOut)
def unsuspend(user_id: int, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    now = utc_now()
    user = moderation.unsuspend_user(db, admin, user_id, now)
    db.commit()
    db.refresh(user)
    return standing_summary(user, now)


@router.post("/users/{user_id}/clear-warnings", response_model=StandingOut)
def clear_warnings(user_id: int, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    now = utc_now()
    user = moderation.clear_warnings(db, admin, user_id, now)
    db.commit()
    db.refresh(user)
    return standing_summary(user, now)


@router.post("/users/{user_id}/toggle-admin")
def toggle_admin(user_id: int, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    user = admin_service.toggle_admin_status(db, admin, user_id)
    db.commit()
    return {"user_id": user.id, "is_admin": user.is_admin}


# ===== Жалобы ==================================================================

@router.get("/reports/users", response_model=UserReportPage)
def user_reports(
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    page = reports.list_user_reports(db, admin, status, limit, offset)
    return {"reports": page["items"], "total": page["total"], "has_more": page["has_more"]}


@router.patch("/reports/users/{report_id}", response_model=UserReportOut)
def update_user_report(
    report_id: int,
    payload: ReportStatusIn,
    background: BackgroundTasks,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    report, note = reports.update_user_report_status(
        db, admin, report_id, payload.status, utc_now(),
        admin_notes=payload.admin_notes, action_taken=payload.action_taken,
        suspension_days=payload.suspension_days,
    )
    db.commit()
    db.refresh(report)
    moderation.push_notification(background, db, note)
    return report


@router.get("/reports/messages", response_model=MessageReportPage)
def message_reports(
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    page = reports.list_message_reports(db, admin, status, limit, offset)
    return {"reports": page["items"], "total": page["total"], "has_more": page["has_more"]}


@router.patch("/reports/messages/{report_id}", response_model=MessageReportOut)
def update_message_report(
    report_id: int,
    payload: ReportStatusIn,
    background: BackgroundTasks,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    report, note = reports.update_message_report_status(
        db, admin, report_id, payload.status, utc_now(),
        admin_notes=payload.admin_notes, action_taken=payload.action_taken,
        suspension_days=payload.suspension_days,
    )
    db.commit()
    db.refresh(report)
    moderation.push_notification(background, db, note)
    return report


# ===== Правила авто-эскалации ==================================================

@router.get("/rules", response_model=List[RuleOut])
def list_rules(admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    return moderation.list_rules(db, admin)


@router.post("/rules", response_model=RuleOut)
def create_rule(payload: RuleIn, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    rule = moderation.create_rule(db, admin, now=utc_now(), **payload.model_dump())
    db.commit()
    db.refresh(rule)
    return rule


@router.patch("/rules/{rule_id}", response_model=RuleOut)
def update_rule(rule_id: int, payload: RuleUpdate, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    rule = moderation.update_rule(db, admin, rule_id, utc_now(), **payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(rule)
    return rule


@router.delete("/rules/{rule_id}")
def delete_rule(rule_id: int, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    moderation.delete_rule(db, admin, rule_id)
    db.commit()
    return {"success": True}


# ===== Апелляции ===============================================================

@router.get("/appeals", response_model=List[AppealOut])
def list_appeals(
    status: Optional[str] = Query(None),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return moderation.list_appeals(db, admin, status)


@router.patch("/appeals/{appeal_id}", response_model=AppealOut)
def update_appeal(
    appeal_id: int,
    payload: AppealStatusIn,
    background: BackgroundTasks,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """accepted снимает ограничение в той же транзакции, что и смена статуса."""
    appeal = moderation.update_appeal_status(db, admin, appeal_id, payload.status, utc_now(), payload.admin_response)
    db.commit()
    db.refresh(appeal)
    if appeal.status in ("accepted", "rejected"):
        note = moderation.latest_notification(db, appeal.user_id, f"appeal_{appeal.status}")
        moderation.push_notification(background, db, note)
    return appeal

# piggies/routers/moderation.py
# -----------------------------------------------------------------------------
# Сторона пользователя в модерации: уведомления о предупреждениях/приостановках
# и апелляции. Действия админа живут в routers/admin.py.
# -----------------------------------------------------------------------------

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from piggies.db import get_db
from piggies.models.user import User
from piggies.schemas.moderation import AppealIn, AppealOut, CanSubmitAppealOut, ModerationNotificationOut
from piggies.services import moderation
from piggies.utils.auth_dep import get_current_user
from piggies.utils.dates import utc_now

router = APIRouter()


# ===== Уведомления =============================================================

@router.get("/notifications", response_model=List[ModerationNotificationOut])
def list_notifications(
    unread_only: bool = Query(False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return moderation.list_notifications(db, current_user.id, unread_only=unread_only)


@router.post("/notifications/read-all")
def read_all(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    updated = moderation.mark_all_notifications_read(db, current_user.id, utc_now())
    db.commit()
    return {"updated": updated}


@router.post("/notifications/{notification_id}/read", response_model=ModerationNotificationOut)
def read_one(notification_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    note = moderation.mark_notification_read(db, current_user.id, notification_id, utc_now())
    db.commit()
    db.refresh(note)
    return note


# ===== Апелляции ===============================================================

@router.get("/appeals", response_model=List[AppealOut])
def my_appeals(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return moderation.list_user_appeals(db, current_user.id)


@router.get("/appeals/can-submit", response_model=CanSubmitAppealOut)
def can_submit(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return moderation.can_submit_appeal(db, current_user.id)


@router.post("/appeals", response_model=AppealOut)
def submit(payload: AppealIn, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Забаненный или приостановленный пользователь сюда пускается: это его единственный путь."""
    appeal = moderation.submit_appeal(
        db, current_user, payload.appeal_type, payload.reason, utc_now(), payload.additional_info,
    )
    db.commit()
    db.refresh(appeal)
    return appeal


@router.get("/appeals/{appeal_id}", response_model=AppealOut)
def get_appeal(appeal_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return moderation.get_user_appeal(db, current_user, appeal_id)

# piggies/routers/push.py
# Подписки устройств на push-уведомления.

from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from piggies.db import get_db
from piggies.models.user import User
from piggies.schemas.push import PushSubscribeIn, PushUnsubscribeIn
from piggies.services import notifications
from piggies.utils.auth_dep import get_current_user
from piggies.utils.dates import utc_now

router = APIRouter()


@router.post("/subscribe")
def subscribe(
    payload: PushSubscribeIn,
    user_agent: Optional[str] = Header(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sub = notifications.subscribe(
        db, current_user,
        endpoint=payload.endpoint, p256dh=payload.keys.p256dh, auth=payload.keys.auth,
        user_agent=(user_agent or "")[:512] or None, now=utc_now(),
    )
    db.commit()
    return {"success": True, "subscription_id": sub.id}


@router.post("/unsubscribe")
def unsubscribe(payload: PushUnsubscribeIn, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    removed = notifications.unsubscribe(db, current_user, payload.endpoint)
    db.commit()
    return {"success": removed}

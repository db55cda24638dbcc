# piggies/routers/messages.py
# -----------------------------------------------------------------------------
# Диалоги и сообщения, снапы, жалобы на сообщения, медиа отправителя.
# Push получателю ставится в BackgroundTasks после commit.
# Файлы медиа - через GET /{message_id}/media; ссылка на файл снапа есть
# только в ответе POST /{message_id}/snap/view, пока снап открыт.
# -----------------------------------------------------------------------------

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query, Request
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from piggies.db import get_db
from piggies.models.message import Message
from piggies.models.profile import Profile
from piggies.models.user import User
from piggies.schemas.message import (
    MessageSend, MessageToUser, MessageOut, ConversationOut, SnapViewOut, ReportMessageIn,
)
from piggies.services import messaging, moderation, reports, uploads
from piggies.services.errors import NotFound
from piggies.services.notifications import queue_push
from piggies.utils.auth_dep import get_current_user
from piggies.utils.dates import utc_now
from piggies.utils.media import api_url, delete_stored, is_external_url, key_to_local_path, public_base_url
from piggies.utils.user import get_display_name

router = APIRouter()


def _media_url(msg: Message, base: str, reveal_snap: bool) -> Optional[str]:
    key = msg.storage_key
    if not key:
        return None
    if is_external_url(key):
        return key
    if msg.format == "snap" and not reveal_snap:
        return None
    return api_url(f"/api/messages/{msg.id}/media", base)


def _message_out(msg: Message, base: str, now=None, *, reveal_snap: bool = False) -> dict:
    """Ссылка на файл снапа - только при reveal_snap (открытый снап получателя)."""
    return {
        "id": msg.id,
        "conversation_id": msg.conversation_id,
        "sender_id": msg.sender_id,
        "content": msg.content,
        "format": msg.format,
        "media_url": _media_url(msg, base, reveal_snap),
        "sent_at": msg.sent_at,
        "read_at": dict(msg.read_at or {}),
        "snap_view_mode": msg.snap_view_mode,
        "snap_duration": msg.snap_duration,
        "snap_viewed_at": msg.snap_viewed_at,
        "snap_expired": bool(msg.snap_expired) or (msg.format == "snap" and now is not None and messaging.is_snap_expired(msg, now)),
    }


def _sender_name(db: Session, user: User) -> str:
    profile = db.query(Profile).filter(Profile.user_id == user.id).first()
    return get_display_name(
        display_name=profile.display_name if profile else "",
        name=user.name, email=user.email or "", user_id=user.id,
    )


def _after_send(background: BackgroundTasks, db: Session, sender: User, msg: Message, warnings_before: int) -> None:
    recipient_id = msg.conversation.other_participant(sender.id)
    queue_push(background, db, recipient_id, messaging.message_push_payload(msg, _sender_name(db, sender)))
    moderation.push_if_auto_warned(background, db, sender, warnings_before)


# ===== Диалоги =================================================================

@router.get("/conversations", response_model=List[ConversationOut])
def list_conversations(request: Request, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    base = public_base_url(request)
    now = utc_now()
    out = []
    for row in messaging.list_conversations(db, current_user.id):
        conv, other, last = row["conversation"], row["other_user"], row["last_message"]
        out.append({
            "id": conv.id,
            "other_user_id": conv.other_participant(current_user.id),
            "other_user_name": other.name if other else "Unknown",
            "other_user_image_url": other.image_url if other else None,
            "other_user_online": bool(other and other.is_online and other.show_online_status),
            "last_message": _message_out(last, base, now) if last and not last.is_hidden else None,
            "last_message_at": conv.last_message_at,
            "has_unread": row["has_unread"],
        })
    return out


@router.get("/unread-count")
def unread_count(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"count": messaging.unread_conversation_count(db, current_user.id)}


@router.post("/conversations")
def start_conversation(
    user_id: int = Body(..., embed=True),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conv = messaging.get_or_create_conversation(db, current_user.id, user_id, utc_now())
    db.commit()
    return {"conversation_id": conv.id}


@router.get("/conversations/{conversation_id}/messages", response_model=List[MessageOut])
def list_messages(
    conversation_id: int,
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    before_id: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conv = messaging.get_conversation_for(db, conversation_id, current_user.id)
    base = public_base_url(request)
    now = utc_now()
    return [_message_out(m, base, now) for m in messaging.list_messages(db, conv, limit=limit, before_id=before_id)]


@router.post("/conversations/{conversation_id}/messages", response_model=MessageOut)
def send_to_conversation(
    conversation_id: int,
    payload: MessageSend,
    request: Request,
    background: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    now = utc_now()
    warnings_before = current_user.warning_count or 0
    conv = messaging.get_conversation_for(db, conversation_id, current_user.id)
    msg = messaging.send_message(db, current_user, conv, now, **payload.model_dump())
    db.commit()
    db.refresh(msg)
    _after_send(background, db, current_user, msg, warnings_before)
    return _message_out(msg, public_base_url(request), now)


@router.post("/send", response_model=MessageOut)
def send_to_user(
    payload: MessageToUser,
    request: Request,
    background: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    now = utc_now()
    warnings_before = current_user.warning_count or 0
    data = payload.model_dump()
    receiver_id = data.pop("receiver_id")
    msg = messaging.send_message_to_user(db, current_user, receiver_id, now, **data)
    db.commit()
    db.refresh(msg)
    _after_send(background, db, current_user, msg, warnings_before)
    return _message_out(msg, public_base_url(request), now)


@router.post("/conversations/{conversation_id}/read")
def mark_read(conversation_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    conv = messaging.get_conversation_for(db, conversation_id, current_user.id)
    updated = messaging.mark_messages_read(db, conv, current_user.id, utc_now())
    db.commit()
    return {"updated": updated}


# ===== Медиа ===================================================================

@router.get("/media/sent", response_model=List[MessageOut])
def sent_media(
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    base = public_base_url(request)
    return [_message_out(m, base) for m in messaging.list_sent_media(db, current_user.id, limit)]


# ===== Отдельное сообщение =====================================================

@router.post("/{message_id}/snap/view", response_model=SnapViewOut)
def view_snap(
    message_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    now = utc_now()
    msg, expires_at = messaging.view_snap(db, message_id, current_user, now)
    db.commit()
    db.refresh(msg)
    reveal = messaging.can_open_snap_media(msg, current_user.id, now)
    out = _message_out(msg, public_base_url(request), now, reveal_snap=reveal)
    return {"message": out, "expires_at": expires_at}


@router.get("/{message_id}/media")
def message_media(message_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    msg = messaging.message_media(db, message_id, current_user, utc_now())
    path = key_to_local_path(msg.storage_key)
    if path is None or not path.is_file():
        raise NotFound("media_not_found", "Media file not found")
    return FileResponse(path, headers={"Cache-Control": "private, no-store"})


@router.delete("/{message_id}")
def delete_message(message_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    storage_key = messaging.delete_message(db, message_id, current_user)
    released = uploads.release_upload(db, storage_key)
    db.commit()
    if released:
        delete_stored(storage_key)
    return {"success": True}


@router.post("/{message_id}/report")
def report_message(
    message_id: int,
    payload: ReportMessageIn,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = reports.report_message(db, current_user, message_id, payload.reason, utc_now(), payload.details)
    db.commit()
    return {"success": True, "report_id": row.id}

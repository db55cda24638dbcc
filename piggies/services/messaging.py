# piggies/services/messaging.py
# -----------------------------------------------------------------------------
# Диалоги и сообщения.
#   • Один диалог на неупорядоченную пару (user_min < user_max).
#   • Отправитель - участник диалога, не забанен и не приостановлен,
#     пара не заблокирована ни в одну сторону.
#   • Текст проходит проверку контента: "flagged" -> автоматическое
#     предупреждение отправителю, само сообщение доставляется.
#   • Квитанции прочтения - карта {"<user_id>": "<ISO>"} в messages.read_at.
#   • Медиа прикрепляется только из собственных загрузок отправителя и
#     отдаётся маршрутом /api/messages/{id}/media участникам диалога.
#     Файл снапа открыт только получателю и только в окне после просмотра.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from piggies.models.conversation import Conversation
from piggies.models.message import Message, MESSAGE_FORMATS, MEDIA_FORMATS, SNAP_VIEW_MODES, SNAP_DURATIONS
from piggies.models.user import User
from piggies.services.blocks import is_blocked_between
from piggies.services.content_check import ContentChecker, get_content_checker
from piggies.services.errors import InvalidState, NotFound, PermissionDenied, ValidationFailed
from piggies.services.moderation import require_not_moderated, warn_user
from piggies.services.notifications import make_payload
from piggies.services.uploads import require_own_upload
from piggies.utils.media import is_external_url

log = logging.getLogger(__name__)

MAX_CONTENT_LEN = 5000
PUSH_PREVIEW_LEN = 100
# view_once сгорает сразу, файл открыт получателю ещё столько секунд
SNAP_VIEW_ONCE_OPEN_SECONDS = 10


def _sorted_pair(a: int, b: int) -> tuple[int, int]:
    return (a, b) if a < b else (b, a)


# ===== Диалоги =================================================================

def get_or_create_conversation(db: Session, a_id: int, b_id: int, now: datetime) -> Conversation:
    """Ищет диалог пары, создаёт при отсутствии. Второй диалог для пары запрещён uq_conversation_pair."""
    if a_id == b_id:
        raise ValidationFailed("self_conversation", "Cannot start a conversation with yourself")
    lo, hi = _sorted_pair(a_id, b_id)

    conv = db.query(Conversation).filter(Conversation.user_min == lo, Conversation.user_max == hi).first()
    if conv:
        return conv

    found = db.query(User.id).filter(User.id.in_([lo, hi])).count()
    if found != 2:
        raise NotFound("user_not_found", "User not found")

    conv = Conversation(user_min=lo, user_max=hi, created_at=now)
    db.add(conv)
    db.flush()
    return conv


def get_conversation_for(db: Session, conversation_id: int, user_id: int) -> Conversation:
    conv = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if not conv:
        raise NotFound("conversation_not_found", "Conversation not found")
    if user_id not in conv.participant_ids():
        raise PermissionDenied("not_a_participant", "You are not a participant in this conversation")
    return conv


# ===== Отправка ================================================================

def _validate_payload(
    format: str,
    content: str,
    storage_key: Optional[str],
    snap_view_mode: Optional[str],
    snap_duration: Optional[int],
) -> None:
    if format not in MESSAGE_FORMATS:
        raise ValidationFailed("invalid_format", f"format must be one of {MESSAGE_FORMATS}")
    if len(content) > MAX_CONTENT_LEN:
        raise ValidationFailed("content_too_long", f"Message must be at most {MAX_CONTENT_LEN} characters")
    if format == "text" and not content.strip():
        raise ValidationFailed("empty_message", "Message is empty")
    if format in MEDIA_FORMATS and not storage_key:
        raise ValidationFailed("storage_key_required", f"{format} message requires an uploaded file")
    if format == "snap":
        if snap_view_mode not in SNAP_VIEW_MODES:
            raise ValidationFailed("invalid_snap_mode", f"snap_view_mode must be one of {SNAP_VIEW_MODES}")
        if snap_view_mode == "timed" and snap_duration not in SNAP_DURATIONS:
            raise ValidationFailed("invalid_snap_duration", f"snap_duration must be one of {SNAP_DURATIONS}")


def send_message(
    db: Session,
    sender: User,
    conversation: Conversation,
    now: datetime,
    *,
    content: str = "",
    format: str = "text",
    storage_key: Optional[str] = None,
    snap_view_mode: Optional[str] = None,
    snap_duration: Optional[int] = None,
    checker: Optional[ContentChecker] = None,
) -> Message:
    require_not_moderated(sender, now)
    if sender.id not in conversation.participant_ids():
        raise PermissionDenied("not_a_participant", "You are not a participant in this conversation")
    recipient_id = conversation.other_participant(sender.id)
    if is_blocked_between(db, sender.id, recipient_id):
        raise PermissionDenied("blocked", "You cannot message this user")

    content = content or ""
    _validate_payload(format, content, storage_key, snap_view_mode, snap_duration)
    if storage_key and not (format == "gif" and is_external_url(storage_key)):
        require_own_upload(db, sender, storage_key, ("snaps",) if format == "snap" else ("messages",))

    msg = Message(
        conversation_id=conversation.id,
        sender_id=sender.id,
        content=content,
        format=format,
        storage_key=storage_key,
        sent_at=now,
        read_at={},
        snap_view_mode=snap_view_mode if format == "snap" else None,
        snap_duration=snap_duration if format == "snap" and snap_view_mode == "timed" else None,
    )
    db.add(msg)
    db.flush()

    conversation.last_message_id = msg.id
    conversation.last_message_at = now

    if format == "text":
        verdict = (checker or get_content_checker()).check(content)
        if verdict.flagged:
            log.info("content check flagged message %s from user %s", msg.id, sender.id)
            warn_user(db, sender.id, verdict.reason, now)

    return msg


def send_message_to_user(db: Session, sender: User, receiver_id: int, now: datetime, **kwargs) -> Message:
    require_not_moderated(sender, now)
    conv = get_or_create_conversation(db, sender.id, receiver_id, now)
    return send_message(db, sender, conv, now, **kwargs)


_PUSH_BODIES = {
    "image": "Sent you a photo",
    "video": "Sent you a video",
    "gif": "Sent you a GIF",
    "location": "Shared a location",
    "album_share": "Shared an album with you",
    "snap": "Sent you a snap",
}


def message_push_payload(msg: Message, sender_name: str) -> dict:
    body = msg.content[:PUSH_PREVIEW_LEN] if msg.format == "text" else _PUSH_BODIES.get(msg.format, "Sent you a message")
    return make_payload(
        sender_name or "New Message", body,
        kind="message",
        url=f"/messages?conversation={msg.conversation_id}",
        conversation_id=msg.conversation_id,
        sender_id=msg.sender_id,
    )


# ===== Чтение ==================================================================

def list_messages(
    db: Session,
    conversation: Conversation,
    *,
    limit: int = 50,
    before_id: Optional[int] = None,
) -> List[Message]:
    """Последние limit сообщений (скрытые админом не показываем), по возрастанию времени."""
    q = db.query(Message).filter(Message.conversation_id == conversation.id, Message.is_hidden.is_(False))
    if before_id is not None:
        q = q.filter(Message.id < before_id)
    rows = q.order_by(Message.sent_at.desc(), Message.id.desc()).limit(max(1, min(limit, 200))).all()
    return list(reversed(rows))


def _has_unread(db: Session, conversation_id: int, user_id: int) -> bool:
    rows = (
        db.query(Message.read_at)
        .filter(
            Message.conversation_id == conversation_id,
            Message.sender_id != user_id,
            Message.is_hidden.is_(False),
        )
        .all()
    )
    key = str(user_id)
    return any(key not in (read_at or {}) for (read_at,) in rows)


def list_conversations(db: Session, user_id: int) -> List[dict]:
    convs = (
        db.query(Conversation)
        .filter(or_(Conversation.user_min == user_id, Conversation.user_max == user_id))
        .order_by(Conversation.last_message_at.desc(), Conversation.id.desc())
        .all()
    )
    out = []
    for c in convs:
        other = db.query(User).filter(User.id == c.other_participant(user_id)).first()
        last = db.query(Message).filter(Message.id == c.last_message_id).first() if c.last_message_id else None
        out.append({
            "conversation": c,
            "other_user": other,
            "last_message": last,
            "has_unread": _has_unread(db, c.id, user_id),
        })
    return out


def unread_conversation_count(db: Session, user_id: int) -> int:
    ids = [
        cid for (cid,) in db.query(Conversation.id)
        .filter(or_(Conversation.user_min == user_id, Conversation.user_max == user_id))
        .all()
    ]
    return sum(1 for cid in ids if _has_unread(db, cid, user_id))


def mark_messages_read(db: Session, conversation: Conversation, user_id: int, now: datetime) -> int:
    """Ставит квитанции на все чужие непрочитанные сообщения. Возвращает количество."""
    if user_id not in conversation.participant_ids():
        raise PermissionDenied("not_a_participant", "You are not a participant in this conversation")
    key = str(user_id)
    stamp = now.isoformat()
    updated = 0
    rows = (
        db.query(Message)
        .filter(Message.conversation_id == conversation.id, Message.sender_id != user_id)
        .all()
    )
    for m in rows:
        current = m.read_at or {}
        if key in current:
            continue
        # новый dict, чтобы SQLAlchemy увидел изменение JSON-колонки
        m.read_at = {**current, key: stamp}
        updated += 1
    return updated


# ===== Снапы ===================================================================

def snap_expires_at(msg: Message) -> Optional[datetime]:
    if msg.snap_viewed_at is None:
        return None
    if msg.snap_view_mode == "view_once":
        return msg.snap_viewed_at
    return msg.snap_viewed_at + timedelta(seconds=msg.snap_duration or 0)


def is_snap_expired(msg: Message, now: datetime) -> bool:
    if msg.snap_expired:
        return True
    expires_at = snap_expires_at(msg)
    return expires_at is not None and now >= expires_at


def view_snap(db: Session, message_id: int, viewer: User, now: datetime) -> Tuple[Message, Optional[datetime]]:
    """
    Открывает снап. Смотреть может только получатель.
    view_once сгорает в момент просмотра, timed - через snap_duration секунд.
    Возвращает (сообщение, момент исчезновения).
    """
    msg = db.query(Message).filter(Message.id == message_id).with_for_update().first()
    if not msg or msg.is_hidden:
        raise NotFound("message_not_found", "Message not found")
    if msg.format != "snap":
        raise ValidationFailed("not_a_snap", "Message is not a snap")
    conv = get_conversation_for(db, msg.conversation_id, viewer.id)
    if msg.sender_id == viewer.id:
        raise PermissionDenied("snap_sender", "Only the recipient can open a snap")

    if msg.snap_viewed_at is not None:
        if is_snap_expired(msg, now):
            raise InvalidState("snap_expired", "This snap has expired")
        # timed-снап можно досмотреть до конца таймера
        return msg, snap_expires_at(msg)

    if msg.snap_expired:
        raise InvalidState("snap_expired", "This snap has expired")

    msg.snap_viewed_at = now
    msg.read_at = {**(msg.read_at or {}), str(viewer.id): now.isoformat()}
    if msg.snap_view_mode == "view_once":
        msg.snap_expired = True
    log.debug("snap %s opened in conversation %s", msg.id, conv.id)
    return msg, snap_expires_at(msg)


def snap_media_open_until(msg: Message) -> Optional[datetime]:
    """До какого момента получатель может загрузить файл открытого снапа."""
    if msg.snap_viewed_at is None:
        return None
    if msg.snap_view_mode == "view_once":
        return msg.snap_viewed_at + timedelta(seconds=SNAP_VIEW_ONCE_OPEN_SECONDS)
    return snap_expires_at(msg)


def can_open_snap_media(msg: Message, viewer_id: int, now: datetime) -> bool:
    if msg.format != "snap" or msg.sender_id == viewer_id:
        return False
    until = snap_media_open_until(msg)
    return until is not None and now < until


# ===== Файлы медиа =============================================================

def message_media(db: Session, message_id: int, viewer: User, now: datetime) -> Message:
    """
    Сообщение, чей файл можно отдать viewer: участник диалога, сообщение не
    скрыто, медиа лежит в нашем хранилище. Снап - только получателю в окне
    после POST /{id}/snap/view.
    """
    msg = db.query(Message).filter(Message.id == message_id).first()
    if not msg or msg.is_hidden:
        raise NotFound("message_not_found", "Message not found")
    get_conversation_for(db, msg.conversation_id, viewer.id)
    if not msg.storage_key or is_external_url(msg.storage_key):
        raise NotFound("media_not_found", "Message has no stored media")
    if msg.format == "snap" and not can_open_snap_media(msg, viewer.id, now):
        raise PermissionDenied("snap_not_open", "Open the snap to view its media")
    return msg


# ===== Медиа отправителя =======================================================

def list_sent_media(db: Session, user_id: int, limit: int = 20) -> List[Message]:
    return (
        db.query(Message)
        .filter(
            Message.sender_id == user_id,
            Message.format.in_(("image", "video")),
            Message.storage_key.is_not(None),
        )
        .order_by(Message.sent_at.desc(), Message.id.desc())
        .limit(max(1, min(limit, 100)))
        .all()
    )


def delete_message(db: Session, message_id: int, user: User) -> Optional[str]:
    """
    Удаляет своё сообщение. Возвращает ключ медиа, который роутер удалит
    из хранилища после commit.
    """
    msg = db.query(Message).filter(Message.id == message_id).first()
    if not msg:
        raise NotFound("message_not_found", "Message not found")
    if msg.sender_id != user.id:
        raise PermissionDenied("not_message_owner", "You can only delete your own messages")

    conv = db.query(Conversation).filter(Conversation.id == msg.conversation_id).first()
    storage_key = msg.storage_key
    db.delete(msg)
    db.flush()

    if conv is not None and conv.last_message_id == message_id:
        prev = (
            db.query(Message)
            .filter(Message.conversation_id == conv.id)
            .order_by(Message.sent_at.desc(), Message.id.desc())
            .first()
        )
        conv.last_message_id = prev.id if prev else None
        conv.last_message_at = prev.sent_at if prev else None
    return storage_key

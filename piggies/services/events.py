# piggies/services/events.py
from __future__ import annotations
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from piggies.models.event import Event

# Типы событий аудита
USER_WARNED = "user_warned"
USER_SUSPENDED = "user_suspended"
USER_UNSUSPENDED = "user_unsuspended"
USER_BANNED = "user_banned"
USER_UNBANNED = "user_unbanned"
WARNINGS_CLEARED = "warnings_cleared"
ADMIN_STATUS_CHANGED = "admin_status_changed"

APPEAL_SUBMITTED = "appeal_submitted"
APPEAL_STATUS_CHANGED = "appeal_status_changed"

ALBUM_SHARED = "album_shared"
ALBUM_ACCESS_REVOKED = "album_access_revoked"

REFERRAL_APPLIED = "referral_applied"
REFERRAL_ACTIVATED = "referral_activated"
REFERRAL_EXPIRED = "referral_expired"
REFERRAL_REWARD_GRANTED = "referral_reward_granted"

MESSAGE_HIDDEN = "message_hidden"
REPORT_REVIEWED = "report_reviewed"

VENUE_STATUS_CHANGED = "venue_status_changed"


def _insert_for(db: Session):
    """Диалектный INSERT с поддержкой ON CONFLICT (PostgreSQL в проде, SQLite в тестах)."""
    dialect = db.get_bind().dialect.name
    return sqlite_insert if dialect == "sqlite" else pg_insert


def log_event(
    db: Session,
    *,
    type: str,
    actor_id: Optional[int],
    target_user_id: Optional[int] = None,
    data: Optional[Dict[str, Any]] = None,
    idempotency_key: Optional[str] = None,
) -> Event:
    """
    Единая точка записи событий. Вызывается в той же транзакции, что и бизнес-операция.
    Не делает commit. Если задан idempotency_key - повтор не создаёт дубль и не даёт IntegrityError.
    """
    payload = {
        "type": type,
        "actor_id": actor_id,
        "target_user_id": target_user_id,
        "data": (data or {}),
        "idempotency_key": idempotency_key,
    }

    if idempotency_key:
        # ON CONFLICT DO NOTHING по уникальному ключу idempotency_key
        insert = _insert_for(db)
        stmt = (
            insert(Event.__table__)
            .values(**payload)
            .on_conflict_do_nothing(index_elements=["idempotency_key"])
        )
        db.execute(stmt)
        return db.query(Event).filter(Event.idempotency_key == idempotency_key).one()

    # без идемпотентности - обычная ORM-вставка
    ev = Event(**payload)
    db.add(ev)
    return ev

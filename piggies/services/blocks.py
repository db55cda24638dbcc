# piggies/services/blocks.py
from __future__ import annotations

from datetime import datetime
from typing import List, Set

from sqlalchemy import or_
from sqlalchemy.orm import Session

from piggies.models.blocked_user import BlockedUser
from piggies.models.user import User
from piggies.services.errors import NotFound, ValidationFailed


def block_user(db: Session, blocker: User, blocked_id: int, now: datetime) -> BlockedUser:
    """Идемпотентно: повторная блокировка возвращает существующую запись."""
    if blocker.id == blocked_id:
        raise ValidationFailed("cannot_block_self", "You cannot block yourself")
    if db.query(User.id).filter(User.id == blocked_id).first() is None:
        raise NotFound("user_not_found", "User not found")

    existing = (
        db.query(BlockedUser)
        .filter(BlockedUser.blocker_id == blocker.id, BlockedUser.blocked_id == blocked_id)
        .first()
    )
    if existing:
        return existing
    row = BlockedUser(blocker_id=blocker.id, blocked_id=blocked_id, blocked_at=now)
    db.add(row)
    db.flush()
    return row


def unblock_user(db: Session, blocker: User, blocked_id: int) -> bool:
    deleted = (
        db.query(BlockedUser)
        .filter(BlockedUser.blocker_id == blocker.id, BlockedUser.blocked_id == blocked_id)
        .delete(synchronize_session=False)
    )
    return deleted > 0


def is_blocked_between(db: Session, a: int, b: int) -> bool:
    """Блок в любую сторону."""
    return db.query(BlockedUser.id).filter(
        or_(
            (BlockedUser.blocker_id == a) & (BlockedUser.blocked_id == b),
            (BlockedUser.blocker_id == b) & (BlockedUser.blocked_id == a),
        )
    ).first() is not None


def blocked_ids_for(db: Session, user_id: int) -> Set[int]:
    """Все, кого я заблокировал, и все, кто заблокировал меня."""
    rows = db.query(BlockedUser.blocker_id, BlockedUser.blocked_id).filter(
        or_(BlockedUser.blocker_id == user_id, BlockedUser.blocked_id == user_id)
    ).all()
    out: Set[int] = set()
    for blocker_id, blocked_id in rows:
        out.add(blocked_id if blocker_id == user_id else blocker_id)
    return out


def list_blocked(db: Session, user_id: int) -> List[tuple]:
    return (
        db.query(BlockedUser, User)
        .join(User, User.id == BlockedUser.blocked_id)
        .filter(BlockedUser.blocker_id == user_id)
        .order_by(BlockedUser.blocked_at.desc())
        .all()
    )

"""
Идемпотентная выдача прав администратора (первый админ выдаётся только так,
дальше - через /api/admin/users/{id}/toggle-admin). Запуск:
  $ python -m piggies.scripts.grant_admin user@example.com
  $ python -m piggies.scripts.grant_admin --revoke user@example.com
Пользователь ищется по email или по external_id (sub провайдера).
"""
from __future__ import annotations

import argparse
import sys

from dotenv import load_dotenv
from sqlalchemy import or_
from sqlalchemy.orm import Session

from piggies.models.user import User
from piggies.services.events import log_event, ADMIN_STATUS_CHANGED

load_dotenv()


def set_admin(db: Session, ident: str, is_admin: bool = True) -> User | None:
    """Возвращает пользователя или None, если не найден. commit - на вызывающем."""
    ident = (ident or "").strip()
    if not ident:
        return None
    user = db.query(User).filter(or_(User.email == ident, User.external_id == ident)).first()
    if user is None:
        return None
    if bool(user.is_admin) != is_admin:
        user.is_admin = is_admin
        log_event(db, type=ADMIN_STATUS_CHANGED, actor_id=None, target_user_id=user.id,
                  data={"is_admin": is_admin, "source": "script"})
    return user


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Grant or revoke Piggies admin rights")
    parser.add_argument("ident", help="email или external_id пользователя")
    parser.add_argument("--revoke", action="store_true", help="снять права вместо выдачи")
    args = parser.parse_args(argv)

    from piggies.db import SessionLocal

    with SessionLocal() as db:
        user = set_admin(db, args.ident, is_admin=not args.revoke)
        if user is None:
            print(f"[ERROR] Пользователь не найден: {args.ident}")
            return 2
        db.commit()
        print(f"OK: user {user.id} is_admin={user.is_admin}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

# piggies/routers/auth.py
"""
Роутер авторизации через провайдера идентификации.
Валидирует токен, создаёт (если нет) или лениво обновляет пользователя и возвращает его.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from piggies.db import get_db
from piggies.schemas.user import SessionIn, SessionOut
from piggies.services.tiers import is_ultra
from piggies.services.users import upsert_user_from_claims
from piggies.utils.dates import utc_now
from piggies.utils.identity_auth import decode_identity_token, token_from_header

router = APIRouter()


@router.post("/session", response_model=SessionOut)
def open_session(
    payload: Optional[SessionIn] = None,
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """
    Точка входа для фронта (/api/auth/session).
    Токен - из заголовка Authorization: Bearer или из тела {"token": ...}.
    referral_code учитывается только при первом входе.
    """
    payload = payload or SessionIn()
    token = token_from_header(authorization) or payload.token
    claims = decode_identity_token(token)

    now = utc_now()
    user, created, referral_result = upsert_user_from_claims(
        db, claims, now, referral_code=payload.referral_code,
    )
    db.commit()
    db.refresh(user)
    return {
        "user": user,
        "created": created,
        "is_ultra": is_ultra(user, now),
        "referral_result": referral_result,
    }

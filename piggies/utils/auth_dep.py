# piggies/utils/auth_dep.py
"""
FastAPI-зависимости авторизации.
- get_current_user: валидирует Bearer-токен и находит уже зарегистрированного пользователя
- get_current_admin: то же + проверка is_admin
Создание пользователя - только через POST /api/auth/session.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from piggies.db import get_db
from piggies.models.user import User
from piggies.utils.identity_auth import decode_identity_token, token_from_header


def get_identity_claims(authorization: Optional[str] = Header(None)) -> dict:
    token = token_from_header(authorization)
    if not token:
        raise HTTPException(
            status_code=401,
            detail={"code": "token_required", "message": "Authorization: Bearer <token> required"},
        )
    return decode_identity_token(token)


def get_current_user(
    claims: dict = Depends(get_identity_claims),
    db: Session = Depends(get_db),
) -> User:
    user: Optional[User] = db.query(User).filter_by(external_id=str(claims["sub"])).first()
    if not user:
        raise HTTPException(status_code=401, detail={"code": "not_registered", "message": "User is not registered"})
    return user


def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(status_code=403, detail={"code": "admin_required", "message": "Admin access required"})
    return current_user

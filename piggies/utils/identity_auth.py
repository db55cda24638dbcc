# piggies/utils/identity_auth.py
"""
Проверка токена провайдера идентификации (подписанный JWT).
Возвращает claims: sub - внешний id пользователя, email / name / picture - профиль.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt

load_dotenv()

IDENTITY_JWT_SECRET = os.environ.get("IDENTITY_JWT_SECRET")
if not IDENTITY_JWT_SECRET:
    raise RuntimeError("IDENTITY_JWT_SECRET is not set")

IDENTITY_JWT_ALGORITHM = os.getenv("IDENTITY_JWT_ALGORITHM", "HS256")
IDENTITY_JWT_AUDIENCE = os.getenv("IDENTITY_JWT_AUDIENCE") or None


def decode_identity_token(token: Optional[str]) -> dict:
    """Проверяет подпись и срок действия; при ошибке - 401 с кодом."""
    if not token:
        raise HTTPException(status_code=401, detail={"code": "token_required", "message": "Identity token is required"})

    options = {"verify_aud": IDENTITY_JWT_AUDIENCE is not None}
    try:
        claims = jwt.decode(
            token,
            IDENTITY_JWT_SECRET,
            algorithms=[IDENTITY_JWT_ALGORITHM],
            audience=IDENTITY_JWT_AUDIENCE,
            options=options,
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail={"code": "token_expired", "message": "Identity token expired"})
    except JWTError as e:
        raise HTTPException(status_code=401, detail={"code": "invalid_token", "message": f"Auth error: {e}"})

    if not claims.get("sub"):
        raise HTTPException(status_code=401, detail={"code": "invalid_token", "message": "Token has no subject"})
    return claims


def token_from_header(authorization: Optional[str]) -> Optional[str]:
    """'Bearer <token>' -> '<token>'."""
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()

# piggies/db.py
# Инициализация SQLAlchemy: движок, сессии, Base и явные импорты моделей.

from __future__ import annotations

import os
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL") or "sqlite:///./piggies.db"

_engine_kwargs = {"pool_pre_ping": True}
if DATABASE_URL.startswith("sqlite"):
    # SQLite (локально и в тестах): пул по умолчанию, без pool_size
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    _engine_kwargs.update(
        pool_size=20,
        max_overflow=20,
        pool_timeout=60,
        pool_recycle=1800,
    )

engine = create_engine(DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

from piggies.models import (  # noqa: E402,F401
    user,
    profile,
    conversation,
    message,
    album,
    referral,
    appeal,
    moderation_notification,
    moderation_rule,
    report,
    blocked_user,
    venue,
    push_subscription,
    event,
    media_upload,
    admirer,
    looking_now,
    favorite_user,
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

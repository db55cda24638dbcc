# tests/conftest.py
# Общие фикстуры: in-memory SQLite, тестовый клиент FastAPI, подмены
# push/проверки контента/геокодера и хелперы для токенов и пользователей.

import os
import tempfile
from datetime import datetime, timedelta

# окружение должно быть готово до импорта piggies.*
os.environ["IDENTITY_JWT_SECRET"] = "test-secret"
os.environ.pop("IDENTITY_JWT_AUDIENCE", None)
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PIGGIES_MEDIA_ROOT"] = tempfile.mkdtemp(prefix="piggies-media-")
os.environ.pop("PUBLIC_BASE_URL", None)
os.environ.pop("PUSH_GATEWAY_URL", None)

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from piggies.db import Base, get_db
from piggies.main import app
from piggies.services.content_check import KeywordContentChecker, set_content_checker
from piggies.services.geocoding import Geocoder, GeocodingError, GeoPoint, set_geocoder
from piggies.services.notifications import PushSender, set_push_sender
from piggies.services.uploads import record_upload
from piggies.services.users import upsert_user_from_claims
from piggies.utils.dates import utc_now
from piggies.utils.identity_auth import IDENTITY_JWT_SECRET

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime(2026, 10, 19, 12, 0, 0)


class RecordingPushSender(PushSender):
    def __init__(self):
        self.sent = []

    def send(self, user_id, payload, subscriptions):
        self.sent.append((user_id, payload))


class FakeGeocoder(Geocoder):
    def __init__(self, known=None):
        self.known = known or {}

    def geocode(self, query):
        for needle, point in self.known.items():
            if needle.lower() in query.lower():
                return point
        raise GeocodingError(f"no results for {query!r}")


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def push_sender():
    sender = RecordingPushSender()
    set_push_sender(sender)
    yield sender
    set_push_sender(None)


@pytest.fixture(autouse=True)
def content_checker():
    checker = KeywordContentChecker(["badword", "scam"])
    set_content_checker(checker)
    yield checker
    set_content_checker(None)


@pytest.fixture(autouse=True)
def geocoder():
    fake = FakeGeocoder({"Castro": GeoPoint(37.7609, -122.4350, "Castro St, San Francisco")})
    set_geocoder(fake)
    yield fake
    set_geocoder(None)


@pytest.fixture
def client(db):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_token(sub, name="Test User", email=None, expires_in=timedelta(hours=1)):
    claims = {"sub": sub, "name": name, "exp": utc_now() + expires_in}
    if email:
        claims["email"] = email
    return jwt.encode(claims, IDENTITY_JWT_SECRET, algorithm="HS256")


def auth_header(sub, **kwargs):
    return {"Authorization": f"Bearer {make_token(sub, **kwargs)}"}


@pytest.fixture
def make_user(db, now):
    """Пользователь с анкетой через тот же путь, что и первый вход."""
    counter = {"n": 0}

    def _make(name=None, *, referral_code=None, profile=None, **fields):
        counter["n"] += 1
        sub = f"ext-{counter['n']}"
        user, _, _ = upsert_user_from_claims(
            db, {"sub": sub, "name": name or f"User {counter['n']}", "email": f"{sub}@example.com"},
            fields.pop("created_at", now), referral_code=referral_code,
        )
        for k, v in fields.items():
            setattr(user, k, v)
        if profile:
            for k, v in profile.items():
                setattr(user_profile(db, user), k, v)
        db.flush()
        return user

    return _make


def user_profile(db, user):
    from piggies.models.profile import Profile
    return db.query(Profile).filter(Profile.user_id == user.id).one()


@pytest.fixture
def uploaded(db, now):
    """Ключ хранилища, записанный за пользователем так же, как после /api/upload/*."""
    def _upload(user, key):
        record_upload(db, user, key, key.split("/", 1)[0], now)
        return key

    return _upload

from datetime import timedelta

from conftest import TestingSessionLocal

from piggies.jobs import referral_sweep
from piggies.models.event import Event
from piggies.models.referral import Referral
from piggies.models.user import User
from piggies.scripts.grant_admin import set_admin
from piggies.services import looking_now


def test_referral_sweep_once_commits_everything(db, now, make_user, monkeypatch):
    referrer = make_user()
    make_user(referral_code=referrer.referral_code)
    suspended = make_user(is_suspended=True, suspended_until=now + timedelta(days=1))
    make_user(referral_ultra_expires_at=now + timedelta(days=2))
    looking_now.create_post(db, make_user(), now, message="Anyone around?")
    db.commit()

    monkeypatch.setattr(referral_sweep, "SessionLocal", TestingSessionLocal)
    summary = referral_sweep.referral_sweep_once(now + timedelta(days=7))

    assert summary["activated_count"] == 1
    assert summary["expired_count"] == 0
    assert summary["referral_ultra_cleared"] == 1
    assert summary["suspensions_cleared"] == 1
    assert summary["looking_now_expired"] == 1

    db.expire_all()
    assert db.query(Referral).one().status == "activated"
    assert db.query(User).filter(User.id == referrer.id).one().referral_credits == 1
    assert db.query(User).filter(User.id == suspended.id).one().is_suspended is False

    again = referral_sweep.referral_sweep_once(now + timedelta(days=8))
    assert again["checked"] == 0
    assert again["suspensions_cleared"] == 0
    assert again["looking_now_expired"] == 0


def test_set_admin_by_email_or_external_id(db, make_user):
    user = make_user()
    assert set_admin(db, user.email) is user
    assert user.is_admin is True
    assert set_admin(db, user.external_id, is_admin=False).is_admin is False
    assert set_admin(db, "missing@example.com") is None
    db.flush()
    assert db.query(Event).filter(Event.type == "admin_status_changed").count() == 2


def test_set_admin_is_idempotent(db, make_user):
    user = make_user(is_admin=True)
    set_admin(db, user.email)
    db.flush()
    assert db.query(Event).filter(Event.type == "admin_status_changed").count() == 0

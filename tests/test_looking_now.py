from datetime import timedelta

import pytest

from piggies.models.looking_now import LookingNowPost
from piggies.services import blocks, looking_now
from piggies.services.errors import InvalidState, NotFound, PermissionDenied, ValidationFailed


def post(db, user, now, message="Drinks tonight?", **kwargs):
    return looking_now.create_post(db, user, now, message=message, **kwargs)


def test_free_post_lives_one_hour_once_a_day(db, now, make_user):
    me = make_user()
    first = post(db, me, now)
    assert first.expires_at == now + timedelta(hours=1)

    status = looking_now.posting_status(db, me, now)
    assert status["can_post"] is False and status["posts_used_today"] == 1
    with pytest.raises(PermissionDenied) as exc:
        post(db, me, now + timedelta(hours=2))
    assert exc.value.code == "daily_post_limit"
    assert first.is_active is True

    tomorrow = now + timedelta(days=1)
    assert looking_now.posting_status(db, me, tomorrow)["can_post"] is True


def test_ultra_posts_unlimited_and_new_post_replaces_old(db, now, make_user):
    me = make_user(subscription_tier="ultra", subscription_status="active")
    first = post(db, me, now)
    second = post(db, me, now + timedelta(minutes=5), "Still looking")

    assert second.expires_at == now + timedelta(minutes=5, hours=4)
    assert first.is_active is False
    assert looking_now.my_active_post(db, me, now + timedelta(minutes=6)).id == second.id
    assert looking_now.posting_status(db, me, now)["daily_limit"] is None


def test_post_validation(db, now, make_user):
    me = make_user()
    with pytest.raises(ValidationFailed):
        post(db, me, now, "   ")
    with pytest.raises(ValidationFailed):
        post(db, me, now, "x" * 501)
    with pytest.raises(ValidationFailed):
        post(db, me, now, latitude=37.7)
    assert db.query(LookingNowPost).count() == 0


def test_flagged_post_warns_author(db, now, make_user):
    me = make_user()
    post(db, me, now, "cheap scam here")
    assert me.warning_count == 1


def test_feed_hides_banned_suspended_blocked_and_expired(db, now, make_user):
    me = make_user("Me")
    visible = make_user("Visible")
    banned, suspended, blocker, old = make_user(), make_user(), make_user(), make_user()
    for author in (visible, banned, suspended, blocker):
        post(db, author, now)
    post(db, old, now - timedelta(hours=2))
    banned.is_banned = True
    suspended.is_suspended, suspended.suspended_until = True, now + timedelta(days=1)
    blocks.block_user(db, blocker, me.id, now)
    mine = post(db, me, now + timedelta(minutes=1))
    db.flush()

    feed = looking_now.list_active_posts(db, me, now + timedelta(minutes=2))
    assert [(row["user"].id, row["is_own"]) for row in feed] == [(me.id, True), (visible.id, False)]
    assert feed[0]["post"].id == mine.id


def test_only_owner_changes_post(db, now, make_user):
    me, other = make_user(), make_user()
    mine = post(db, me, now)
    with pytest.raises(PermissionDenied):
        looking_now.update_post(db, other, mine.id, {"can_host": True}, now)
    with pytest.raises(PermissionDenied):
        looking_now.delete_post(db, other, mine.id)
    with pytest.raises(NotFound):
        looking_now.delete_post(db, me, 9999)

    updated = looking_now.update_post(db, me, mine.id, {"message": "  Changed plans ", "can_host": True}, now)
    assert updated.message == "Changed plans" and updated.can_host is True
    assert updated.expires_at == now + timedelta(hours=1)

    looking_now.delete_post(db, me, mine.id)
    assert looking_now.my_active_post(db, me, now) is None
    with pytest.raises(InvalidState):
        looking_now.update_post(db, me, mine.id, {"can_host": False}, now)


def test_cleanup_deactivates_expired_posts(db, now, make_user):
    old, fresh = make_user(), make_user()
    post(db, old, now - timedelta(hours=3))
    live = post(db, fresh, now - timedelta(minutes=10))

    assert looking_now.cleanup_expired_posts(db, now) == 1
    db.expire_all()
    assert [p.id for p in db.query(LookingNowPost).filter(LookingNowPost.is_active.is_(True))] == [live.id]

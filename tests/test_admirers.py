from datetime import timedelta

import pytest

from piggies.models.admirer import ProfileView
from piggies.services import admirers, blocks
from piggies.services.errors import NotFound, PermissionDenied, ValidationFailed


def test_wave_once_per_pair(db, now, make_user):
    me, crush = make_user("Me"), make_user("Crush")
    _, already = admirers.send_wave(db, me, crush.id, now)
    assert already is False
    _, already = admirers.send_wave(db, me, crush.id, now + timedelta(hours=1))
    assert already is True
    assert admirers.has_waved_at(db, me.id, crush.id)
    assert not admirers.has_waved_at(db, crush.id, me.id)

    with pytest.raises(ValidationFailed):
        admirers.send_wave(db, me, me.id, now)
    with pytest.raises(NotFound):
        admirers.send_wave(db, me, 9999, now)


def test_cannot_wave_across_block_or_at_banned(db, now, make_user):
    me, blocker, banned = make_user(), make_user(), make_user(is_banned=True)
    blocks.block_user(db, blocker, me.id, now)
    with pytest.raises(NotFound):
        admirers.send_wave(db, me, blocker.id, now)
    with pytest.raises(NotFound):
        admirers.send_wave(db, me, banned.id, now)


def test_free_tier_sees_three_latest_wavers(db, now, make_user):
    me = make_user("Me")
    wavers = [make_user(f"Fan {i}") for i in range(5)]
    for i, fan in enumerate(wavers):
        admirers.send_wave(db, fan, me.id, now + timedelta(minutes=i))

    listing = admirers.list_my_waves(db, me, now)
    assert [item["user_id"] for item in listing["items"]] == [w.id for w in reversed(wavers)][:3]
    assert listing["total_count"] == 5
    assert listing["has_more"] is True

    me.subscription_tier, me.subscription_status = "ultra", "active"
    listing = admirers.list_my_waves(db, me, now)
    assert len(listing["items"]) == 5
    assert listing["has_more"] is False


def test_banned_or_blocked_wavers_drop_out(db, now, make_user):
    me, fan, troll = make_user(), make_user(), make_user()
    admirers.send_wave(db, fan, me.id, now)
    admirers.send_wave(db, troll, me.id, now)
    blocks.block_user(db, me, troll.id, now)
    fan.is_banned = True
    db.flush()

    assert admirers.list_my_waves(db, me, now)["total_count"] == 0


def test_free_tier_views_five_new_profiles_a_day(db, now, make_user):
    me = make_user("Me")
    others = [make_user() for _ in range(6)]
    for other in others[:5]:
        admirers.record_profile_view(db, me, other.id, now)

    status = admirers.can_view_profile(db, me, others[5].id, now)
    assert status == {"can_view": False, "views_today": 5, "limit": 5, "already_viewed": False}
    with pytest.raises(PermissionDenied) as exc:
        admirers.record_profile_view(db, me, others[5].id, now)
    assert exc.value.code == "daily_view_limit"

    # повторный просмотр уже открытой анкеты лимит не тратит
    assert admirers.record_profile_view(db, me, others[0].id, now + timedelta(hours=1))["already_viewed"]
    assert admirers.daily_limits(db, me, now)["profile_views"] == {"used": 5, "limit": 5, "remaining": 0}

    tomorrow = now + timedelta(days=1)
    assert admirers.can_view_profile(db, me, others[5].id, tomorrow)["can_view"] is True


def test_ultra_and_self_views_are_not_limited(db, now, make_user):
    me = make_user(referral_ultra_expires_at=now + timedelta(days=3))
    for _ in range(7):
        admirers.record_profile_view(db, me, make_user().id, now)
    assert admirers.daily_limits(db, me, now)["profile_views"] == {"used": 7, "limit": None, "remaining": None}

    admirers.record_profile_view(db, me, me.id, now)
    assert db.query(ProfileView).filter(ProfileView.viewed_id == me.id).count() == 0


def test_viewers_are_unique_with_latest_visit(db, now, make_user):
    me, fan, other = make_user("Me"), make_user("Fan"), make_user("Other")
    admirers.record_profile_view(db, fan, me.id, now - timedelta(days=1))
    admirers.record_profile_view(db, other, me.id, now - timedelta(hours=2))
    admirers.record_profile_view(db, fan, me.id, now)

    listing = admirers.list_profile_viewers(db, me, now)
    assert [(i["user_id"], i["at"]) for i in listing["items"]] == [(fan.id, now), (other.id, now - timedelta(hours=2))]

    admirers.send_wave(db, fan, me.id, now)
    stats = admirers.admirers_stats(db, me, now)
    assert stats == {"total_waves": 1, "total_viewers": 2, "is_ultra": False, "waves_limit": 3, "viewers_limit": 3}

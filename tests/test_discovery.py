from datetime import timedelta

import pytest

from piggies.services import blocks
from piggies.services.discovery import DiscoveryFilters, get_nearby_users, get_new_profiles, get_recommended_profiles
from piggies.services.errors import ValidationFailed

SF = (37.7749, -122.4194)


def onboarded(lat=None, lon=None, **extra):
    return {"onboarding_complete": True, "latitude": lat, "longitude": lon, **extra}


@pytest.fixture
def me(make_user):
    return make_user("Me", profile=onboarded(*SF))


def ids(result):
    return [item.user.id for item in result]


def test_excludes_hidden_banned_suspended_blocked_and_incomplete(db, now, me, make_user):
    visible = make_user(profile=onboarded(37.78, -122.41))
    make_user(hide_from_discovery=True, profile=onboarded(37.78, -122.41))
    make_user(is_banned=True, profile=onboarded(37.78, -122.41))
    make_user(is_suspended=True, suspended_until=now + timedelta(days=1), profile=onboarded(37.78, -122.41))
    make_user(profile={"latitude": 37.78, "longitude": -122.41})
    blocker = make_user(profile=onboarded(37.78, -122.41))
    blocks.block_user(db, blocker, me.id, now)
    expired_suspension = make_user(is_suspended=True, suspended_until=now - timedelta(days=1),
                                   profile=onboarded(37.79, -122.41))
    db.flush()

    result = get_nearby_users(db, me, DiscoveryFilters(), now)
    assert set(ids(result)) == {visible.id, expired_suspension.id}


def test_orders_by_distance_then_online_with_unknown_last(db, now, me, make_user):
    far = make_user(profile=onboarded(38.5, -121.5))
    unknown = make_user(profile=onboarded())
    near_offline = make_user(is_online=False, profile=onboarded(37.78, -122.41))
    near_online = make_user(is_online=True, profile=onboarded(37.78, -122.41))
    db.flush()

    result = get_nearby_users(db, me, DiscoveryFilters(include_self=True), now)
    assert ids(result) == [me.id, near_online.id, near_offline.id, far.id, unknown.id]
    assert result[0].is_self is True
    assert result[-1].distance_miles is None


def test_hidden_online_status_sorts_as_offline(db, now, me, make_user):
    shy = make_user(is_online=True, show_online_status=False, profile=onboarded(37.78, -122.41))
    open_ = make_user(is_online=True, profile=onboarded(37.78, -122.41))
    db.flush()

    assert ids(get_nearby_users(db, me, DiscoveryFilters(), now)) == [open_.id, shy.id]
    assert ids(get_nearby_users(db, me, DiscoveryFilters(online_only=True), now)) == [open_.id]


def test_filters_age_photos_interests_distance(db, now, me, make_user):
    match = make_user(profile=onboarded(37.78, -122.41, age=30, photo_keys=["photos/a.jpg"], interests=["hiking"]))
    make_user(profile=onboarded(37.78, -122.41, age=50, photo_keys=["photos/b.jpg"], interests=["hiking"]))
    make_user(profile=onboarded(37.78, -122.41, age=30, interests=["hiking"]))
    make_user(profile=onboarded(37.78, -122.41, age=30, photo_keys=["photos/c.jpg"], interests=["chess"]))
    make_user(profile=onboarded(40.7, -74.0, age=30, photo_keys=["photos/d.jpg"], interests=["hiking"]))
    db.flush()

    f = DiscoveryFilters(min_age=25, max_age=40, with_photos=True, interests=["hiking"], max_distance_miles=25)
    assert ids(get_nearby_users(db, me, f, now)) == [match.id]


def test_free_tier_sees_twenty_and_pages_inside_that_window(db, now, me, make_user):
    for i in range(25):
        make_user(profile=onboarded(37.78 + i * 0.001, -122.41))
    db.flush()

    assert len(get_nearby_users(db, me, DiscoveryFilters(), now)) == 20
    assert len(get_nearby_users(db, me, DiscoveryFilters(limit=10, offset=15), now)) == 5

    me.referral_ultra_expires_at = now + timedelta(days=1)
    assert len(get_nearby_users(db, me, DiscoveryFilters(), now)) == 25


def test_explicit_origin_overrides_profile_location(db, now, me, make_user):
    ny = make_user(profile=onboarded(40.7128, -74.0060))
    sf = make_user(profile=onboarded(37.78, -122.41))
    db.flush()

    result = get_nearby_users(db, me, DiscoveryFilters(latitude=40.7, longitude=-74.0), now)
    assert ids(result) == [ny.id, sf.id]


def test_invalid_filters(db, now, me):
    with pytest.raises(ValidationFailed):
        get_nearby_users(db, me, DiscoveryFilters(min_age=40, max_age=30), now)
    with pytest.raises(ValidationFailed):
        get_nearby_users(db, me, DiscoveryFilters(latitude=10.0), now)
    with pytest.raises(ValidationFailed):
        get_nearby_users(db, me, DiscoveryFilters(min_age=16), now)


def test_self_follows_onboarding_and_profile_filters(db, now, me, make_user):
    newcomer = make_user("Newcomer", profile={"latitude": SF[0], "longitude": SF[1]})
    db.flush()
    assert ids(get_nearby_users(db, newcomer, DiscoveryFilters(include_self=True), now)) == [me.id]

    assert me.id in ids(get_nearby_users(db, me, DiscoveryFilters(include_self=True), now))
    assert me.id not in ids(get_nearby_users(db, me, DiscoveryFilters(include_self=True, with_photos=True), now))
    assert me.id not in ids(get_nearby_users(db, me, DiscoveryFilters(include_self=True, min_age=18), now))

    # своя анкета не отсекается радиусом от чужой точки
    far = DiscoveryFilters(include_self=True, latitude=40.7, longitude=-74.0, max_distance_miles=5)
    assert ids(get_nearby_users(db, me, far, now)) == [me.id]


# ===== Ленты главной ===========================================================

def test_new_profiles_are_last_day_signups(db, now, me, make_user):
    make_user(created_at=now - timedelta(days=2), profile=onboarded())
    older = make_user(created_at=now - timedelta(hours=20), profile=onboarded())
    newest = make_user(created_at=now - timedelta(hours=1), profile=onboarded())
    make_user(created_at=now - timedelta(hours=1))
    blocked = make_user(created_at=now - timedelta(hours=2), profile=onboarded())
    blocks.block_user(db, me, blocked.id, now)
    db.flush()

    assert [u.id for u, _ in get_new_profiles(db, me, now)] == [newest.id, older.id]
    assert [u.id for u, _ in get_new_profiles(db, me, now, limit=1)] == [newest.id]


def test_recommended_needs_photos_and_puts_online_first(db, now, me, make_user):
    make_user(is_online=True, profile=onboarded())
    recent = make_user(is_online=False, last_active=now - timedelta(minutes=5), profile=onboarded(photo_keys=["photos/r.jpg"]))
    stale = make_user(is_online=False, last_active=now - timedelta(days=3), profile=onboarded(photo_keys=["photos/s.jpg"]))
    online = make_user(is_online=True, last_active=now - timedelta(days=5), profile=onboarded(photo_keys=["photos/o.jpg"]))
    db.flush()

    assert [u.id for u, _ in get_recommended_profiles(db, me, now)] == [online.id, recent.id, stale.id]

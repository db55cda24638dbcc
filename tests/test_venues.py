from datetime import timedelta

import pytest

from piggies.models.venue import VenueReport
from piggies.services import venues
from piggies.services.errors import InvalidState, NotFound, PermissionDenied, ValidationFailed

BAR = {
    "name": "The Pig Pen",
    "category": "bars_nightlife",
    "address": "400 Castro St",
    "city": "San Francisco",
    "country": "USA",
    "features": ["patio", "dance_floor"],
}


@pytest.fixture
def admin(make_user):
    return make_user("Admin", is_admin=True)


@pytest.fixture
def approved(db, now, admin):
    return venues.admin_create_venue(db, admin, {**BAR, "latitude": 37.7609, "longitude": -122.4350}, now)


def test_submission_is_geocoded_and_pending(db, now, make_user):
    user = make_user()
    venue = venues.submit_venue(db, user, dict(BAR), now)
    assert venue.status == "pending"
    assert venue.latitude == pytest.approx(37.7609)
    assert venues.can_submit_venue(db, user, now)["can_submit"] is False


def test_unknown_address_is_a_user_error(db, now, make_user):
    user = make_user()
    with pytest.raises(ValidationFailed) as exc:
        venues.submit_venue(db, user, {**BAR, "address": "1 Nowhere Rd"}, now)
    assert exc.value.code == "address_not_found"


def test_free_users_submit_once_per_week(db, now, make_user):
    user = make_user()
    venues.submit_venue(db, user, {**BAR, "latitude": 1.0, "longitude": 1.0}, now)
    with pytest.raises(PermissionDenied) as exc:
        venues.submit_venue(db, user, {**BAR, "latitude": 1.0, "longitude": 1.0}, now + timedelta(days=6))
    assert exc.value.code == "venue_submission_limit"
    venues.submit_venue(db, user, {**BAR, "latitude": 1.0, "longitude": 1.0}, now + timedelta(days=8))

    ultra = make_user(subscription_tier="ultra", subscription_status="active")
    for _ in range(3):
        venues.submit_venue(db, ultra, {**BAR, "latitude": 1.0, "longitude": 1.0}, now)


def test_review_transitions(db, now, admin, make_user):
    user = make_user()
    venue = venues.submit_venue(db, user, {**BAR, "latitude": 1.0, "longitude": 1.0}, now)
    with pytest.raises(InvalidState):
        venues.restore_venue(db, admin, venue.id, now)
    venues.approve_venue(db, admin, venue.id, now)
    assert venue.status == "approved"
    with pytest.raises(InvalidState):
        venues.approve_venue(db, admin, venue.id, now)
    with pytest.raises(PermissionDenied):
        venues.reject_venue(db, user, venue.id, now)


def test_pending_venue_hidden_from_others(db, now, make_user):
    author, other = make_user(), make_user()
    venue = venues.submit_venue(db, author, {**BAR, "latitude": 1.0, "longitude": 1.0}, now)
    assert venues.view_venue(db, venue.id, author).id == venue.id
    with pytest.raises(NotFound):
        venues.view_venue(db, venue.id, other)


def test_three_reports_flag_and_dismissals_restore(db, now, approved, make_user):
    reporters = [make_user() for _ in range(3)]
    reports = [venues.report_venue(db, r, approved.id, "incorrect_info", now) for r in reporters]
    assert approved.status == "flagged"

    with pytest.raises(InvalidState):
        venues.report_venue(db, reporters[0], approved.id, "duplicate", now)

    admin = make_user(is_admin=True)
    venues.resolve_venue_report(db, admin, reports[0].id, "dismiss", now)
    venues.resolve_venue_report(db, admin, reports[1].id, "dismiss", now)
    assert approved.status == "flagged"
    venues.resolve_venue_report(db, admin, reports[2].id, "dismiss", now)
    assert approved.status == "approved"


def test_remove_venue_on_report(db, now, approved, admin, make_user):
    report = venues.report_venue(db, make_user(), approved.id, "closed_permanently", now)
    venues.resolve_venue_report(db, admin, report.id, "remove_venue", now)
    assert approved.status == "rejected"
    assert "closed_permanently" in approved.rejection_reason


def test_restore_closes_open_reports(db, now, approved, admin, make_user):
    for _ in range(3):
        venues.report_venue(db, make_user(), approved.id, "inappropriate", now)
    venues.restore_venue(db, admin, approved.id, now)
    assert approved.status == "approved"
    db.expire_all()
    assert db.query(VenueReport).filter(VenueReport.status == "pending").count() == 0


def test_nearby_search_and_favorites(db, now, approved, admin, make_user):
    venues.admin_create_venue(db, admin, {**BAR, "name": "Far Gym", "category": "fitness_wellness",
                                          "latitude": 40.7, "longitude": -74.0}, now)
    near = venues.get_nearby_venues(db, latitude=37.77, longitude=-122.43)
    assert [v.id for v, _ in near] == [approved.id]
    assert venues.get_nearby_venues(db, search="pig pen")[0][0].id == approved.id
    assert venues.get_nearby_venues(db, features=["sauna"]) == []

    user = make_user()
    assert venues.toggle_favorite(db, user, approved.id, now) is True
    assert approved.favorite_count == 1
    assert venues.favorite_ids_for(db, user.id) == {approved.id}
    assert venues.toggle_favorite(db, user, approved.id, now) is False
    assert approved.favorite_count == 0


def test_free_favorite_limit(db, now, admin, make_user):
    user = make_user()
    for i in range(11):
        venue = venues.admin_create_venue(db, admin, {**BAR, "name": f"V{i}", "latitude": 1.0, "longitude": 1.0}, now)
        if i < 10:
            venues.toggle_favorite(db, user, venue.id, now)
    with pytest.raises(PermissionDenied):
        venues.toggle_favorite(db, user, venue.id, now)


def test_views_are_counted(db, approved):
    assert venues.record_view(db, approved.id) == 1
    assert venues.record_view(db, approved.id) == 2

from datetime import timedelta

import pytest

from piggies.services import messaging, moderation, reports
from piggies.services.errors import InvalidState, NotFound, ValidationFailed


@pytest.fixture
def admin(make_user):
    return make_user("Admin", is_admin=True)


def test_report_user_validation(db, now, make_user):
    a, b = make_user(), make_user()
    with pytest.raises(ValidationFailed):
        reports.report_user(db, a, a.id, "spam", now)
    with pytest.raises(ValidationFailed):
        reports.report_user(db, a, b.id, "  ", now)
    with pytest.raises(NotFound):
        reports.report_user(db, a, 9999, "spam", now)
    report = reports.report_user(db, a, b.id, "spam", now, details="sent links")
    assert report.status == "pending"


def test_report_count_rule_bans_at_threshold(db, now, admin, make_user):
    moderation.create_rule(db, admin, name="many reports", trigger_type="report_count", threshold=2,
                           action="ban", enabled=True, now=now)
    target = make_user()
    reports.report_user(db, make_user(), target.id, "spam", now)
    assert target.is_banned is False
    reports.report_user(db, make_user(), target.id, "spam", now)
    assert target.is_banned is True
    assert target.banned_reason == "Automatic: many reports"


def test_message_report_rules(db, now, make_user):
    a, b, c = make_user(), make_user(), make_user()
    msg = messaging.send_message_to_user(db, a, b.id, now, content="hello")

    with pytest.raises(ValidationFailed):
        reports.report_message(db, a, msg.id, "spam", now)
    with pytest.raises(NotFound):
        reports.report_message(db, c, msg.id, "spam", now)

    report = reports.report_message(db, b, msg.id, "harassment", now)
    assert report.message_sender_id == a.id
    with pytest.raises(InvalidState):
        reports.report_message(db, b, msg.id, "harassment", now)


def test_hiding_reported_message(db, now, admin, make_user):
    a, b = make_user(), make_user()
    msg = messaging.send_message_to_user(db, a, b.id, now, content="nasty")
    report = reports.report_message(db, b, msg.id, "harassment", now)

    updated, note = reports.update_message_report_status(
        db, admin, report.id, "resolved", now, action_taken="message_hidden",
    )
    db.flush()
    assert note is None
    assert updated.action_taken == "message_hidden"
    assert msg.is_hidden is True
    assert messaging.list_messages(db, msg.conversation) == []


def test_report_action_suspends_for_default_week(db, now, admin, make_user):
    reporter, target = make_user(), make_user()
    report = reports.report_user(db, reporter, target.id, "fake profile", now)

    updated, note = reports.update_user_report_status(
        db, admin, report.id, "resolved", now, admin_notes="confirmed", action_taken="suspension",
    )
    assert updated.reviewed_by == admin.id
    assert note.type == "suspension"
    assert target.suspended_until == now + timedelta(days=7)
    assert target.suspended_reason == "confirmed"


def test_report_review_validation(db, now, admin, make_user):
    report = reports.report_user(db, make_user(), make_user().id, "spam", now)
    with pytest.raises(ValidationFailed):
        reports.update_user_report_status(db, admin, report.id, "resolved", now, action_taken="nuke")
    with pytest.raises(ValidationFailed):
        reports.update_user_report_status(db, admin, report.id, "archived", now)


def test_report_listing_pages(db, now, admin, make_user):
    target = make_user()
    for _ in range(3):
        reports.report_user(db, make_user(), target.id, "spam", now)
    page = reports.list_user_reports(db, admin, "pending", limit=2)
    assert page["total"] == 3
    assert len(page["items"]) == 2
    assert page["has_more"] is True

from datetime import timedelta

import pytest

from piggies.models.appeal import Appeal
from piggies.models.moderation_notification import ModerationNotification
from piggies.services import moderation
from piggies.services.errors import InvalidState, PermissionDenied, ValidationFailed


@pytest.fixture
def admin(make_user):
    return make_user("Admin", is_admin=True)


def test_two_warnings_do_not_ban(db, now, admin, make_user):
    target = make_user("Target")
    moderation.warn_user(db, target.id, "first", now, actor=admin)
    note = moderation.warn_user(db, target.id, "second", now, actor=admin)

    assert target.warning_count == 2
    assert target.is_banned is False
    assert note.warning_number == 2
    assert note.type == "warning"


def test_admin_cannot_moderate_self_or_other_admin(db, now, admin, make_user):
    other_admin = make_user("Other admin", is_admin=True)
    with pytest.raises(PermissionDenied):
        moderation.ban_user(db, admin, admin.id, "nope", now)
    with pytest.raises(PermissionDenied):
        moderation.warn_user(db, other_admin.id, "nope", now, actor=admin)


def test_non_admin_cannot_moderate(db, now, make_user):
    a, b = make_user(), make_user()
    with pytest.raises(PermissionDenied):
        moderation.suspend_user(db, a, b.id, now, days=3)


def test_ban_requires_reason(db, now, admin, make_user):
    target = make_user()
    with pytest.raises(ValidationFailed):
        moderation.ban_user(db, admin, target.id, "   ", now)


def test_suspend_then_expiry_is_cleared(db, now, admin, make_user):
    target = make_user()
    moderation.suspend_user(db, admin, target.id, now, days=2, reason="cool off")
    assert target.is_suspended is True
    assert target.suspended_until == now + timedelta(days=2)

    with pytest.raises(PermissionDenied) as exc:
        moderation.require_not_moderated(target, now)
    assert exc.value.code == "account_suspended"

    later = now + timedelta(days=3)
    moderation.require_not_moderated(target, later)
    assert moderation.clear_expired_suspensions(db, later) == 1
    assert target.is_suspended is False


def test_suspending_banned_user_fails(db, now, admin, make_user):
    target = make_user()
    moderation.ban_user(db, admin, target.id, "abuse", now)
    with pytest.raises(InvalidState):
        moderation.suspend_user(db, admin, target.id, now, days=1)


def test_ban_appeal_accept_lifts_ban(db, now, admin, make_user):
    target = make_user()
    moderation.ban_user(db, admin, target.id, "abuse", now)

    appeal = moderation.submit_appeal(db, target, "ban", "It was a mistake", now)
    assert appeal.status == "pending"
    assert appeal.original_banned_reason == "abuse"
    assert moderation.can_submit_appeal(db, target.id)["can_submit"] is False

    moderation.update_appeal_status(db, admin, appeal.id, "under_review", now)
    status = moderation.can_submit_appeal(db, target.id)
    assert status["existing_appeal_status"] == "under_review"

    moderation.update_appeal_status(db, admin, appeal.id, "accepted", now, "Sorry about that")
    assert target.is_banned is False
    assert moderation.can_submit_appeal(db, target.id)["can_submit"] is True

    note = moderation.latest_notification(db, target.id, "appeal_accepted")
    assert note is not None
    assert note.appeal_id == appeal.id


def test_failed_lift_leaves_appeal_pending_and_ban_in_place(db, now, admin, make_user, monkeypatch):
    target = make_user()
    moderation.ban_user(db, admin, target.id, "abuse", now)
    appeal = moderation.submit_appeal(db, target, "ban", "It was a mistake", now)
    db.commit()

    real_apply = moderation._apply

    def apply_then_fail(user, action, when):
        real_apply(user, action, when)
        raise RuntimeError("standing write failed")

    monkeypatch.setattr(moderation, "_apply", apply_then_fail)
    with pytest.raises(RuntimeError):
        moderation.update_appeal_status(db, admin, appeal.id, "accepted", now, "Sorry about that")
    db.rollback()

    assert db.query(Appeal).filter(Appeal.id == appeal.id).one().status == "pending"
    assert target.is_banned is True
    assert moderation.latest_notification(db, target.id, "appeal_accepted") is None


def test_closed_appeal_cannot_change(db, now, admin, make_user):
    target = make_user()
    moderation.warn_user(db, target.id, "rude", now, actor=admin)
    appeal = moderation.submit_appeal(db, target, "warning", "Not rude", now)
    moderation.update_appeal_status(db, admin, appeal.id, "rejected", now)
    with pytest.raises(InvalidState):
        moderation.update_appeal_status(db, admin, appeal.id, "accepted", now)
    assert target.warning_count == 1


def test_accepting_warning_appeal_removes_one_warning(db, now, admin, make_user):
    target = make_user()
    moderation.warn_user(db, target.id, "a", now, actor=admin)
    moderation.warn_user(db, target.id, "b", now, actor=admin)
    appeal = moderation.submit_appeal(db, target, "warning", "One was unfair", now)
    moderation.update_appeal_status(db, admin, appeal.id, "accepted", now)
    assert target.warning_count == 1


def test_cannot_appeal_without_restriction(db, now, make_user):
    target = make_user()
    with pytest.raises(InvalidState) as exc:
        moderation.submit_appeal(db, target, "ban", "why", now)
    assert exc.value.code == "nothing_to_appeal"


def test_second_open_appeal_rejected(db, now, admin, make_user):
    target = make_user()
    moderation.ban_user(db, admin, target.id, "abuse", now)
    moderation.submit_appeal(db, target, "ban", "first", now)
    with pytest.raises(InvalidState):
        moderation.submit_appeal(db, target, "ban", "second", now)
    assert db.query(Appeal).filter(Appeal.user_id == target.id).count() == 1


def test_admin_cannot_review_own_appeal(db, now, admin, make_user):
    other_admin = make_user("Other admin", is_admin=True)
    moderation.warn_user(db, admin.id, "auto", now)
    appeal = moderation.submit_appeal(db, admin, "warning", "mine", now)
    with pytest.raises(PermissionDenied):
        moderation.update_appeal_status(db, admin, appeal.id, "accepted", now)
    moderation.update_appeal_status(db, other_admin, appeal.id, "accepted", now)
    assert admin.warning_count == 0


def test_warning_count_rule_escalates_to_suspension(db, now, admin, make_user):
    moderation.create_rule(
        db, admin, name="3 strikes", trigger_type="warning_count", threshold=3,
        action="suspension", suspension_days=5, enabled=True, now=now,
    )
    target = make_user()
    for i in range(3):
        moderation.warn_user(db, target.id, f"w{i}", now, actor=admin)

    assert target.is_suspended is True
    assert target.suspended_until == now + timedelta(days=5)
    assert target.suspended_reason == "Automatic: 3 strikes"


def test_disabled_rule_does_not_fire(db, now, admin, make_user):
    moderation.create_rule(
        db, admin, name="ban at 1", trigger_type="warning_count", threshold=1, action="ban", now=now,
    )
    target = make_user()
    moderation.warn_user(db, target.id, "w", now, actor=admin)
    assert target.is_banned is False


def test_rule_validation(db, now, admin):
    with pytest.raises(ValidationFailed):
        moderation.create_rule(db, admin, name="x", trigger_type="karma", threshold=1, action="ban", now=now)
    with pytest.raises(ValidationFailed):
        moderation.create_rule(db, admin, name="x", trigger_type="report_count", threshold=2,
                               action="suspension", now=now)
    rule = moderation.create_rule(db, admin, name="x", trigger_type="report_count", threshold=2,
                                  action="warning", now=now)
    moderation.update_rule(db, admin, rule.id, now, enabled=True)
    assert [r.id for r in moderation.list_rules(db, admin)] == [rule.id]
    assert moderation.delete_rule(db, admin, rule.id) is True


def test_notifications_read_flow(db, now, admin, make_user):
    target = make_user()
    n1 = moderation.warn_user(db, target.id, "a", now, actor=admin)
    moderation.warn_user(db, target.id, "b", now, actor=admin)

    assert len(moderation.list_notifications(db, target.id, unread_only=True)) == 2
    moderation.mark_notification_read(db, target.id, n1.id, now)
    assert len(moderation.list_notifications(db, target.id, unread_only=True)) == 1
    assert moderation.mark_all_notifications_read(db, target.id, now) == 1
    db.expire_all()
    assert db.query(ModerationNotification).filter(ModerationNotification.read_at.is_(None)).count() == 0

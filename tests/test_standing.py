from datetime import timedelta
from types import SimpleNamespace

import pytest

from piggies.services import standing as st
from piggies.services.errors import InvalidState, ValidationFailed


def test_warnings_accumulate_without_restriction(now):
    s = st.Active()
    s = st.transition(s, st.Warn("spam"), now)
    s = st.transition(s, st.Warn("spam again"), now)
    assert s == st.Warned(2)
    assert not st.is_restricted(s)
    assert st.status_label(s) == "warned"


def test_ban_replaces_suspension_and_keeps_warnings(now):
    s = st.Suspended(until=now + timedelta(days=3), reason="cool off", warnings=1)
    s = st.transition(s, st.Ban("abuse"), now)
    assert isinstance(s, st.Banned)
    assert s.warnings == 1
    cols = st.standing_to_columns(s)
    assert cols["is_banned"] is True
    assert cols["is_suspended"] is False
    assert cols["suspended_until"] is None


def test_suspending_banned_user_is_rejected(now):
    banned = st.Banned(reason="abuse", banned_at=now)
    with pytest.raises(InvalidState):
        st.transition(banned, st.Suspend(until=now + timedelta(days=1)), now)


def test_suspension_must_end_in_future(now):
    with pytest.raises(ValidationFailed):
        st.transition(st.Active(), st.Suspend(until=now), now)


def test_unban_returns_to_warned_when_warnings_remain(now):
    s = st.Banned(reason="abuse", banned_at=now, warnings=2)
    assert st.transition(s, st.Unban(), now) == st.Warned(2)
    assert st.transition(st.Active(), st.Unban(), now) == st.Active()


def test_remove_warning_never_goes_negative(now):
    assert st.transition(st.Active(), st.RemoveWarning(), now) == st.Active()
    assert st.transition(st.Warned(1), st.RemoveWarning(), now) == st.Active()


def test_expired_suspension_reads_as_unrestricted(now):
    user = SimpleNamespace(
        id=1, is_banned=False, banned_at=None, banned_reason=None,
        is_suspended=True, suspended_until=now - timedelta(minutes=1), suspended_reason="x",
        warning_count=1,
    )
    assert st.standing_of(user, now) == st.Warned(1)
    summary = st.standing_summary(user, now)
    assert summary["status"] == "warned"
    assert summary["is_suspended"] is False
    assert "banned_at" not in summary

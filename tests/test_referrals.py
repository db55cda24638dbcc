from datetime import timedelta

from piggies.models.referral import Referral, ReferralReward
from piggies.services import moderation, referrals
from piggies.services.tiers import is_ultra


def test_code_is_generated_once_from_unambiguous_alphabet(db, make_user):
    user = make_user()
    code = user.referral_code
    assert len(code) == referrals.CODE_LENGTH
    assert set(code) <= set(referrals.CODE_ALPHABET)
    assert not set(code) & set("O0I1")
    assert referrals.generate_code(db, user) == code


def test_apply_code_creates_pending_referral(db, now, make_user):
    referrer = make_user("Referrer")
    invited = make_user("Invited", referral_code=referrer.referral_code.lower())

    referral = db.query(Referral).filter(Referral.referred_user_id == invited.id).one()
    assert referral.status == "pending"
    assert referral.referrer_id == referrer.id
    assert invited.referred_by == referrer.id


def test_apply_code_is_idempotent_and_never_raises(db, now, make_user):
    referrer = make_user()
    other = make_user()
    invited = make_user(referral_code=referrer.referral_code)

    assert referrals.apply_referral_code(db, invited, other.referral_code, now) == (None, "already_referred")
    assert referrals.apply_referral_code(db, invited, "ZZZZ0000", now) == (None, "invalid_code")
    assert referrals.apply_referral_code(db, invited, "", now) == (None, "invalid_code")
    assert referrals.apply_referral_code(db, other, other.referral_code, now) == (None, "self_referral")
    assert db.query(Referral).count() == 1


def test_activation_after_seven_days(db, now, make_user):
    referrer = make_user()
    make_user(referral_code=referrer.referral_code)

    early = referrals.sweep_pending_referrals(db, now + timedelta(days=6, hours=23))
    assert early["activated_count"] == 0
    assert referrer.referral_credits == 0

    result = referrals.sweep_pending_referrals(db, now + timedelta(days=7))
    assert result["activated_count"] == 1
    assert referrer.referral_credits == 1

    again = referrals.sweep_pending_referrals(db, now + timedelta(days=8))
    assert again["checked"] == 0
    assert referrer.referral_credits == 1


def test_ban_expires_pending_referral_immediately(db, now, make_user):
    admin = make_user("Admin", is_admin=True)
    referrer = make_user()
    invited = make_user(referral_code=referrer.referral_code)

    moderation.ban_user(db, admin, invited.id, "spam account", now + timedelta(days=1))
    referral = db.query(Referral).filter(Referral.referred_user_id == invited.id).one()
    assert referral.status == "expired"

    # разбан не воскрешает реферал
    moderation.unban_user(db, admin, invited.id, now + timedelta(days=2))
    referrals.sweep_pending_referrals(db, now + timedelta(days=10))
    assert referral.status == "expired"
    assert referrer.referral_credits == 0


def test_third_activation_grants_thirty_days_of_ultra(db, now, make_user):
    referrer = make_user()
    for _ in range(3):
        make_user(referral_code=referrer.referral_code)

    at = now + timedelta(days=7)
    referrals.sweep_pending_referrals(db, at)

    assert referrer.referral_credits == 3
    assert referrer.referral_ultra_expires_at == at + timedelta(days=30)
    assert is_ultra(referrer, at)
    assert db.query(ReferralReward).filter(ReferralReward.user_id == referrer.id).count() == 1


def test_reward_stacks_on_remaining_ultra(db, now, make_user):
    existing_end = now + timedelta(days=20)
    referrer = make_user(referral_ultra_expires_at=existing_end, referral_credits=2)
    make_user(referral_code=referrer.referral_code)

    referrals.sweep_pending_referrals(db, now + timedelta(days=7))
    assert referrer.referral_credits == 3
    assert referrer.referral_ultra_expires_at == existing_end + timedelta(days=30)


def test_stats_lazily_activate_and_report_days(db, now, make_user):
    referrer = make_user()
    make_user("Pal", referral_code=referrer.referral_code)

    stats = referrals.get_referral_stats(db, referrer, now + timedelta(days=7, hours=1))
    assert stats["activated_referrals"] == 1
    assert stats["pending_referrals"] == 0
    assert stats["credits"] == 1
    assert stats["credits_to_next_reward"] == 2
    assert stats["has_referral_ultra"] is False

    history = referrals.get_referral_history(db, referrer, now)
    assert history[0]["referred_user_name"] == "Pal"


def test_history_counts_days_until_activation(db, now, make_user):
    referrer = make_user()
    make_user(referral_code=referrer.referral_code)
    history = referrals.get_referral_history(db, referrer, now + timedelta(days=2))
    assert history[0]["status"] == "pending"
    assert history[0]["days_until_activation"] == 5


def test_expired_referral_ultra_is_cleared(db, now, make_user):
    user = make_user(referral_ultra_expires_at=now - timedelta(seconds=1))
    assert referrals.clear_expired_referral_ultra(db, now) == 1
    assert user.referral_ultra_expires_at is None

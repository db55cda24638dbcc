# piggies/services/referrals.py
# -----------------------------------------------------------------------------
# Реферальная программа.
#
#   • У пользователя один постоянный 8-символьный код (без O/0/I/1).
#   • Код применяется только при регистрации: создаётся Referral(pending).
#   • Через 7 дней реферал активируется, если приглашённый не забанен;
#     бан или исчезновение пользователя до этого момента -> expired навсегда.
#   • Каждая 3-я активация продлевает Ultra реферера на 30 дней
#     от max(now, текущее окончание).
#
# Активация и начисление награды идут в одной транзакции с блокировкой
# строки реферера. Функции не делают commit.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import math
import secrets
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from piggies.models.referral import Referral, ReferralReward
from piggies.models.user import User
from piggies.services.errors import InvalidState, NotFound
from piggies.services.events import (
    log_event,
    REFERRAL_APPLIED, REFERRAL_ACTIVATED, REFERRAL_EXPIRED, REFERRAL_REWARD_GRANTED,
)
from piggies.services.tiers import has_paid_ultra

log = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8
MAX_CODE_ATTEMPTS = 10

ACTIVATION_PERIOD = timedelta(days=7)
REFERRALS_FOR_REWARD = 3
REWARD_DAYS = 30


# ===== Код =====================================================================

def _random_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def generate_code(db: Session, user: User) -> str:
    """Выдаёт код один раз; повторный вызов возвращает тот же код."""
    if user.referral_code:
        return user.referral_code

    for _ in range(MAX_CODE_ATTEMPTS):
        code = _random_code()
        taken = db.query(User.id).filter(User.referral_code == code).first()
        if taken is None:
            user.referral_code = code
            db.flush()
            return code

    log.error("referral: could not find a free code for user %s after %s attempts", user.id, MAX_CODE_ATTEMPTS)
    raise InvalidState("referral_code_unavailable", "Could not generate a referral code, try again")


def apply_referral_code(db: Session, new_user: User, code: Optional[str], now: datetime) -> Tuple[Optional[Referral], str]:
    """
    Применяет код при регистрации. Никогда не бросает на плохой код:
    возвращает (None, причина) - "invalid_code" | "self_referral" | "already_referred".
    """
    code = normalize_code(code)
    if len(code) != CODE_LENGTH:
        return None, "invalid_code"

    referrer = db.query(User).filter(User.referral_code == code).first()
    if referrer is None:
        return None, "invalid_code"
    if referrer.id == new_user.id:
        return None, "self_referral"

    existing = db.query(Referral).filter(Referral.referred_user_id == new_user.id).first()
    if new_user.referred_by is not None or existing is not None:
        return None, "already_referred"

    referral = Referral(
        referrer_id=referrer.id,
        referred_user_id=new_user.id,
        referral_code=code,
        status="pending",
        created_at=now,
    )
    db.add(referral)
    new_user.referred_by = referrer.id
    db.flush()

    log_event(
        db, type=REFERRAL_APPLIED, actor_id=new_user.id, target_user_id=referrer.id,
        data={"referral_id": referral.id}, idempotency_key=f"referral_applied:{new_user.id}",
    )
    return referral, "applied"


# ===== Активация ===============================================================

def check_activation(referral: Referral, referred_user: Optional[User], now: datetime) -> str:
    """
    Чистая проверка pending-реферала:
      expired   - приглашённого нет или он забанен;
      activated - прошло не меньше 7 дней с регистрации;
      pending   - иначе.
    """
    if referral.status != "pending":
        return referral.status
    if referred_user is None or referred_user.is_banned:
        return "expired"
    if now - referral.created_at >= ACTIVATION_PERIOD:
        return "activated"
    return "pending"


def _expire(db: Session, referral: Referral, now: datetime) -> None:
    referral.status = "expired"
    log_event(
        db, type=REFERRAL_EXPIRED, actor_id=None, target_user_id=referral.referrer_id,
        data={"referral_id": referral.id, "referred_user_id": referral.referred_user_id},
        idempotency_key=f"referral_expired:{referral.id}",
    )


def expire_pending_referral(db: Session, referred_user_id: int, now: datetime) -> Optional[Referral]:
    """Вызывается при бане: pending-реферал этого пользователя сгорает сразу."""
    referral = (
        db.query(Referral)
        .filter(Referral.referred_user_id == referred_user_id, Referral.status == "pending")
        .with_for_update()
        .first()
    )
    if referral is None:
        return None
    _expire(db, referral, now)
    return referral


def grant_reward_if_eligible(db: Session, referrer: User, referral: Referral, now: datetime) -> Optional[ReferralReward]:
    """На каждом 3-м кредите: Ultra до max(now, текущее окончание) + 30 дней."""
    credits = referrer.referral_credits or 0
    if credits == 0 or credits % REFERRALS_FOR_REWARD != 0:
        return None

    current = referrer.referral_ultra_expires_at
    base = current if current is not None and current > now else now
    expires_at = base + timedelta(days=REWARD_DAYS)
    referrer.referral_ultra_expires_at = expires_at

    reward = ReferralReward(
        user_id=referrer.id,
        referral_id=referral.id,
        days_granted=REWARD_DAYS,
        granted_at=now,
        expires_at=expires_at,
    )
    db.add(reward)
    log_event(
        db, type=REFERRAL_REWARD_GRANTED, actor_id=None, target_user_id=referrer.id,
        data={"referral_id": referral.id, "credits": credits, "expires_at": expires_at.isoformat()},
        idempotency_key=f"referral_reward:{referral.id}",
    )
    log.info("referral reward: user %s -> ultra until %s", referrer.id, expires_at)
    return reward


def activate_referral(db: Session, referral: Referral, now: datetime) -> Optional[ReferralReward]:
    """pending -> activated, +1 кредит рефереру и, возможно, награда. Атомарно."""
    if referral.status != "pending":
        return None

    referrer = db.query(User).filter(User.id == referral.referrer_id).with_for_update().first()
    if referrer is None:
        _expire(db, referral, now)
        return None

    referral.status = "activated"
    referral.activated_at = now
    referrer.referral_credits = (referrer.referral_credits or 0) + 1
    db.flush()

    log_event(
        db, type=REFERRAL_ACTIVATED, actor_id=None, target_user_id=referrer.id,
        data={"referral_id": referral.id, "credits": referrer.referral_credits},
        idempotency_key=f"referral_activated:{referral.id}",
    )
    return grant_reward_if_eligible(db, referrer, referral, now)


def process_referral(db: Session, referral: Referral, now: datetime) -> str:
    referred = db.query(User).filter(User.id == referral.referred_user_id).first()
    verdict = check_activation(referral, referred, now)
    if verdict == "expired" and referral.status == "pending":
        _expire(db, referral, now)
    elif verdict == "activated" and referral.status == "pending":
        activate_referral(db, referral, now)
    return verdict


def sweep_pending_referrals(db: Session, now: datetime, *, referrer_id: Optional[int] = None) -> dict:
    """
    Проходит pending-рефералы и переводит их по check_activation().
    Идемпотентно: повторный прогон ничего не меняет.
    """
    q = db.query(Referral).filter(Referral.status == "pending")
    if referrer_id is not None:
        q = q.filter(Referral.referrer_id == referrer_id)
    pending = q.order_by(Referral.created_at.asc(), Referral.id.asc()).with_for_update().all()

    activated: List[int] = []
    expired: List[int] = []
    for referral in pending:
        verdict = process_referral(db, referral, now)
        if verdict == "activated":
            activated.append(referral.id)
        elif verdict == "expired":
            expired.append(referral.id)

    return {
        "checked": len(pending),
        "activated_count": len(activated),
        "activated_ids": activated,
        "expired_count": len(expired),
        "expired_ids": expired,
    }


def clear_expired_referral_ultra(db: Session, now: datetime) -> int:
    """Обнуляет истёкший referral_ultra_expires_at (кроме платных Ultra)."""
    users = (
        db.query(User)
        .filter(User.referral_ultra_expires_at.is_not(None), User.referral_ultra_expires_at <= now)
        .all()
    )
    cleared = 0
    for u in users:
        if has_paid_ultra(u):
            continue
        u.referral_ultra_expires_at = None
        cleared += 1
    return cleared


# ===== Чтение ==================================================================

def get_referral_stats(db: Session, user: User, now: datetime) -> dict:
    """Статистика реферера. Перед чтением лениво догоняет его pending-рефералы."""
    sweep_pending_referrals(db, now, referrer_id=user.id)

    referrals = db.query(Referral).filter(Referral.referrer_id == user.id).all()
    credits = user.referral_credits or 0
    expires_at = user.referral_ultra_expires_at
    has_ultra = expires_at is not None and expires_at > now
    days_remaining = math.ceil((expires_at - now).total_seconds() / 86400) if has_ultra else None

    return {
        "referral_code": user.referral_code,
        "total_referrals": len(referrals),
        "pending_referrals": sum(1 for r in referrals if r.status == "pending"),
        "activated_referrals": sum(1 for r in referrals if r.status == "activated"),
        "expired_referrals": sum(1 for r in referrals if r.status == "expired"),
        "credits": credits,
        "credits_to_next_reward": REFERRALS_FOR_REWARD - (credits % REFERRALS_FOR_REWARD),
        "referral_ultra_expires_at": expires_at,
        "referral_ultra_days_remaining": days_remaining,
        "has_referral_ultra": has_ultra,
    }


def get_referral_history(db: Session, user: User, now: datetime) -> List[dict]:
    rows = (
        db.query(Referral, User)
        .outerjoin(User, User.id == Referral.referred_user_id)
        .filter(Referral.referrer_id == user.id)
        .order_by(Referral.created_at.desc(), Referral.id.desc())
        .all()
    )
    out = []
    for referral, referred in rows:
        days_until = None
        if referral.status == "pending":
            activation_at = referral.created_at + ACTIVATION_PERIOD
            if activation_at > now:
                days_until = math.ceil((activation_at - now).total_seconds() / 86400)
        out.append({
            "id": referral.id,
            "referred_user_name": referred.name if referred and referred.name else "Unknown User",
            "status": referral.status,
            "created_at": referral.created_at,
            "activated_at": referral.activated_at,
            "days_until_activation": days_until,
        })
    return out


def get_referrer(db: Session, user: User) -> Optional[dict]:
    if user.referred_by is None:
        return None
    referrer = db.query(User).filter(User.id == user.referred_by).first()
    if referrer is None:
        raise NotFound("referrer_not_found", "Referrer not found")
    return {"id": referrer.id, "name": referrer.name, "image_url": referrer.image_url}

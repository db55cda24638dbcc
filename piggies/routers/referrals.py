# piggies/routers/referrals.py
# Реферальная программа: статистика, история приглашений, кто пригласил меня.

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from piggies.db import get_db
from piggies.models.user import User
from piggies.schemas.referral import ReferralStatsOut, ReferralHistoryItem, ReferrerOut
from piggies.services import referrals
from piggies.utils.auth_dep import get_current_user
from piggies.utils.dates import utc_now

router = APIRouter()


@router.get("/stats", response_model=ReferralStatsOut)
def stats(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Перед ответом догоняем активации pending-рефералов, поэтому commit."""
    result = referrals.get_referral_stats(db, current_user, utc_now())
    db.commit()
    return result


@router.get("/history", response_model=List[ReferralHistoryItem])
def history(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return referrals.get_referral_history(db, current_user, utc_now())


@router.get("/referrer", response_model=Optional[ReferrerOut])
def referrer(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return referrals.get_referrer(db, current_user)

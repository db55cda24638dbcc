# piggies/models/referral.py

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from piggies.db import Base


class Referral(Base):
    """
    Факт регистрации пользователя по реферальному коду.

    Особенности:
        - Одна запись на приглашённого (UNIQUE referred_user_id).
        - status: pending -> activated | expired.
    """
    __tablename__ = "referrals"

    id = Column(Integer, primary_key=True, index=True)
    referrer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    referred_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    referral_code = Column(String(8), nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    created_at = Column(DateTime, nullable=False)
    activated_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_referrals_referrer_status", "referrer_id", "status"),
        Index("ix_referrals_status", "status"),
    )

    referrer = relationship("User", foreign_keys=[referrer_id])
    referred_user = relationship("User", foreign_keys=[referred_user_id])

    def __repr__(self):
        return f"<Referral(referrer={self.referrer_id}, referred={self.referred_user_id}, status={self.status})>"


class ReferralReward(Base):
    """Аудит выданных наград: одна строка на каждый цикл из 3 активаций."""
    __tablename__ = "referral_rewards"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    referral_id = Column(Integer, ForeignKey("referrals.id", ondelete="CASCADE"), nullable=False)
    days_granted = Column(Integer, nullable=False)
    granted_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<ReferralReward(user={self.user_id}, referral={self.referral_id}, expires_at={self.expires_at})>"

# piggies/models/user.py

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, func
from piggies.db import Base


class User(Base):
    """
    Пользователь Piggies. Создаётся при первом входе через провайдера
    идентификации (upsert по external_id), никогда не удаляется физически.

    Поля модерации (is_banned / is_suspended / warning_count) - это проекция
    состояния Standing (см. services/standing.py), напрямую их не трогаем.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(320), index=True, nullable=True)
    name = Column(String, nullable=False, default="")
    image_url = Column(String, nullable=True)

    last_active = Column(DateTime, nullable=True)
    is_online = Column(Boolean, nullable=False, default=False)

    # --- Подписка (выставляется внешним биллингом) ---
    subscription_tier = Column(String(16), nullable=False, default="free", comment="free|pro|ultra")
    subscription_status = Column(String(16), nullable=True, comment="active|canceled|revoked")

    # --- Приватность и уведомления ---
    show_online_status = Column(Boolean, nullable=False, default=True)
    hide_from_discovery = Column(Boolean, nullable=False, default=False)
    push_notifications_enabled = Column(Boolean, nullable=False, default=True)

    # --- Реферальная программа ---
    referral_code = Column(String(8), unique=True, nullable=True, index=True)
    referred_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    referral_credits = Column(Integer, nullable=False, default=0, comment="Сколько рефералов активировано")
    referral_ultra_expires_at = Column(DateTime, nullable=True, comment="До какого момента действует Ultra за рефералов")

    # --- Админка и модерация ---
    is_admin = Column(Boolean, nullable=False, default=False)
    is_banned = Column(Boolean, nullable=False, default=False)
    banned_at = Column(DateTime, nullable=True)
    banned_reason = Column(String, nullable=True)
    is_suspended = Column(Boolean, nullable=False, default=False)
    suspended_until = Column(DateTime, nullable=True)
    suspended_reason = Column(String, nullable=True)
    warning_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_users_is_admin", "is_admin"),
    )

    def __repr__(self):
        return f"<User(id={self.id}, external_id={self.external_id}, name={self.name}, tier={self.subscription_tier})>"

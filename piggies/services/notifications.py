# piggies/services/notifications.py
# -----------------------------------------------------------------------------
# Push-уведомления. Доставка - побочный канал "best effort":
#   • queue_push() вызывается из роутера ДО ответа, собирает подписки
#     и кладёт отправку в BackgroundTasks;
#   • FastAPI выполняет фоновые задачи после ответа, т.е. уже после commit;
#   • ошибка отправки логируется и никогда не откатывает основную операцию.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import httpx
from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from piggies.models.push_subscription import PushSubscription
from piggies.models.user import User
from piggies.services.errors import ValidationFailed

log = logging.getLogger(__name__)

PUSH_TIMEOUT_SECONDS = float(os.getenv("PUSH_TIMEOUT_SECONDS", "5"))


class PushSender:
    """Интерфейс отправителя: доставить payload на устройства пользователя."""

    def send(self, user_id: int, payload: Dict[str, Any], subscriptions: List[Dict[str, str]]) -> None:
        raise NotImplementedError


class LoggingPushSender(PushSender):
    """Отправитель по умолчанию (dev/тесты): только пишет в лог."""

    def send(self, user_id, payload, subscriptions):
        log.info("push (log only) -> user=%s devices=%s payload=%s", user_id, len(subscriptions), payload)


class WebhookPushSender(PushSender):
    """Отдаёт уведомление во внешний push-шлюз (web-push/VAPID живут там)."""

    def __init__(self, gateway_url: str, timeout: float = PUSH_TIMEOUT_SECONDS):
        self.gateway_url = gateway_url
        self.timeout = timeout

    def send(self, user_id, payload, subscriptions):
        resp = httpx.post(
            self.gateway_url,
            json={"user_id": user_id, "payload": payload, "subscriptions": subscriptions},
            timeout=self.timeout,
        )
        resp.raise_for_status()


_sender: Optional[PushSender] = None


def get_push_sender() -> PushSender:
    global _sender
    if _sender is None:
        url = os.getenv("PUSH_GATEWAY_URL")
        _sender = WebhookPushSender(url) if url else LoggingPushSender()
    return _sender


def set_push_sender(sender: Optional[PushSender]) -> None:
    """Подмена отправителя (тесты, альтернативные шлюзы). None - вернуть выбор по env."""
    global _sender
    _sender = sender


def make_payload(title: str, body: str, *, kind: str, url: Optional[str] = None, **data: Any) -> Dict[str, Any]:
    return {
        "title": title,
        "body": body,
        "tag": kind,
        "data": {"type": kind, "url": url, **data},
    }


def send_push_safely(user_id: int, payload: Dict[str, Any], subscriptions: List[Dict[str, str]]) -> bool:
    """Фоновая задача. Никогда не бросает: возвращает False при ошибке."""
    try:
        get_push_sender().send(user_id, payload, subscriptions)
        return True
    except Exception:
        log.exception("push delivery failed for user %s (tag=%s)", user_id, payload.get("tag"))
        return False


def _subscriptions_for(db: Session, user_id: int) -> List[Dict[str, str]]:
    rows = db.query(PushSubscription).filter(PushSubscription.user_id == user_id).all()
    return [{"endpoint": s.endpoint, "p256dh": s.p256dh, "auth": s.auth} for s in rows]


def queue_push(background: Optional[BackgroundTasks], db: Session, user_id: int, payload: Dict[str, Any]) -> bool:
    """
    Ставит push в очередь фоновых задач запроса.
    Пропускает, если у получателя выключены уведомления или нет устройств.
    """
    if background is None:
        return False
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.push_notifications_enabled:
        return False
    subs = _subscriptions_for(db, user_id)
    if not subs:
        return False
    background.add_task(send_push_safely, user_id, payload, subs)
    return True


# ===== Подписки устройств ======================================================

def subscribe(db: Session, user: User, *, endpoint: str, p256dh: str, auth: str,
              user_agent: Optional[str], now) -> PushSubscription:
    """Регистрирует устройство. Тот же endpoint переезжает к текущему пользователю."""
    endpoint = (endpoint or "").strip()
    if not endpoint or not p256dh or not auth:
        raise ValidationFailed("invalid_subscription", "endpoint, p256dh and auth are required")

    sub = db.query(PushSubscription).filter(PushSubscription.endpoint == endpoint).first()
    if sub:
        sub.user_id = user.id
        sub.p256dh = p256dh
        sub.auth = auth
        sub.user_agent = user_agent
        return sub

    sub = PushSubscription(
        user_id=user.id, endpoint=endpoint, p256dh=p256dh, auth=auth,
        user_agent=user_agent, created_at=now,
    )
    db.add(sub)
    db.flush()
    return sub


def unsubscribe(db: Session, user: User, endpoint: str) -> bool:
    sub = (
        db.query(PushSubscription)
        .filter(PushSubscription.endpoint == endpoint, PushSubscription.user_id == user.id)
        .first()
    )
    if not sub:
        return False
    db.delete(sub)
    return True

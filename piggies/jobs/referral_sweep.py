# piggies/jobs/referral_sweep.py
# ЕЖЕДНЕВНАЯ ДОВОДКА ВРЕМЕННЫХ СОСТОЯНИЙ
# -----------------------------------------------------------------------------
# Что делает этот модуль:
#   • активирует/сжигает pending-рефералы, у которых прошло окно в 7 дней
#     (и начисляет Ultra за каждые 3 активации);
#   • снимает истёкший Ultra за рефералов;
#   • снимает флаги истёкших приостановок;
#   • гасит истёкшие посты "ищу сейчас".
#
# Все шаги идемпотентны; статистика рефералов ещё и лениво догоняет
# pending-рефералы при чтении, поэтому пропуск запуска ничего не ломает.
#
# Как запускать:
#   Вариант А) Одноразовый прогон:
#       >>> from piggies.jobs.referral_sweep import referral_sweep_once
#       >>> referral_sweep_once()
#
#   Вариант Б) Фоновая задача раз в сутки из FastAPI startup
#       (main.py, ENV: REFERRAL_SWEEP_ENABLED=1):
#           start_referral_sweep_loop()
# -----------------------------------------------------------------------------

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timedelta
from typing import Optional

from piggies.db import SessionLocal
from piggies.services.looking_now import cleanup_expired_posts
from piggies.services.moderation import clear_expired_suspensions
from piggies.services.referrals import clear_expired_referral_ultra, sweep_pending_referrals
from piggies.utils.dates import utc_now

log = logging.getLogger(__name__)

SWEEP_HOUR = int(os.getenv("REFERRAL_SWEEP_HOUR", "3"))


def referral_sweep_once(now: Optional[datetime] = None) -> dict:
    """
    Одноразовый прогон в собственной сессии, один commit на всё.
    Возвращает сводку.
    """
    now = now or utc_now()
    with SessionLocal() as db:
        referrals = sweep_pending_referrals(db, now)
        ultra_cleared = clear_expired_referral_ultra(db, now)
        suspensions_cleared = clear_expired_suspensions(db, now)
        posts_expired = cleanup_expired_posts(db, now)
        db.commit()

    summary = {
        **referrals,
        "referral_ultra_cleared": ultra_cleared,
        "suspensions_cleared": suspensions_cleared,
        "looking_now_expired": posts_expired,
    }
    log.info("referral sweep summary: %s", summary)
    return summary


async def _sleep_until_next_run(hour: int = SWEEP_HOUR, minute: int = 0) -> None:
    """Спит до следующего окна запуска (по умолчанию 03:00 UTC)."""
    now = utc_now()
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target = target + timedelta(days=1)
    await asyncio.sleep((target - now).total_seconds())


async def _loop_daily() -> None:
    while True:
        try:
            await _sleep_until_next_run()
            referral_sweep_once()
        except Exception:
            # упавший прогон не должен останавливать цикл
            log.exception("referral sweep iteration failed")


def start_referral_sweep_loop() -> None:
    """Запускает фоновую задачу в текущем asyncio-цикле (вызывать из startup)."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    loop.create_task(_loop_daily())

# piggies/services/standing.py
# -----------------------------------------------------------------------------
# Модерационный статус пользователя как сумма типов:
#     Active | Warned(n) | Suspended(until) | Banned(reason)
# и чистая функция перехода transition(standing, action, now).
#
# Колонки User (is_banned / is_suspended / suspended_until / warning_count ...)
# - только проекция статуса: standing_of() читает их, standing_to_columns()
# пишет обратно. "Забанен и приостановлен одновременно" непредставимо:
# бан заменяет приостановку. Приостановка с suspended_until в прошлом
# читается как её отсутствие.
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from piggies.services.errors import InvalidState, ValidationFailed


# ===== Состояния ===============================================================

@dataclass(frozen=True)
class Active:
    warnings: int = 0


@dataclass(frozen=True)
class Warned:
    warnings: int


@dataclass(frozen=True)
class Suspended:
    until: datetime
    reason: Optional[str] = None
    warnings: int = 0


@dataclass(frozen=True)
class Banned:
    reason: Optional[str]
    banned_at: datetime
    warnings: int = 0


Standing = Union[Active, Warned, Suspended, Banned]


# ===== Действия ================================================================

@dataclass(frozen=True)
class Warn:
    reason: Optional[str] = None


@dataclass(frozen=True)
class Suspend:
    until: datetime
    reason: Optional[str] = None


@dataclass(frozen=True)
class Ban:
    reason: str


@dataclass(frozen=True)
class Unban:
    pass


@dataclass(frozen=True)
class Unsuspend:
    pass


@dataclass(frozen=True)
class ClearWarnings:
    pass


@dataclass(frozen=True)
class RemoveWarning:
    pass


Action = Union[Warn, Suspend, Ban, Unban, Unsuspend, ClearWarnings, RemoveWarning]


def _unrestricted(warnings: int) -> Standing:
    return Warned(warnings) if warnings > 0 else Active()


def _with_warnings(standing: Standing, warnings: int) -> Standing:
    """Тот же статус с другим счётчиком предупреждений."""
    warnings = max(0, warnings)
    if isinstance(standing, Banned):
        return Banned(reason=standing.reason, banned_at=standing.banned_at, warnings=warnings)
    if isinstance(standing, Suspended):
        return Suspended(until=standing.until, reason=standing.reason, warnings=warnings)
    return _unrestricted(warnings)


def transition(standing: Standing, action: Action, now: datetime) -> Standing:
    """
    Чистый переход статуса. Предупреждения никогда не меняют бан/приостановку,
    эскалация - отдельное решение вызывающего кода.
    """
    warnings = standing.warnings

    if isinstance(action, Warn):
        return _with_warnings(standing, warnings + 1)

    if isinstance(action, RemoveWarning):
        return _with_warnings(standing, warnings - 1)

    if isinstance(action, ClearWarnings):
        return _with_warnings(standing, 0)

    if isinstance(action, Suspend):
        if action.until <= now:
            raise ValidationFailed("suspension_in_past", "Suspension end must be in the future")
        if isinstance(standing, Banned):
            raise InvalidState("user_banned", "Banned user cannot be suspended")
        return Suspended(until=action.until, reason=action.reason, warnings=warnings)

    if isinstance(action, Ban):
        # бан заменяет приостановку
        return Banned(reason=action.reason, banned_at=now, warnings=warnings)

    if isinstance(action, Unban):
        if isinstance(standing, Banned):
            return _unrestricted(warnings)
        return standing

    if isinstance(action, Unsuspend):
        if isinstance(standing, Suspended):
            return _unrestricted(warnings)
        return standing

    raise TypeError(f"unknown moderation action: {action!r}")


# ===== Проекция на колонки User ================================================

def standing_of(user, now: datetime) -> Standing:
    warnings = user.warning_count or 0
    if user.is_banned:
        return Banned(reason=user.banned_reason, banned_at=user.banned_at or now, warnings=warnings)
    if user.is_suspended and user.suspended_until is not None and user.suspended_until > now:
        return Suspended(until=user.suspended_until, reason=user.suspended_reason, warnings=warnings)
    return _unrestricted(warnings)


def standing_to_columns(standing: Standing) -> dict:
    cols = {
        "is_banned": False,
        "banned_at": None,
        "banned_reason": None,
        "is_suspended": False,
        "suspended_until": None,
        "suspended_reason": None,
        "warning_count": standing.warnings,
    }
    if isinstance(standing, Banned):
        cols.update(is_banned=True, banned_at=standing.banned_at, banned_reason=standing.reason)
    elif isinstance(standing, Suspended):
        cols.update(is_suspended=True, suspended_until=standing.until, suspended_reason=standing.reason)
    return cols


def apply_standing(user, standing: Standing) -> None:
    for field, value in standing_to_columns(standing).items():
        setattr(user, field, value)


def is_restricted(standing: Standing) -> bool:
    return isinstance(standing, (Banned, Suspended))


def status_label(standing: Standing) -> str:
    if isinstance(standing, Banned):
        return "banned"
    if isinstance(standing, Suspended):
        return "suspended"
    if isinstance(standing, Warned):
        return "warned"
    return "active"


def standing_summary(user, now: datetime) -> dict:
    """Статус пользователя для ответа API (StandingOut)."""
    current = standing_of(user, now)
    cols = standing_to_columns(current)
    cols.pop("banned_at")
    return {"user_id": user.id, "status": status_label(current), **cols}

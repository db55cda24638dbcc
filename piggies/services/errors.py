# piggies/services/errors.py
# Ошибки бизнес-слоя. Роутеры их не ловят: main.py превращает их в
# JSON-ответ {"detail": {"code": ..., "message": ...}} с нужным статусом.

from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    status_code = 400

    def __init__(self, code: str, message: Optional[str] = None):
        super().__init__(message or code)
        self.code = code
        self.message = message or code

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationFailed(ServiceError):
    status_code = 422


class PermissionDenied(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class InvalidState(ServiceError):
    status_code = 409

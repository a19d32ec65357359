from __future__ import annotations

from typing import Any


class AppError(Exception):
    code = "APP_ERROR"

    def __init__(self, message: str = "", **meta: Any) -> None:
        super().__init__(message or self.code)
        self.meta = meta


class NotFound(AppError):
    code = "NOT_FOUND"


class InvalidStatusTransition(AppError):
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot transition from {current} to {target}", current=current, target=target)
        self.current = current
        self.target = target


class BoardError(AppError):
    code = "BOARD_ERROR"

    def __init__(self, message: str = "", *, status_code: int | None = None, retryable: bool = False, **meta: Any) -> None:
        super().__init__(message, status_code=status_code, **meta)
        self.status_code = status_code
        self.retryable = retryable


class NotificationError(AppError):
    code = "NOTIFICATION_ERROR"


class RecipientUnreachable(NotificationError):
    """The chat blocked the bot or no longer exists; retrying right away is pointless."""

    code = "RECIPIENT_UNREACHABLE"


class StoreError(AppError):
    code = "STORE_ERROR"


_USER_MESSAGES = {
    NotFound.code: "❌ Задача не найдена.",
    InvalidStatusTransition.code: "❌ Такой переход статуса не разрешён.",
    BoardError.code: "❌ Ошибка при работе с доской задач. Попробуйте позже.",
    StoreError.code: "❌ Ошибка хранилища. Попробуйте позже.",
}
_SYSTEM_ERROR = "❌ Произошла системная ошибка. Попробуйте позже."


def user_message(exc: BaseException) -> str:
    if isinstance(exc, AppError):
        return _USER_MESSAGES.get(exc.code, _SYSTEM_ERROR)
    return _SYSTEM_ERROR


def is_caller_error(exc: BaseException) -> bool:
    return isinstance(exc, (NotFound, InvalidStatusTransition))

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from aiogram import Bot
from aiogram.exceptions import (
    TelegramAPIError,
    TelegramBadRequest,
    TelegramForbiddenError,
    TelegramNetworkError,
    TelegramRetryAfter,
    TelegramServerError,
)
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from loguru import logger

from taskpulse.config import settings
from taskpulse.errors import NotificationError, RecipientUnreachable

_UNREACHABLE_MARKERS = ("chat not found", "user not found", "bot was blocked", "user is deactivated")


@dataclass(frozen=True, slots=True)
class Action:
    text: str
    callback_data: str


class Notifier(Protocol):
    async def send(self, recipient_id: int, text: str, actions: Optional[Sequence[Action]] = None) -> None: ...


def build_keyboard(actions: Optional[Sequence[Action]]) -> Optional[InlineKeyboardMarkup]:
    if not actions:
        return None
    return InlineKeyboardMarkup(
        inline_keyboard=[[InlineKeyboardButton(text=a.text, callback_data=a.callback_data)] for a in actions]
    )


class TelegramNotifier:
    """Delivers texts to Telegram chats.

    Network and 5xx failures are retried with exponential backoff. A chat that
    blocked the bot or vanished raises RecipientUnreachable, everything else
    that is not retryable raises NotificationError.
    """

    def __init__(
        self,
        bot: Bot,
        *,
        timeout_sec: Optional[int] = None,
        max_retries: Optional[int] = None,
        backoff_base_sec: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._bot = bot
        self._timeout = timeout_sec if timeout_sec is not None else settings.telegram_timeout_sec
        self._max_retries = max(0, max_retries if max_retries is not None else settings.http_max_retries)
        self._backoff_base = backoff_base_sec if backoff_base_sec is not None else settings.http_backoff_base_sec
        self._sleep = sleep

    async def send(self, recipient_id: int, text: str, actions: Optional[Sequence[Action]] = None) -> None:
        markup = build_keyboard(actions)
        attempt = 0
        while True:
            try:
                await self._bot.send_message(
                    chat_id=recipient_id,
                    text=text,
                    reply_markup=markup,
                    request_timeout=self._timeout,
                )
                return
            except TelegramForbiddenError as exc:
                logger.warning("telegram recipient unreachable chat_id={} err={}", recipient_id, exc.message)
                raise RecipientUnreachable(exc.message, recipient_id=recipient_id) from exc
            except TelegramBadRequest as exc:
                lowered = (exc.message or "").lower()
                if any(marker in lowered for marker in _UNREACHABLE_MARKERS):
                    logger.warning("telegram recipient unreachable chat_id={} err={}", recipient_id, exc.message)
                    raise RecipientUnreachable(exc.message, recipient_id=recipient_id) from exc
                raise NotificationError(exc.message, recipient_id=recipient_id) from exc
            except TelegramRetryAfter as exc:
                raise NotificationError(
                    f"flood control, retry after {exc.retry_after}s",
                    recipient_id=recipient_id,
                    retry_after=exc.retry_after,
                ) from exc
            except (TelegramNetworkError, TelegramServerError) as exc:
                if attempt >= self._max_retries:
                    raise NotificationError(str(exc), recipient_id=recipient_id) from exc
                attempt += 1
                delay = self._backoff_base * (2 ** (attempt - 1))
                logger.warning(
                    "telegram retry {}/{} chat_id={} delay={}s err={}",
                    attempt,
                    self._max_retries,
                    recipient_id,
                    delay,
                    type(exc).__name__,
                )
                await self._sleep(delay)
            except TelegramAPIError as exc:
                raise NotificationError(str(exc), recipient_id=recipient_id) from exc

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Protocol, Sequence

import httpx
from loguru import logger

from taskpulse.board.lists import BoardList
from taskpulse.config import settings
from taskpulse.errors import BoardError


class Board(Protocol):
    def get_board_lists(self, board_id: Optional[str] = None) -> Sequence[BoardList]: ...

    def update_card(self, card_id: str, *, list_id: str, position: Optional[float] = None) -> dict[str, Any]: ...


class AssignableBoard(Board, Protocol):
    def add_card_member(self, card_id: str, user_id: str) -> None: ...


class ActivitySink(Protocol):
    def add_comment(self, card_id: str, text: str) -> None: ...


class PlankaClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        *,
        board_id: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base_sec: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._base_url = (base_url or settings.planka_base_url).rstrip("/")
        self._username = username if username is not None else settings.planka_username
        self._password = password if password is not None else settings.planka_password
        self._board_id = board_id or settings.planka_board_id
        self._timeout = timeout_sec if timeout_sec is not None else settings.planka_timeout_sec
        self._max_retries = max(0, max_retries if max_retries is not None else settings.http_max_retries)
        self._backoff_base = backoff_base_sec if backoff_base_sec is not None else settings.http_backoff_base_sec
        self._transport = transport
        self._sleep = sleep
        self._token: Optional[str] = None
        self._token_expiry: Optional[datetime] = None

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )

    def _headers(self) -> dict[str, str]:
        if self._token is None:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    def authenticate(self) -> None:
        try:
            with self._client() as client:
                resp = client.post(
                    "/access-tokens",
                    json={"emailOrUsername": self._username, "password": self._password},
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise BoardError("Failed to authenticate with Planka", status_code=exc.response.status_code) from exc
        except httpx.TransportError as exc:
            raise BoardError("Failed to authenticate with Planka", retryable=True) from exc
        self._token = str(data.get("item") or "")
        self._token_expiry = datetime.now(timezone.utc) + timedelta(days=settings.planka_token_ttl_days)
        logger.info("planka authenticated base_url={}", self._base_url)

    def _ensure_authenticated(self) -> None:
        if not self._token or self._token_expiry is None or self._token_expiry < datetime.now(timezone.utc):
            self.authenticate()

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        self._ensure_authenticated()
        attempt = 0
        reauthenticated = False
        while True:
            try:
                with self._client() as client:
                    resp = client.request(method, path, headers=self._headers(), **kwargs)
            except httpx.TransportError as exc:
                error = BoardError(f"Planka {method} {path} failed: {type(exc).__name__}", retryable=True)
                error.__cause__ = exc
            else:
                if resp.status_code == 401 and not reauthenticated:
                    reauthenticated = True
                    self.authenticate()
                    continue
                if resp.status_code < 400:
                    return resp.json() if resp.content else {}
                error = BoardError(
                    f"Planka {method} {path} returned {resp.status_code}",
                    status_code=resp.status_code,
                    retryable=resp.status_code >= 500,
                )

            if not error.retryable or attempt >= self._max_retries:
                logger.error("planka request failed method={} path={} err={}", method, path, error)
                raise error
            attempt += 1
            delay = self._backoff_base * (2 ** (attempt - 1))
            logger.warning(
                "planka retry {}/{} method={} path={} delay={}s",
                attempt,
                self._max_retries,
                method,
                path,
                delay,
            )
            self._sleep(delay)

    def get_board_lists(self, board_id: Optional[str] = None) -> list[BoardList]:
        data = self._request("GET", f"/boards/{board_id or self._board_id}/lists")
        lists = [BoardList.from_payload(item) for item in data.get("items") or []]
        return sorted(lists, key=lambda item: item.position)

    def update_card(self, card_id: str, *, list_id: str, position: Optional[float] = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"listId": list_id}
        if position is not None:
            payload["position"] = position
        data = self._request("PATCH", f"/cards/{card_id}", json=payload)
        logger.info("planka card moved card_id={} list_id={}", card_id, list_id)
        return data.get("item") or {}

    def add_comment(self, card_id: str, text: str) -> None:
        self._request("POST", f"/cards/{card_id}/comment-actions", json={"text": text})

    def add_card_member(self, card_id: str, user_id: str) -> None:
        self._request("POST", f"/cards/{card_id}/memberships", json={"userId": user_id})
        logger.info("planka member added card_id={} user_id={}", card_id, user_id)

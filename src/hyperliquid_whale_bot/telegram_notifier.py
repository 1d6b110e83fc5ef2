from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_UNREACHABLE_HINTS = (
    "chat not found",
    "user is deactivated",
    "bot was blocked",
    "bot was kicked",
)


class TelegramError(RuntimeError):
    pass


class RecipientUnreachableError(TelegramError):
    """The recipient blocked the bot, left, or no longer exists."""

    def __init__(self, chat_id: str, description: str) -> None:
        super().__init__(f"Recipient {chat_id} unreachable: {description}")
        self.chat_id = chat_id
        self.description = description


class TelegramClient:
    def __init__(
        self,
        bot_token: str,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout = timeout
        self._base = f"https://api.telegram.org/bot{bot_token}"
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._offset = 0

    async def close(self) -> None:
        await self._client.aclose()

    async def send(self, chat_id: str, text: str) -> None:
        try:
            response = await self._client.post(
                f"{self._base}/sendMessage",
                json={
                    "chat_id": chat_id,
                    "text": text,
                    "parse_mode": "HTML",
                    "disable_web_page_preview": True,
                },
            )
        except httpx.HTTPError as exc:
            raise TelegramError(f"Telegram send to {chat_id} failed: {exc!r}") from exc

        data = _json_or_empty(response)
        if response.status_code == 200 and data.get("ok", False):
            return

        description = str(data.get("description") or response.reason_phrase or "")
        if _is_unreachable(response.status_code, description):
            raise RecipientUnreachableError(str(chat_id), description)
        raise TelegramError(
            f"Telegram send to {chat_id} failed with HTTP {response.status_code}: {description}"
        )

    async def get_updates(self, offset: int, timeout: int = 30) -> list[dict[str, Any]]:
        try:
            response = await self._client.get(
                f"{self._base}/getUpdates",
                params={"offset": offset, "timeout": timeout, "allowed_updates": '["message"]'},
                timeout=timeout + self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TelegramError(f"getUpdates failed: {exc!r}") from exc

        data = _json_or_empty(response)
        if not data.get("ok", False):
            raise TelegramError(f"getUpdates failed: {data.get('description', data)}")
        result = data.get("result", [])
        return [u for u in result if isinstance(u, dict)] if isinstance(result, list) else []

    async def updates(self, poll_timeout: int = 30) -> AsyncIterator[dict[str, Any]]:
        """Yield incoming messages forever, reconnecting with backoff on errors."""
        backoff = 1.0
        while True:
            try:
                batch = await self.get_updates(self._offset, timeout=poll_timeout)
                backoff = 1.0
            except asyncio.CancelledError:
                raise
            except TelegramError as exc:
                logger.warning("Polling failed (%s). Retrying in %.1fs", exc, backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, 30.0)
                continue

            for update in batch:
                update_id = update.get("update_id")
                if isinstance(update_id, int):
                    self._offset = max(self._offset, update_id + 1)
                message = update.get("message")
                if isinstance(message, dict):
                    yield message


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _is_unreachable(status_code: int, description: str) -> bool:
    if status_code == 403:
        return True
    text = description.lower()
    return status_code == 400 and any(hint in text for hint in _UNREACHABLE_HINTS)

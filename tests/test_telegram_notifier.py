import asyncio
import json

import httpx
import pytest

from hyperliquid_whale_bot.telegram_notifier import (
    RecipientUnreachableError,
    TelegramClient,
    TelegramError,
)


def _client(handler) -> TelegramClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TelegramClient("TOKEN", client=http)


def test_send_posts_html_message() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"ok": True, "result": {}})

    asyncio.run(_client(handler).send("42", "<b>hi</b>"))

    path, body = seen[0]
    assert path == "/botTOKEN/sendMessage"
    assert body["chat_id"] == "42"
    assert body["parse_mode"] == "HTML"
    assert body["disable_web_page_preview"] is True


def test_send_blocked_recipient_raises_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            403, json={"ok": False, "error_code": 403, "description": "Forbidden: bot was blocked by the user"}
        )

    with pytest.raises(RecipientUnreachableError) as info:
        asyncio.run(_client(handler).send("42", "hi"))
    assert info.value.chat_id == "42"


def test_send_chat_not_found_is_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"ok": False, "description": "Bad Request: chat not found"})

    with pytest.raises(RecipientUnreachableError):
        asyncio.run(_client(handler).send("42", "hi"))


def test_send_other_failures_are_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"ok": False, "description": "Bad Request: can't parse entities"})

    with pytest.raises(TelegramError) as info:
        asyncio.run(_client(handler).send("42", "hi"))
    assert not isinstance(info.value, RecipientUnreachableError)


def test_updates_yields_messages_and_advances_offset() -> None:
    offsets = []

    def handler(request: httpx.Request) -> httpx.Response:
        offsets.append(int(request.url.params["offset"]))
        return httpx.Response(
            200,
            json={
                "ok": True,
                "result": [
                    {"update_id": 5, "message": {"chat": {"id": 1}, "text": "/status"}},
                    {"update_id": 6, "edited_message": {}},
                    {"update_id": 7, "message": {"chat": {"id": 2}, "text": "/top"}},
                ],
            },
        )

    client = _client(handler)

    async def first_two() -> list:
        out = []
        async for message in client.updates(poll_timeout=0):
            out.append(message["text"])
            if len(out) == 2:
                break
        return out

    assert asyncio.run(first_two()) == ["/status", "/top"]
    assert offsets == [0]
    assert client._offset == 8

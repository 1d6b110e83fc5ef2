import asyncio

from hyperliquid_whale_bot.commands import parse_command
from hyperliquid_whale_bot.config import Settings
from hyperliquid_whale_bot.service import WhaleAlertService


class DummyTransport:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, chat_id: str, text: str) -> None:
        self.sent.append((chat_id, text))


def _service() -> WhaleAlertService:
    settings = Settings(telegram_bot_token="t", whale_threshold_usd=50000, whale_threshold_floor=1000)
    service = WhaleAlertService(settings, clock=lambda: 1730000000.0)
    service.dispatcher.transport = DummyTransport()
    return service


def _say(service: WhaleAlertService, text: str, chat_id: int = 5):
    return asyncio.run(service.commands.handle({"chat": {"id": chat_id}, "text": text}))


def test_parse_command() -> None:
    assert parse_command("/threshold 5000") == ("threshold", ["5000"])
    assert parse_command("/status@whale_bot") == ("status", [])
    assert parse_command("/Start") is None
    assert parse_command("/unknown") is None
    assert parse_command("hello /start") is None
    assert parse_command(None) is None


def test_threshold_below_floor_is_rejected() -> None:
    service = _service()
    reply = _say(service, "/threshold 500")
    assert "Minimum threshold is $1,000" in reply
    assert service.threshold.value == 50000
    assert service.dispatcher.transport.sent == [("5", reply)]


def test_threshold_update_and_usage() -> None:
    service = _service()
    assert "set to $2,000" in _say(service, "/threshold 2000")
    assert service.threshold.value == 2000
    assert "Usage: /threshold" in _say(service, "/threshold abc")
    assert "Usage: /threshold" in _say(service, "/threshold")
    assert service.threshold.value == 2000


def test_subscribe_is_idempotent() -> None:
    service = _service()
    _say(service, "/subscribe")
    reply = _say(service, "/subscribe")
    assert "already subscribed" in reply
    assert len(service.subscribers) == 1


def test_unsubscribe_unknown_chat_is_noop() -> None:
    service = _service()
    service.subscribers.add("9")
    assert "not subscribed" in _say(service, "/unsubscribe", chat_id=5)
    assert len(service.subscribers) == 1
    assert "Unsubscribed" in _say(service, "/unsubscribe", chat_id=9)
    assert len(service.subscribers) == 0


def test_start_subscribes_and_welcomes() -> None:
    service = _service()
    reply = _say(service, "/start")
    assert "5" in service.subscribers
    assert "$50,000" in reply
    assert "Channel not configured" in reply


def test_status_assets_and_top() -> None:
    service = _service()
    status = _say(service, "/status")
    assert "Connection: 🔴 Disconnected" in status
    assert "Monitored Assets: 10" in status

    assets = _say(service, "/assets")
    assert "• BTC-PERP" in assets
    assert "<b>Total:</b> 10 assets" in assets

    assert "No whale trades yet" in _say(service, "/top")


def test_unrecognized_text_is_ignored() -> None:
    service = _service()
    assert _say(service, "gm") is None
    assert _say(service, "/START") is None
    assert asyncio.run(service.commands.handle({"text": "/status"})) is None
    assert service.dispatcher.transport.sent == []


def test_threshold_with_non_ascii_digits_gets_usage() -> None:
    service = _service()
    for text in ("/threshold 5000²", "/threshold ①"):
        reply = _say(service, text)
        assert "Usage: /threshold" in reply
        assert service.dispatcher.transport.sent[-1] == ("5", reply)
    assert service.threshold.value == 50000

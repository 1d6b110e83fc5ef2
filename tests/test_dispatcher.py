import asyncio

from hyperliquid_whale_bot.dispatcher import Dispatcher
from hyperliquid_whale_bot.subscribers import SubscriberSet
from hyperliquid_whale_bot.telegram_notifier import RecipientUnreachableError, TelegramError


class DummyTransport:
    def __init__(self, blocked: set[str] | None = None, flaky: set[str] | None = None) -> None:
        self.blocked = blocked or set()
        self.flaky = flaky or set()
        self.attempts: list[str] = []

    async def send(self, chat_id: str, text: str) -> None:
        self.attempts.append(chat_id)
        if chat_id in self.blocked:
            raise RecipientUnreachableError(chat_id, "Forbidden: bot was blocked by the user")
        if chat_id in self.flaky:
            raise TelegramError("HTTP 502")


def test_subscriber_set_is_idempotent() -> None:
    subscribers = SubscriberSet()
    assert subscribers.add(1) is True
    assert subscribers.add("1") is False
    assert len(subscribers) == 1
    assert subscribers.remove(2) is False
    assert subscribers.remove(1) is True
    assert subscribers.remove(1) is False
    assert len(subscribers) == 0


def test_broadcast_sends_channel_first_then_subscribers() -> None:
    transport = DummyTransport()
    dispatcher = Dispatcher(transport, SubscriberSet(["10", "20"]), channel_id="@whales")

    report = asyncio.run(dispatcher.broadcast("hi"))

    assert transport.attempts == ["@whales", "10", "20"]
    assert report.delivered == ["@whales", "10", "20"]


def test_permanent_failure_prunes_without_short_circuit() -> None:
    transport = DummyTransport(blocked={"20"})
    subscribers = SubscriberSet(["10", "20", "30", "40"])
    dispatcher = Dispatcher(transport, subscribers)

    report = asyncio.run(dispatcher.broadcast("alert"))

    assert transport.attempts == ["10", "20", "30", "40"]
    assert "20" not in subscribers
    assert len(subscribers) == 3
    assert report.removed == ["20"]
    assert report.delivered == ["10", "30", "40"]


def test_transient_failure_keeps_recipient() -> None:
    transport = DummyTransport(flaky={"10"})
    subscribers = SubscriberSet(["10", "20"])

    report = asyncio.run(Dispatcher(transport, subscribers).broadcast("alert"))

    assert "10" in subscribers
    assert report.failed == ["10"]
    assert report.delivered == ["20"]


def test_channel_failure_is_not_pruned_and_does_not_block() -> None:
    transport = DummyTransport(blocked={"@whales"})
    subscribers = SubscriberSet(["10"])
    dispatcher = Dispatcher(transport, subscribers, channel_id="@whales")

    report = asyncio.run(dispatcher.broadcast("alert"))

    assert transport.attempts == ["@whales", "10"]
    assert report.delivered == ["10"]
    assert report.removed == []


def test_summary_broadcast_can_skip_subscribers() -> None:
    transport = DummyTransport()
    dispatcher = Dispatcher(transport, SubscriberSet(["10"]), channel_id="@whales")
    asyncio.run(dispatcher.broadcast("summary", include_subscribers=False))
    assert transport.attempts == ["@whales"]


def test_notify_operator_targets_admin_and_channel_once() -> None:
    transport = DummyTransport()
    dispatcher = Dispatcher(transport, SubscriberSet(["10"]), channel_id="@c", admin_chat_id="99")
    asyncio.run(dispatcher.notify_operator("down"))
    assert transport.attempts == ["99", "@c"]

    same = DummyTransport()
    asyncio.run(Dispatcher(same, SubscriberSet(), channel_id="7", admin_chat_id="7").notify_operator("x"))
    assert same.attempts == ["7"]


def test_reply_to_blocked_subscriber_prunes() -> None:
    transport = DummyTransport(blocked={"10"})
    subscribers = SubscriberSet(["10"])
    assert asyncio.run(Dispatcher(transport, subscribers).reply("10", "hi")) is False
    assert len(subscribers) == 0

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

import websockets

from .types import ConnectionState, ConnectionStatus, Trade, TradeSide

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]
FatalCallback = Callable[[int], Awaitable[None]]


def subscription_messages(
    assets: Iterable[str],
    subscribe_candles: bool = True,
    candle_interval: str = "1m",
) -> list[dict[str, Any]]:
    coins = list(assets)
    messages: list[dict[str, Any]] = [
        {"method": "subscribe", "subscription": {"type": "trades", "coin": coin}} for coin in coins
    ]
    messages.append({"method": "subscribe", "subscription": {"type": "allMids"}})
    if subscribe_candles:
        messages.extend(
            {
                "method": "subscribe",
                "subscription": {"type": "candle", "coin": coin, "interval": candle_interval},
            }
            for coin in coins
        )
    return messages


class FeedConnection:
    """One streaming connection to the exchange feed.

    Lifecycle is Connecting -> Open -> Closed -> Connecting. Each close or
    error schedules a reconnect after ``base_delay * attempts`` (linear),
    until ``max_attempts`` is exhausted; then ``on_fatal`` fires once and
    ``run`` returns. A successful open resets the attempt counter.

    Inbound messages are routed by their ``channel`` field to exactly one
    handler; unknown channels are ignored.
    """

    def __init__(
        self,
        ws_url: str,
        assets: Iterable[str],
        handlers: Mapping[str, Handler],
        *,
        max_attempts: int = 5,
        base_delay: float = 5.0,
        subscribe_candles: bool = True,
        candle_interval: str = "1m",
        on_fatal: FatalCallback | None = None,
        connect: Callable[..., Any] = websockets.connect,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.ws_url = ws_url
        self.assets = tuple(assets)
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.subscribe_candles = subscribe_candles
        self.candle_interval = candle_interval
        self.state = ConnectionState()
        self.messages_received = 0
        self._handlers = dict(handlers)
        self._on_fatal = on_fatal
        self._connect = connect
        self._sleep = sleep
        self._ws: Any = None
        self._stopping = False
        self._fatal_signalled = False

    @property
    def is_open(self) -> bool:
        return self.state.status is ConnectionStatus.OPEN and self._ws is not None

    @property
    def gave_up(self) -> bool:
        return self._fatal_signalled

    async def run(self) -> None:
        self._stopping = False
        while not self._stopping:
            self._transition(ConnectionStatus.CONNECTING)
            try:
                async with self._connect(self.ws_url, ping_interval=None, max_size=None) as ws:
                    self._ws = ws
                    self._transition(ConnectionStatus.OPEN)
                    await self._subscribe(ws)
                    async for raw in ws:
                        await self.on_message(raw)
                logger.warning("Feed connection closed by remote")
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Feed connection error: %s", exc)
            finally:
                self._ws = None
                self._transition(ConnectionStatus.CLOSED)

            if self._stopping:
                break

            delay = self.next_reconnect_delay()
            if delay is None:
                await self._give_up()
                return
            logger.info(
                "Reconnecting to feed in %.1fs (attempt %d/%d)",
                delay,
                self.state.reconnect_attempts,
                self.max_attempts,
            )
            await self._sleep(delay)

    def next_reconnect_delay(self) -> float | None:
        if self.state.reconnect_attempts >= self.max_attempts:
            return None
        self.state.reconnect_attempts += 1
        return self.base_delay * self.state.reconnect_attempts

    async def on_message(self, raw: str | bytes) -> None:
        self.messages_received += 1
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as exc:
            logger.warning("Discarding malformed feed payload: %s", exc)
            return
        if not isinstance(message, dict):
            logger.debug("Ignoring non-object feed payload")
            return

        channel = message.get("channel")
        handler = self._handlers.get(channel) if isinstance(channel, str) else None
        if handler is None:
            logger.debug("Ignoring feed message on channel %r", channel)
            return

        try:
            result = handler(message.get("data"))
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Handler for feed channel %s failed", channel)

    async def ping(self) -> bool:
        ws = self._ws
        if not self.is_open or ws is None:
            return False
        try:
            await ws.ping()
        except Exception as exc:
            logger.warning("Heartbeat ping failed: %s", exc)
            return False
        return True

    async def close(self) -> None:
        self._stopping = True
        ws = self._ws
        if ws is not None:
            await ws.close()

    def _transition(self, status: ConnectionStatus) -> None:
        previous = self.state.status
        self.state.status = status
        if status is ConnectionStatus.OPEN:
            self.state.reconnect_attempts = 0
            logger.info("Connected to feed %s", self.ws_url)
        elif status is ConnectionStatus.CLOSED and previous is ConnectionStatus.OPEN:
            logger.info("Feed connection %s closed", self.ws_url)

    async def _subscribe(self, ws: Any) -> None:
        messages = subscription_messages(self.assets, self.subscribe_candles, self.candle_interval)
        for message in messages:
            await ws.send(json.dumps(message))
        logger.info(
            "Subscribed to %d feed topics for %d assets", len(messages), len(self.assets)
        )

    async def _give_up(self) -> None:
        if self._fatal_signalled:
            return
        self._fatal_signalled = True
        logger.error(
            "Max reconnection attempts (%d) reached; giving up on feed", self.max_attempts
        )
        if self._on_fatal is not None:
            await self._on_fatal(self.max_attempts)


def parse_trade(record: Any) -> Trade | None:
    if not isinstance(record, dict):
        return None

    coin = str(record.get("coin") or "").strip()
    side = TradeSide.from_feed(record.get("side"))
    if not coin or side is None:
        return None

    try:
        price = float(record.get("px"))
        size = float(record.get("sz"))
        timestamp = int(float(record.get("time", 0)))
    except (TypeError, ValueError):
        return None

    if price <= 0 or size <= 0:
        return None
    if timestamp > 10**12:
        timestamp //= 1000

    tid = record.get("tid")
    return Trade(
        coin=coin,
        side=side,
        size=size,
        price=price,
        timestamp=timestamp,
        tx_hash=str(record.get("hash") or "").strip(),
        trade_id=str(tid) if tid is not None else None,
    )


def parse_trades(data: Any) -> list[Trade]:
    if not isinstance(data, list):
        return []
    trades: list[Trade] = []
    for record in data:
        trade = parse_trade(record)
        if trade is not None:
            trades.append(trade)
    return trades


def extract_mids(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        return {}
    mids = data.get("mids")
    if isinstance(mids, dict):
        return mids
    return data


def extract_candle_volume(data: Any) -> tuple[str, Any] | None:
    if not isinstance(data, dict):
        return None
    coin = data.get("s") or data.get("coin")
    if not coin or "v" not in data:
        return None
    return str(coin), data["v"]

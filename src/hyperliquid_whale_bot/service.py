from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from html import escape
from typing import Any

from .activity import ActivityTracker
from .commands import CommandHandler
from .config import Settings
from .dedupe import TradeDeduper
from .detector import WhaleThreshold, detect
from .dispatcher import DeliveryReport, Dispatcher
from .enrichment import AlertEnricher
from .feed import FeedConnection, extract_candle_volume, extract_mids, parse_trades
from .formatting import (
    CONNECTION_LOST_MESSAGE,
    CRASH_MESSAGE,
    MAINTENANCE_MESSAGE,
    STARTUP_MESSAGE,
    format_daily_summary,
    format_market_summary,
    format_whale_alert,
)
from .market_data import MarketDataClient
from .price_cache import PriceCache
from .scheduler import SchedulerLoop, Timer
from .subscribers import SubscriberSet
from .telegram_notifier import TelegramClient
from .types import Trade, WhaleEvent

logger = logging.getLogger(__name__)


@dataclass
class Metrics:
    trades_seen: int = 0
    whales_detected: int = 0
    duplicates_skipped: int = 0
    alerts_sent: int = 0
    alerts_failed: int = 0


class WhaleAlertService:
    def __init__(self, settings: Settings, clock: Callable[[], float] = time.time) -> None:
        self.settings = settings
        self.clock = clock
        self.started_at = clock()
        self.metrics = Metrics()

        self.price_cache = PriceCache()
        self.subscribers = SubscriberSet()
        self.threshold = WhaleThreshold(settings.whale_threshold_usd, settings.whale_threshold_floor)
        self.deduper = TradeDeduper(settings.dedup_ttl_seconds)
        self.activity = ActivityTracker(clock=clock)

        self.market_data = MarketDataClient(
            settings.hl_api_url, timeout=settings.request_timeout_seconds
        )
        self.enricher = AlertEnricher(self.market_data, self.price_cache, settings.heuristic_bands)
        self.telegram = TelegramClient(
            settings.telegram_bot_token, timeout=settings.request_timeout_seconds
        )
        self.dispatcher = Dispatcher(
            self.telegram,
            self.subscribers,
            channel_id=settings.channel_id,
            admin_chat_id=settings.admin_chat_id,
        )
        self.feed = FeedConnection(
            settings.hl_ws_url,
            settings.tracked_assets,
            {
                "trades": self._on_trades,
                "allMids": self._on_mids,
                "candle": self._on_candle,
            },
            max_attempts=settings.max_reconnect_attempts,
            base_delay=settings.reconnect_base_delay_seconds,
            subscribe_candles=settings.subscribe_candles,
            candle_interval=settings.candle_interval,
            on_fatal=self._on_feed_fatal,
        )
        self.commands = CommandHandler(self)
        self.scheduler = SchedulerLoop(
            [
                Timer("heartbeat", settings.heartbeat_interval_seconds, self._heartbeat),
                Timer(
                    "market_summary",
                    settings.market_summary_interval_seconds,
                    self.send_market_summary,
                ),
                Timer(
                    "daily_summary",
                    settings.daily_summary_interval_seconds,
                    self.send_daily_summary,
                ),
            ]
        )
        self._alert_tasks: set[asyncio.Task[Any]] = set()

    def uptime(self) -> float:
        return self.clock() - self.started_at

    async def run(self) -> None:
        logger.info(
            "Starting whale tracker: threshold=%.0f assets=%s channel=%s",
            self.threshold.value,
            ",".join(self.settings.tracked_assets),
            self.settings.channel_id or "-",
        )
        await self._announce(STARTUP_MESSAGE)
        tasks = [
            asyncio.create_task(self.feed.run(), name="feed"),
            asyncio.create_task(self._poll_commands(), name="commands"),
            asyncio.create_task(self.scheduler.run(), name="scheduler"),
        ]
        crashed = False
        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            logger.info("Shutdown requested")
            raise
        except Exception as exc:
            crashed = True
            logger.exception("Unexpected fault in whale tracker")
            await self.report_crash(exc)
            raise
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self.shutdown(notify=not crashed)

    async def shutdown(self, notify: bool = True) -> None:
        await self.feed.close()
        if notify:
            await self._announce(MAINTENANCE_MESSAGE)
        if self._alert_tasks:
            # In-flight lookups are left to finish or fail on their own timeout.
            await asyncio.wait(
                set(self._alert_tasks), timeout=self.settings.request_timeout_seconds * 2
            )
        await self.market_data.close()
        await self.telegram.close()
        logger.info("Whale tracker stopped")

    async def report_crash(self, exc: BaseException) -> None:
        await self.dispatcher.notify_operator(CRASH_MESSAGE.format(error=escape(repr(exc))[:300]))

    async def drain_alerts(self) -> None:
        while self._alert_tasks:
            await asyncio.gather(*set(self._alert_tasks), return_exceptions=True)

    def handle_trade(self, trade: Trade) -> WhaleEvent | None:
        self.metrics.trades_seen += 1

        event = detect(trade, self.threshold.value, self.price_cache.mid(trade.coin))
        if event is None:
            return None
        if not self.deduper.is_new(trade.dedupe_key):
            self.metrics.duplicates_skipped += 1
            return None

        self.metrics.whales_detected += 1
        self.activity.record_whale(event)
        task = asyncio.create_task(self.send_alert(event))
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_done)
        return event

    async def send_alert(self, event: WhaleEvent) -> DeliveryReport:
        snapshot = await self.enricher.enrich(event)
        text = format_whale_alert(
            event,
            snapshot,
            detailed=self.settings.detailed_alerts,
            app_url=self.settings.hl_app_url,
            explorer_url=self.settings.hl_explorer_url,
        )
        report = await self.dispatcher.broadcast(text)
        if report.delivered:
            self.metrics.alerts_sent += 1
            logger.info(
                "Alert sent coin=%s side=%s value=%.2f recipients=%d",
                event.trade.coin,
                event.trade.side.value,
                event.notional_value,
                len(report.delivered),
            )
        else:
            self.metrics.alerts_failed += 1
            logger.warning(
                "Alert for %s %.2f reached no recipients", event.trade.coin, event.notional_value
            )
        return report

    def _alert_done(self, task: asyncio.Task[Any]) -> None:
        self._alert_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.metrics.alerts_failed += 1
            logger.error("Whale alert pipeline failed", exc_info=exc)

    async def _on_trades(self, data: Any) -> None:
        for trade in parse_trades(data):
            self.handle_trade(trade)

    async def _on_mids(self, data: Any) -> None:
        self.price_cache.update_mids(extract_mids(data))
        self.activity.seed_baseline(self.price_cache.snapshot(self.settings.tracked_assets))

    async def _on_candle(self, data: Any) -> None:
        parsed = extract_candle_volume(data)
        if parsed is not None:
            self.price_cache.update_volume(*parsed)

    async def _on_feed_fatal(self, attempts: int) -> None:
        await self.dispatcher.notify_operator(CONNECTION_LOST_MESSAGE.format(attempts=attempts))

    async def _poll_commands(self) -> None:
        async for message in self.telegram.updates():
            try:
                await self.commands.handle(message)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Failed to handle command message")

    async def _heartbeat(self) -> None:
        await self.feed.ping()
        logger.info(
            (
                "health feed=%s ws_messages=%d trades_seen=%d whales=%d "
                "alerts_sent=%d alerts_failed=%d subscribers=%d"
            ),
            self.feed.state.status.value,
            self.feed.messages_received,
            self.metrics.trades_seen,
            self.metrics.whales_detected,
            self.metrics.alerts_sent,
            self.metrics.alerts_failed,
            len(self.subscribers),
        )

    async def send_market_summary(self) -> None:
        current = self.price_cache.snapshot(self.settings.tracked_assets)
        text = format_market_summary(
            self.activity.window(),
            current,
            self.settings.tracked_assets,
            period_text=_period_text(self.settings.market_summary_interval_seconds),
        )
        await self._publish_summary(text)
        self.activity.reset_window(current)

    async def send_daily_summary(self) -> None:
        current = self.price_cache.snapshot(self.settings.tracked_assets)
        text = format_daily_summary(self.activity.day(), current, self.settings.tracked_assets)
        await self._publish_summary(text)
        self.activity.reset_day(current)

    async def _publish_summary(self, text: str) -> None:
        # Summaries go to the channel; without one, subscribers get them instead.
        report = await self.dispatcher.broadcast(
            text, include_subscribers=not self.settings.channel_id
        )
        logger.info("Summary sent to %d recipients", len(report.delivered))

    async def _announce(self, text: str) -> None:
        if self.settings.channel_id:
            await self.dispatcher.broadcast(text, include_subscribers=False)


def _period_text(seconds: float) -> str:
    if seconds >= 3600 and seconds % 3600 == 0:
        return f"{int(seconds // 3600)}h"
    return f"{max(int(seconds // 60), 1)}m"

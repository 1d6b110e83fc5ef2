from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .formatting import (
    format_assets,
    format_status,
    format_subscribed,
    format_threshold_rejected,
    format_threshold_updated,
    format_threshold_usage,
    format_top,
    format_unsubscribed,
    format_welcome,
)

if TYPE_CHECKING:
    from .service import WhaleAlertService

logger = logging.getLogger(__name__)

COMMANDS = ("start", "subscribe", "unsubscribe", "status", "threshold", "assets", "top")


def parse_command(text: str | None) -> tuple[str, list[str]] | None:
    if not text:
        return None
    parts = text.strip().split()
    if not parts or not parts[0].startswith("/"):
        return None
    # "/status@my_bot" addresses a specific bot in group chats.
    name = parts[0][1:].split("@", 1)[0]
    if name not in COMMANDS:
        return None
    return name, parts[1:]


class CommandHandler:
    def __init__(self, service: WhaleAlertService) -> None:
        self.service = service

    async def handle(self, message: dict[str, Any]) -> str | None:
        chat = message.get("chat")
        chat_id = chat.get("id") if isinstance(chat, dict) else None
        parsed = parse_command(message.get("text"))
        if chat_id is None or parsed is None:
            return None

        name, args = parsed
        logger.info("Command /%s from chat %s", name, chat_id)
        reply = getattr(self, f"_cmd_{name}")(str(chat_id), args)
        await self.service.dispatcher.reply(str(chat_id), reply)
        return reply

    def _cmd_start(self, chat_id: str, args: list[str]) -> str:
        self.service.subscribers.add(chat_id)
        return format_welcome(self.service.threshold.value, self.service.settings.channel_id)

    def _cmd_subscribe(self, chat_id: str, args: list[str]) -> str:
        return format_subscribed(self.service.subscribers.add(chat_id))

    def _cmd_unsubscribe(self, chat_id: str, args: list[str]) -> str:
        return format_unsubscribed(self.service.subscribers.remove(chat_id))

    def _cmd_status(self, chat_id: str, args: list[str]) -> str:
        service = self.service
        return format_status(
            connected=service.feed.is_open,
            subscribers=len(service.subscribers),
            channel_configured=bool(service.settings.channel_id),
            threshold=service.threshold.value,
            assets=len(service.settings.tracked_assets),
            cached_prices=len(service.price_cache),
            alerts_sent=service.metrics.alerts_sent,
            whales_detected=service.metrics.whales_detected,
            uptime_seconds=service.uptime(),
        )

    def _cmd_threshold(self, chat_id: str, args: list[str]) -> str:
        threshold = self.service.threshold
        # isdecimal, not isdigit: superscripts pass isdigit but int() rejects them.
        if not args or not args[0].isdecimal():
            return format_threshold_usage(threshold.value)
        value = int(args[0])
        if not threshold.set(value):
            logger.info("Rejected threshold %d below floor %.0f", value, threshold.floor)
            return format_threshold_rejected(threshold.floor)
        logger.info("Whale threshold changed to %d by chat %s", value, chat_id)
        return format_threshold_updated(threshold.value)

    def _cmd_assets(self, chat_id: str, args: list[str]) -> str:
        return format_assets(self.service.settings.tracked_assets, self.service.threshold.value)

    def _cmd_top(self, chat_id: str, args: list[str]) -> str:
        return format_top(self.service.activity.day(), self.service.clock())

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from .subscribers import SubscriberSet
from .telegram_notifier import RecipientUnreachableError

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send(self, chat_id: str, text: str) -> None: ...


@dataclass
class DeliveryReport:
    delivered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)


class Dispatcher:
    """Best-effort fan-out of one message to the channel and every subscriber.

    Recipients are tried one after another; a failure for one never stops
    delivery to the rest. No retries and no acknowledgment tracking.
    """

    def __init__(
        self,
        transport: Transport,
        subscribers: SubscriberSet,
        channel_id: str | None = None,
        admin_chat_id: str | None = None,
    ) -> None:
        self.transport = transport
        self.subscribers = subscribers
        self.channel_id = channel_id
        self.admin_chat_id = admin_chat_id

    async def broadcast(self, text: str, include_subscribers: bool = True) -> DeliveryReport:
        report = DeliveryReport()
        if self.channel_id:
            await self._deliver(self.channel_id, text, report, prune=False)
        if include_subscribers:
            # Iterate a copy; pruning mutates the set.
            for chat_id in list(self.subscribers):
                await self._deliver(chat_id, text, report, prune=True)
        return report

    async def notify_operator(self, text: str) -> DeliveryReport:
        report = DeliveryReport()
        targets = [t for t in dict.fromkeys((self.admin_chat_id, self.channel_id)) if t]
        if not targets:
            logger.error("No operator recipient configured; dropping notice: %s", text)
        for chat_id in targets:
            await self._deliver(chat_id, text, report, prune=False)
        return report

    async def reply(self, chat_id: str, text: str) -> bool:
        report = DeliveryReport()
        await self._deliver(str(chat_id), text, report, prune=True)
        return bool(report.delivered)

    async def _deliver(self, chat_id: str, text: str, report: DeliveryReport, prune: bool) -> None:
        try:
            await self.transport.send(chat_id, text)
        except RecipientUnreachableError as exc:
            report.failed.append(chat_id)
            if prune and self.subscribers.remove(chat_id):
                report.removed.append(chat_id)
                logger.info("Removed unreachable subscriber %s: %s", chat_id, exc.description)
            else:
                logger.warning("Recipient %s unreachable: %s", chat_id, exc.description)
        except Exception as exc:
            report.failed.append(chat_id)
            logger.warning("Failed to deliver message to %s: %s", chat_id, exc)
        else:
            report.delivered.append(chat_id)

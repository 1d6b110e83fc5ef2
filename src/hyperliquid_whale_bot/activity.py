from __future__ import annotations

import time
from collections import Counter
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from .types import WhaleEvent


@dataclass
class ActivityWindow:
    started_at: float
    baseline_mids: dict[str, float] = field(default_factory=dict)
    whale_count: int = 0
    whale_volume: float = 0.0
    coin_counts: Counter[str] = field(default_factory=Counter)
    biggest: list[WhaleEvent] = field(default_factory=list)

    def record(self, event: WhaleEvent, keep: int) -> None:
        self.whale_count += 1
        self.whale_volume += event.notional_value
        self.coin_counts[event.trade.coin] += 1
        self.biggest.append(event)
        self.biggest.sort(key=lambda e: e.notional_value, reverse=True)
        del self.biggest[keep:]


class ActivityTracker:
    """In-memory whale tallies for the summary window and the current day.

    Nothing here is persisted; a restart starts both windows empty.
    """

    def __init__(self, keep: int = 3, clock: Callable[[], float] = time.time) -> None:
        self.keep = keep
        self._clock = clock
        now = clock()
        self._window = ActivityWindow(started_at=now)
        self._day = ActivityWindow(started_at=now)

    def record_whale(self, event: WhaleEvent) -> None:
        self._window.record(event, self.keep)
        self._day.record(event, self.keep)

    def seed_baseline(self, mids: Mapping[str, float]) -> None:
        # First price seen for a coin becomes its baseline until the next reset.
        for window in (self._window, self._day):
            for coin, price in mids.items():
                window.baseline_mids.setdefault(coin, price)

    def window(self) -> ActivityWindow:
        return self._window

    def day(self) -> ActivityWindow:
        return self._day

    def reset_window(self, mids: Mapping[str, float] | None = None) -> None:
        self._window = ActivityWindow(started_at=self._clock(), baseline_mids=dict(mids or {}))

    def reset_day(self, mids: Mapping[str, float] | None = None) -> None:
        self._day = ActivityWindow(started_at=self._clock(), baseline_mids=dict(mids or {}))

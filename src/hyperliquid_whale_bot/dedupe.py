from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable


class TradeDeduper:
    def __init__(
        self,
        ttl_seconds: int,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._seen: OrderedDict[str, float] = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    def is_new(self, key: str) -> bool:
        now = self._clock()
        self._purge(now)
        if key in self._seen:
            return False
        self._seen[key] = now
        if len(self._seen) > self.max_entries:
            self._seen.popitem(last=False)
        return True

    def _purge(self, now: float) -> None:
        cutoff = now - self.ttl_seconds
        while self._seen:
            first_key, seen_at = next(iter(self._seen.items()))
            if seen_at >= cutoff:
                break
            del self._seen[first_key]

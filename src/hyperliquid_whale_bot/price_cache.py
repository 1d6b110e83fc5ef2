from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any


def _to_float(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


class PriceCache:
    """Latest mid-price and latest candle volume per asset.

    Written only by the feed's push handlers, read by enrichment and the
    summary jobs. Entries are never evicted; the asset universe is fixed.
    """

    def __init__(self) -> None:
        self._mids: dict[str, float] = {}
        self._volumes: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._mids)

    def update_mids(self, mids: Mapping[str, Any]) -> int:
        updated = 0
        for coin, raw in mids.items():
            price = _to_float(raw)
            if price is None or price <= 0:
                continue
            self._mids[str(coin)] = price
            updated += 1
        return updated

    def update_volume(self, coin: str, volume: Any) -> bool:
        value = _to_float(volume)
        if value is None or value < 0:
            return False
        self._volumes[coin] = value
        return True

    def mid(self, coin: str) -> float | None:
        return self._mids.get(coin)

    def volume(self, coin: str) -> float | None:
        return self._volumes.get(coin)

    def snapshot(self, coins: tuple[str, ...] | None = None) -> dict[str, float]:
        if coins is None:
            return dict(self._mids)
        return {coin: self._mids[coin] for coin in coins if coin in self._mids}

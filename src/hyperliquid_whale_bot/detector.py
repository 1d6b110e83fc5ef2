from __future__ import annotations

import math
from typing import Any

from .types import WhaleEvent


def notional_value(price: Any, size: Any) -> float | None:
    try:
        value = float(price) * float(size)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return value


def classify(trade: Any, threshold: float) -> bool:
    value = notional_value(getattr(trade, "price", None), getattr(trade, "size", None))
    if value is None:
        return False
    return value >= threshold


def detect(trade: Any, threshold: float, reference_mid: float | None = None) -> WhaleEvent | None:
    # Recomputed from the trade itself on every call; never taken from a cache.
    if not classify(trade, threshold):
        return None
    value = notional_value(trade.price, trade.size)
    return WhaleEvent(trade=trade, notional_value=value, reference_mid=reference_mid)


class WhaleThreshold:
    """Process-wide whale threshold; non-finite values and values under ``floor`` are rejected."""

    def __init__(self, value: float, floor: float) -> None:
        if not math.isfinite(value) or not math.isfinite(floor):
            raise ValueError(f"whale threshold must be finite, got {value!r} (floor {floor!r})")
        self.floor = floor
        self.value = max(float(value), floor)

    def set(self, value: float) -> bool:
        if not math.isfinite(value) or value < self.floor:
            return False
        self.value = float(value)
        return True

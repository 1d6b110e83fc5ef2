from types import SimpleNamespace

import pytest

from hyperliquid_whale_bot.detector import WhaleThreshold, classify, detect, notional_value
from hyperliquid_whale_bot.types import Trade, TradeSide


def _trade(price: float, size: float) -> Trade:
    return Trade(
        coin="BTC",
        side=TradeSide.BUY,
        size=size,
        price=price,
        timestamp=1730000000,
        tx_hash="0xabc",
        trade_id="1",
    )


def test_classify_at_threshold_qualifies() -> None:
    assert classify(_trade(50000, 2), 50000) is True
    assert classify(_trade(50000, 2), 100000) is True
    assert classify(_trade(50000, 2), 100000.01) is False


def test_classify_tolerates_non_numeric_fields() -> None:
    assert classify(SimpleNamespace(price="abc", size="2"), 1000) is False
    assert classify(SimpleNamespace(price=None, size=2), 1000) is False
    assert classify(SimpleNamespace(size=2), 1000) is False
    assert classify(SimpleNamespace(price="nan", size="2"), 1000) is False
    assert classify(SimpleNamespace(price="50000", size="2"), 1000) is True


def test_notional_value() -> None:
    assert notional_value("0.5", "300000") == 150000.0
    assert notional_value("x", 1) is None


def test_detect_builds_event_with_reference_mid() -> None:
    event = detect(_trade(50000, 2), 50000, reference_mid=49000.0)
    assert event is not None
    assert event.notional_value == 100000.0
    assert event.reference_mid == 49000.0
    assert detect(_trade(100, 1), 50000) is None


def test_threshold_rejects_values_below_floor() -> None:
    threshold = WhaleThreshold(50000, floor=1000)
    assert threshold.set(500) is False
    assert threshold.value == 50000
    assert threshold.set(1000) is True
    assert threshold.value == 1000


def test_threshold_initial_value_clamped_to_floor() -> None:
    assert WhaleThreshold(10, floor=1000).value == 1000


def test_threshold_rejects_non_finite_values() -> None:
    threshold = WhaleThreshold(50000, floor=1000)
    assert threshold.set(float("nan")) is False
    assert threshold.set(float("inf")) is False
    assert threshold.value == 50000

    with pytest.raises(ValueError):
        WhaleThreshold(float("nan"), floor=1000)

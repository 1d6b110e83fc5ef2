from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from .config import HeuristicBands
from .market_data import MarketDataClient, max_leverage_for
from .price_cache import PriceCache
from .types import EnrichedMarketSnapshot, WhaleEvent

logger = logging.getLogger(__name__)

FUNDING_INTERVAL_MS = 60 * 60 * 1000
LOOKUPS = ("meta", "mids", "stats", "funding", "candles")


def band_label(value: float | None, bands: Sequence[tuple[float, str]], default: str) -> str | None:
    if value is None:
        return None
    for cutoff, label in bands:
        if value > cutoff:
            return label
    return default


def estimate_leverage(
    open_interest: float | None, volume: float | None, bands: HeuristicBands
) -> str | None:
    if not open_interest or not volume:
        return None
    return band_label(open_interest / volume, bands.leverage, bands.leverage_default)


def assess_liquidation_risk(volume: float | None, bands: HeuristicBands) -> str | None:
    return band_label(volume, bands.liquidation_risk, bands.liquidation_risk_default)


def assess_market_impact(open_interest: float | None, bands: HeuristicBands) -> str | None:
    return band_label(open_interest, bands.market_impact, bands.market_impact_default)


def price_impact_pct(price: float, reference_mid: float | None) -> float | None:
    if not reference_mid:
        return None
    return (price - reference_mid) / reference_mid * 100


def price_change_pct(candles: list[dict[str, Any]]) -> float | None:
    if len(candles) < 2:
        return None
    try:
        current = float(candles[-1]["c"])
        previous = float(candles[-2]["c"])
    except (KeyError, TypeError, ValueError):
        return None
    if previous == 0:
        return None
    return (current - previous) / previous * 100


class AlertEnricher:
    def __init__(
        self,
        client: MarketDataClient,
        price_cache: PriceCache,
        bands: HeuristicBands | None = None,
    ) -> None:
        self.client = client
        self.price_cache = price_cache
        self.bands = bands or HeuristicBands()

    async def enrich(self, event: WhaleEvent) -> EnrichedMarketSnapshot | None:
        coin = event.trade.coin
        results = await asyncio.gather(
            self.client.meta(),
            self.client.all_mids(),
            self.client.stats_24h(coin),
            self.client.funding_history(coin),
            self.client.candle_snapshot(coin),
            return_exceptions=True,
        )

        resolved: dict[str, Any] = {}
        failed: set[str] = set()
        for name, result in zip(LOOKUPS, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning("%s lookup failed for %s: %s", name, coin, result)
                failed.add(name)
                continue
            resolved[name] = result

        if not resolved:
            logger.warning("All market-data lookups failed for %s", coin)
            return None

        return self._build_snapshot(event, resolved, frozenset(failed))

    def _build_snapshot(
        self, event: WhaleEvent, resolved: dict[str, Any], failed: frozenset[str]
    ) -> EnrichedMarketSnapshot:
        coin = event.trade.coin

        max_leverage = None
        if "meta" in resolved:
            max_leverage = max_leverage_for(resolved["meta"], coin)

        mark_price = None
        if "mids" in resolved:
            mark_price = resolved["mids"].get(coin)

        volume = open_interest = oi_change = None
        leverage = liquidation_risk = market_impact = None
        if "stats" in resolved:
            stats = resolved["stats"]
            volume = stats.get("volume")
            open_interest = stats.get("open_interest")
            oi_change = stats.get("oi_change")
            leverage = estimate_leverage(open_interest, volume, self.bands)
            liquidation_risk = assess_liquidation_risk(volume, self.bands)
            market_impact = assess_market_impact(open_interest, self.bands)

        funding_rate = next_funding = None
        if "funding" in resolved:
            funding_rate, next_funding = _latest_funding(resolved["funding"])

        change_24h = None
        if "candles" in resolved:
            change_24h = price_change_pct(resolved["candles"])

        return EnrichedMarketSnapshot(
            mark_price=mark_price,
            price_change_24h=change_24h,
            price_impact=price_impact_pct(event.trade.price, event.reference_mid),
            volume_24h=volume,
            open_interest=open_interest,
            oi_change=oi_change,
            funding_rate=funding_rate,
            next_funding_time=next_funding,
            max_leverage=max_leverage,
            estimated_leverage=leverage,
            liquidation_risk=liquidation_risk,
            market_impact=market_impact,
            failed_lookups=failed,
        )


def _latest_funding(rows: list[dict[str, Any]]) -> tuple[float | None, int | None]:
    latest: dict[str, Any] | None = None
    for row in rows:
        if latest is None or _int_or_zero(row.get("time")) >= _int_or_zero(latest.get("time")):
            latest = row
    if latest is None:
        return None, None

    try:
        rate = float(latest.get("fundingRate"))
    except (TypeError, ValueError):
        rate = None

    next_time = latest.get("nextFundingTime")
    if next_time is None and latest.get("time") is not None:
        # Funding settles hourly; the next payment follows the last recorded one.
        next_time = _int_or_zero(latest.get("time")) + FUNDING_INTERVAL_MS
    return rate, _int_or_zero(next_time) if next_time is not None else None


def _int_or_zero(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0

from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import Any

import httpx

FUNDING_LOOKBACK_SECONDS = 8 * 60 * 60
CANDLE_LOOKBACK_SECONDS = 2 * 24 * 60 * 60


class MarketDataError(RuntimeError):
    pass


class MarketDataClient:
    """Typed request/response calls against the exchange info endpoint.

    Every call is a POST with a JSON body ``{"type": ..., "req": {...}}``.
    The response shape depends on the request type; the helpers below pull
    the per-coin pieces the enricher needs out of it.
    """

    def __init__(
        self,
        api_url: str,
        timeout: float = 10.0,
        stats_request_type: str = "metaAndAssetCtxs",
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.api_url = api_url
        self.timeout = timeout
        self.stats_request_type = stats_request_type
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._clock = clock

    async def close(self) -> None:
        await self._client.aclose()

    async def request(self, request_type: str, req: dict[str, Any] | None = None) -> Any:
        body: dict[str, Any] = {"type": request_type}
        if req is not None:
            body["req"] = req
        try:
            resp = await self._client.post(self.api_url, json=body, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as exc:
            raise MarketDataError(
                f"{request_type} request failed with HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise MarketDataError(f"{request_type} request failed: {exc!r}") from exc
        except json.JSONDecodeError as exc:
            raise MarketDataError(f"{request_type} response is not JSON") from exc

    async def meta(self) -> dict[str, Any]:
        data = await self.request("meta")
        if not isinstance(data, dict):
            raise MarketDataError("meta response is not an object")
        return data

    async def all_mids(self) -> dict[str, float]:
        data = await self.request("allMids")
        if not isinstance(data, dict):
            raise MarketDataError("allMids response is not an object")
        mids: dict[str, float] = {}
        for coin, raw in data.items():
            price = _float_or_none(raw)
            if price is not None:
                mids[str(coin)] = price
        return mids

    async def stats_24h(self, coin: str) -> dict[str, float | None]:
        data = await self.request(self.stats_request_type)
        stats = extract_coin_stats(data, coin)
        if stats is None:
            raise MarketDataError(f"no 24h statistics for {coin}")
        return stats

    async def funding_history(self, coin: str) -> list[dict[str, Any]]:
        start_ms = int((self._clock() - FUNDING_LOOKBACK_SECONDS) * 1000)
        data = await self.request("fundingHistory", {"coin": coin, "startTime": start_ms})
        if not isinstance(data, list):
            raise MarketDataError("fundingHistory response is not a list")
        return [row for row in data if isinstance(row, dict) and row.get("coin", coin) == coin]

    async def candle_snapshot(
        self,
        coin: str,
        interval: str = "1d",
        lookback_seconds: int = CANDLE_LOOKBACK_SECONDS,
    ) -> list[dict[str, Any]]:
        now_ms = int(self._clock() * 1000)
        data = await self.request(
            "candleSnapshot",
            {
                "coin": coin,
                "interval": interval,
                "startTime": now_ms - lookback_seconds * 1000,
                "endTime": now_ms,
            },
        )
        if not isinstance(data, list):
            raise MarketDataError("candleSnapshot response is not a list")
        candles = [c for c in data if isinstance(c, dict)]
        candles.sort(key=lambda c: _float_or_none(c.get("t")) or 0)
        return candles


def extract_coin_stats(data: Any, coin: str) -> dict[str, float | None] | None:
    # Two shapes are accepted: [meta, assetCtxs] as returned by
    # metaAndAssetCtxs, or a mapping keyed by coin.
    if isinstance(data, list) and len(data) >= 2 and isinstance(data[0], dict):
        universe = data[0].get("universe", [])
        contexts = data[1] if isinstance(data[1], list) else []
        for idx, asset in enumerate(universe):
            if not isinstance(asset, dict) or asset.get("name") != coin:
                continue
            if idx >= len(contexts) or not isinstance(contexts[idx], dict):
                return None
            return _stats_from_context(contexts[idx])
        return None

    if isinstance(data, dict):
        entry = data.get(coin)
        if not isinstance(entry, dict):
            return None
        return {
            "volume": _float_or_none(entry.get("volume")),
            "open_interest": _float_or_none(entry.get("openInterest")),
            "oi_change": _float_or_none(entry.get("oiChange")),
            "mark_price": _float_or_none(entry.get("markPx")),
            "prev_day_price": _float_or_none(entry.get("prevDayPx")),
        }
    return None


def _stats_from_context(ctx: dict[str, Any]) -> dict[str, float | None]:
    mark = _float_or_none(ctx.get("markPx"))
    oi_coins = _float_or_none(ctx.get("openInterest"))
    # Open interest is reported in coins; convert to notional at mark.
    open_interest = oi_coins * mark if oi_coins is not None and mark is not None else None
    return {
        "volume": _float_or_none(ctx.get("dayNtlVlm")),
        "open_interest": open_interest,
        "oi_change": _float_or_none(ctx.get("oiChange")),
        "mark_price": mark,
        "prev_day_price": _float_or_none(ctx.get("prevDayPx")),
    }


def max_leverage_for(meta: dict[str, Any], coin: str) -> int | None:
    for asset in meta.get("universe", []):
        if isinstance(asset, dict) and asset.get("name") == coin:
            value = _float_or_none(asset.get("maxLeverage"))
            return int(value) if value is not None else None
    return None


def _float_or_none(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None

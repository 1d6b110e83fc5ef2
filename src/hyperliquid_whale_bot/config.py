from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field
from typing import Any

from dotenv import load_dotenv

DEFAULT_ASSETS = ("BTC", "ETH", "SOL", "ARB", "AVAX", "DOGE", "WIF", "PEPE", "LINK", "UNI")

Bands = tuple[tuple[float, str], ...]


@dataclass(frozen=True)
class HeuristicBands:
    """Cutoffs for the presentation-only severity labels on detailed alerts.

    Each band list is ordered from the highest cutoff down; a value strictly
    greater than a cutoff gets that label, otherwise the default applies.
    """

    leverage: Bands = ((10.0, "50+"), (5.0, "20-50"), (2.0, "10-20"))
    leverage_default: str = "2-10"
    liquidation_risk: Bands = ((100_000_000.0, "Low"), (50_000_000.0, "Medium"))
    liquidation_risk_default: str = "High"
    market_impact: Bands = ((500_000_000.0, "Minimal"), (100_000_000.0, "Moderate"))
    market_impact_default: str = "High"

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> HeuristicBands:
        base = cls()
        values: dict[str, Any] = {}
        for name in ("leverage", "liquidation_risk", "market_impact"):
            if name in raw:
                values[name] = _parse_bands(name, raw[name])
            default_key = f"{name}_default"
            if default_key in raw:
                values[default_key] = str(raw[default_key])
        return cls(**{**base.__dict__, **values})


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    channel_id: str | None = None
    admin_chat_id: str | None = None
    hl_ws_url: str = "wss://api.hyperliquid.xyz/ws"
    hl_api_url: str = "https://api.hyperliquid.xyz/info"
    hl_app_url: str = "https://app.hyperliquid.xyz/trade"
    hl_explorer_url: str = "https://app.hyperliquid.xyz/explorer/tx"
    whale_threshold_usd: float = 50000.0
    whale_threshold_floor: float = 1000.0
    tracked_assets: tuple[str, ...] = DEFAULT_ASSETS
    subscribe_candles: bool = True
    candle_interval: str = "1m"
    detailed_alerts: bool = True
    max_reconnect_attempts: int = 5
    reconnect_base_delay_seconds: float = 5.0
    heartbeat_interval_seconds: float = 30.0
    market_summary_interval_seconds: float = 4 * 60 * 60
    daily_summary_interval_seconds: float = 24 * 60 * 60
    request_timeout_seconds: float = 10.0
    dedup_ttl_seconds: int = 3600
    heuristic_bands: HeuristicBands = field(default_factory=HeuristicBands)
    log_level: str = "INFO"


def _required(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value


def _optional_str(name: str, default: str | None = None) -> str | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


def _optional_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _optional_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = float(raw)
    if not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number, got {raw!r}")
    return value


def _optional_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    text = raw.strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _optional_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    items = tuple(part.strip().upper() for part in raw.split(",") if part.strip())
    if not items:
        raise ValueError(f"{name} must list at least one asset")
    return items


def _optional_json(name: str) -> dict[str, Any] | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError(f"{name} must decode to a JSON object")
    return parsed


def _parse_bands(name: str, raw: Any) -> Bands:
    if not isinstance(raw, list):
        raise ValueError(f"HEURISTIC_BANDS.{name} must be a list of [cutoff, label] pairs")
    bands: list[tuple[float, str]] = []
    for item in raw:
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            raise ValueError(f"HEURISTIC_BANDS.{name} entries must be [cutoff, label] pairs")
        bands.append((float(item[0]), str(item[1])))
    bands.sort(key=lambda band: band[0], reverse=True)
    return tuple(bands)


def load_settings() -> Settings:
    load_dotenv()
    bands_override = _optional_json("HEURISTIC_BANDS")
    threshold = _optional_float("WHALE_THRESHOLD", 50000.0)
    floor = _optional_float("WHALE_THRESHOLD_FLOOR", 1000.0)
    return Settings(
        telegram_bot_token=_required("TELEGRAM_BOT_TOKEN"),
        channel_id=_optional_str("CHANNEL_ID"),
        admin_chat_id=_optional_str("ADMIN_CHAT_ID"),
        hl_ws_url=_optional_str("HYPERLIQUID_WS_URL", "wss://api.hyperliquid.xyz/ws"),
        hl_api_url=_optional_str("HYPERLIQUID_API_URL", "https://api.hyperliquid.xyz/info"),
        hl_app_url=_optional_str("HYPERLIQUID_APP_URL", "https://app.hyperliquid.xyz/trade"),
        hl_explorer_url=_optional_str(
            "HYPERLIQUID_EXPLORER_URL", "https://app.hyperliquid.xyz/explorer/tx"
        ),
        whale_threshold_usd=max(threshold, floor),
        whale_threshold_floor=floor,
        tracked_assets=_optional_list("TRACKED_ASSETS", DEFAULT_ASSETS),
        subscribe_candles=_optional_bool("SUBSCRIBE_CANDLES", True),
        candle_interval=_optional_str("CANDLE_INTERVAL", "1m"),
        detailed_alerts=_optional_bool("DETAILED_ALERTS", True),
        max_reconnect_attempts=_optional_int("MAX_RECONNECT_ATTEMPTS", 5),
        reconnect_base_delay_seconds=_optional_float("RECONNECT_BASE_DELAY_SECONDS", 5.0),
        heartbeat_interval_seconds=_optional_float("HEARTBEAT_INTERVAL_SECONDS", 30.0),
        market_summary_interval_seconds=_optional_float(
            "MARKET_SUMMARY_INTERVAL_SECONDS", 4 * 60 * 60
        ),
        daily_summary_interval_seconds=_optional_float(
            "DAILY_SUMMARY_INTERVAL_SECONDS", 24 * 60 * 60
        ),
        request_timeout_seconds=_optional_float("REQUEST_TIMEOUT_SECONDS", 10.0),
        dedup_ttl_seconds=_optional_int("DEDUP_TTL_SECONDS", 3600),
        heuristic_bands=(
            HeuristicBands.from_mapping(bands_override) if bands_override else HeuristicBands()
        ),
        log_level=(_optional_str("LOG_LEVEL", "INFO") or "INFO").upper(),
    )

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TradeSide(str, Enum):
    BUY = "Buy"
    SELL = "Sell"

    @classmethod
    def from_feed(cls, raw: object) -> TradeSide | None:
        # The feed reports the aggressor as "B" (bid, buying) or "A" (ask, selling).
        text = str(raw or "").strip().upper()
        if text in ("B", "BUY", "LONG"):
            return cls.BUY
        if text in ("A", "SELL", "SHORT"):
            return cls.SELL
        return None

    @property
    def position(self) -> str:
        return "LONG" if self is TradeSide.BUY else "SHORT"


@dataclass(frozen=True)
class Trade:
    coin: str
    side: TradeSide
    size: float
    price: float
    timestamp: int
    tx_hash: str
    trade_id: str | None = None

    @property
    def dedupe_key(self) -> str:
        if self.trade_id:
            return f"{self.coin}:{self.trade_id}"
        return f"{self.tx_hash or 'nohash'}:{self.coin}:{self.timestamp}"


@dataclass(frozen=True)
class WhaleEvent:
    trade: Trade
    notional_value: float
    # Mid-price cached at detection time, used for the price-impact figure.
    reference_mid: float | None = None


@dataclass(frozen=True)
class EnrichedMarketSnapshot:
    mark_price: float | None = None
    price_change_24h: float | None = None
    price_impact: float | None = None
    volume_24h: float | None = None
    open_interest: float | None = None
    oi_change: float | None = None
    funding_rate: float | None = None
    next_funding_time: int | None = None
    max_leverage: int | None = None
    estimated_leverage: str | None = None
    liquidation_risk: str | None = None
    market_impact: str | None = None
    failed_lookups: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class WhaleLevel:
    name: str
    icon: str
    tag: str
    minimum: float


class ConnectionStatus(str, Enum):
    CONNECTING = "Connecting"
    OPEN = "Open"
    CLOSED = "Closed"


@dataclass
class ConnectionState:
    status: ConnectionStatus = ConnectionStatus.CLOSED
    reconnect_attempts: int = 0

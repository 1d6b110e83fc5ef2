from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from html import escape

from .activity import ActivityWindow
from .types import EnrichedMarketSnapshot, TradeSide, WhaleEvent, WhaleLevel

NA = "N/A"

WHALE_LEVELS = (
    WhaleLevel(name="MEGA WHALE", icon="🐋👑", tag="MegaWhale", minimum=1_000_000),
    WhaleLevel(name="WHALE", icon="🐋", tag="Whale", minimum=500_000),
    WhaleLevel(name="BIG FISH", icon="🐟", tag="BigFish", minimum=200_000),
    WhaleLevel(name="LARGE TRADER", icon="🦈", tag="LargeTrader", minimum=0),
)

STARTUP_MESSAGE = "🤖 <b>Whale tracker online</b> and watching the trade feed."
MAINTENANCE_MESSAGE = "🔴 Bot is going down for maintenance."
CRASH_MESSAGE = "🚨 <b>Bot hit an unexpected error</b> and will restart.\n<code>{error}</code>"
CONNECTION_LOST_MESSAGE = (
    "🚨 <b>Bot Connection Lost</b>\n"
    "Gave up reconnecting to the trade feed after {attempts} attempts. "
    "Manual restart required."
)

_SENTIMENTS = {
    "BTC": ("🚀 <b>Bitcoin bulls stepping in!</b>", "🐻 <b>Bitcoin bears taking control!</b>"),
    "ETH": ("⚡ <b>Ethereum momentum building!</b>", "📉 <b>Ethereum under pressure!</b>"),
    "SOL": ("☀️ <b>Solana heating up!</b>", "🌧️ <b>Solana cooling down!</b>"),
}
_DEFAULT_SENTIMENT = ("📈 <b>Bullish momentum detected!</b>", "📉 <b>Bearish pressure increasing!</b>")


def whale_level(value: float) -> WhaleLevel:
    for level in WHALE_LEVELS:
        if value >= level.minimum:
            return level
    return WHALE_LEVELS[-1]


def fmt_usd(value: float | None, decimals: int = 0) -> str:
    if value is None:
        return NA
    return f"${value:,.{decimals}f}"


def fmt_price(value: float | None) -> str:
    if value is None:
        return NA
    if value >= 1:
        return f"${value:,.2f}"
    return f"${value:.6g}"


def fmt_compact(value: float | None) -> str:
    if value is None:
        return NA
    magnitude = abs(value)
    if magnitude >= 1_000_000_000:
        return f"{value / 1_000_000_000:.1f}B"
    if magnitude >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if magnitude >= 1_000:
        return f"{value / 1_000:.0f}K"
    return f"{value:.0f}"


def fmt_compact_usd(value: float | None) -> str:
    if value is None:
        return NA
    return f"${fmt_compact(value)}"


def fmt_pct(value: float | None, decimals: int = 2) -> str:
    if value is None:
        return NA
    return f"{value:+.{decimals}f}%"


def fmt_size(value: float) -> str:
    return f"{value:,.4f}".rstrip("0").rstrip(".")


def fmt_label(value: str | None) -> str:
    return escape(value) if value else NA


def trade_time_iso(ts: int) -> str:
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def funding_time_text(ts_ms: int | None) -> str:
    if not ts_ms:
        return NA
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).strftime("%H:%M UTC")


def format_uptime(seconds: float) -> str:
    total = max(int(seconds), 0)
    return f"{total // 3600}h {(total % 3600) // 60}m"


def build_trade_link(base_url: str, coin: str) -> str:
    return f"{base_url.rstrip('/')}/{coin}"


def build_tx_link(base_url: str, tx_hash: str | None) -> str | None:
    if not tx_hash:
        return None
    return f"{base_url.rstrip('/')}/{tx_hash}"


def market_sentiment(coin: str, side: TradeSide) -> str:
    bullish, bearish = _SENTIMENTS.get(coin, _DEFAULT_SENTIMENT)
    return bullish if side is TradeSide.BUY else bearish


def format_whale_alert(
    event: WhaleEvent,
    snapshot: EnrichedMarketSnapshot | None,
    *,
    detailed: bool = True,
    app_url: str = "https://app.hyperliquid.xyz/trade",
    explorer_url: str = "https://app.hyperliquid.xyz/explorer/tx",
) -> str:
    """Render a whale alert as Telegram HTML.

    ``detailed`` selects the whale-level template with trade metrics and a
    sentiment line; otherwise the shorter channel template is used. Missing
    snapshot fields render as N/A, and a missing snapshot renders a
    placeholder section.
    """
    if detailed:
        return _format_detailed(event, snapshot, app_url, explorer_url)
    return _format_plain(event, snapshot, app_url)


def _trade_header(event: WhaleEvent) -> tuple[str, str, str]:
    trade = event.trade
    return escape(trade.coin), trade.side.position, "🟢" if trade.side is TradeSide.BUY else "🔴"


def _format_plain(event: WhaleEvent, snapshot: EnrichedMarketSnapshot | None, app_url: str) -> str:
    trade = event.trade
    coin, position, emoji = _trade_header(event)
    arrow = "📈" if trade.side is TradeSide.BUY else "📉"

    if snapshot is None:
        market = "⏳ Loading market data..."
    else:
        funding = (
            f"{snapshot.funding_rate * 100:.4f}%" if snapshot.funding_rate is not None else NA
        )
        market = (
            f"• Mark Price: {fmt_price(snapshot.mark_price)}\n"
            f"• 24h Volume: {fmt_compact_usd(snapshot.volume_24h)}\n"
            f"• Funding Rate: {funding}"
        )

    trade_url = escape(build_trade_link(app_url, trade.coin), quote=True)
    return (
        f"🐋 <b>WHALE SPOTTED</b> {emoji}\n\n"
        f"<b>{coin}-PERP {position} {arrow}</b>\n\n"
        f"💰 <b>Trade Value:</b> {fmt_usd(event.notional_value)}\n"
        f"📊 <b>Size:</b> {fmt_size(trade.size)} {coin}\n"
        f"💵 <b>Price:</b> {fmt_price(trade.price)}\n\n"
        f"📈 <b>Market Data:</b>\n{market}\n\n"
        f"⏰ <b>Time:</b> {trade_time_iso(trade.timestamp)}\n\n"
        f'<a href="{trade_url}">View on Hyperliquid</a>\n\n'
        f"#HyperliquidWhale #{coin} #{position}"
    )


def _format_detailed(
    event: WhaleEvent,
    snapshot: EnrichedMarketSnapshot | None,
    app_url: str,
    explorer_url: str,
) -> str:
    trade = event.trade
    coin, position, emoji = _trade_header(event)
    arrow = "📈" if trade.side is TradeSide.BUY else "📉"
    level = whale_level(event.notional_value)

    if snapshot is None:
        market = "⏳ Loading market data..."
    else:
        funding = (
            f"{snapshot.funding_rate * 100:.4f}%" if snapshot.funding_rate is not None else NA
        )
        oi_change = fmt_pct(snapshot.oi_change * 100) if snapshot.oi_change is not None else NA
        leverage = (
            f"{escape(snapshot.estimated_leverage)}x" if snapshot.estimated_leverage else NA
        )
        max_leverage = f"{snapshot.max_leverage}x" if snapshot.max_leverage else NA
        market = (
            f"• Mark Price: {fmt_price(snapshot.mark_price)}\n"
            f"• 24h Change: {fmt_pct(snapshot.price_change_24h)}\n"
            f"• Price Impact: {fmt_pct(snapshot.price_impact)}\n"
            f"• 24h Volume: {fmt_compact_usd(snapshot.volume_24h)}\n"
            f"• Open Interest: {fmt_compact_usd(snapshot.open_interest)}\n"
            f"• OI Change: {oi_change}\n"
            f"• Funding Rate: {funding}\n"
            f"• Next Funding: {funding_time_text(snapshot.next_funding_time)}\n\n"
            "⚡ <b>Trade Metrics:</b>\n"
            f"• Estimated Leverage: {leverage} (max {max_leverage})\n"
            f"• Liquidation Risk: {fmt_label(snapshot.liquidation_risk)}\n"
            f"• Market Impact: {fmt_label(snapshot.market_impact)}"
        )

    trade_url = escape(build_trade_link(app_url, trade.coin), quote=True)
    tx_url = build_tx_link(explorer_url, trade.tx_hash)
    if tx_url:
        tx_line = f'<a href="{escape(tx_url, quote=True)}">{escape(trade.tx_hash[:8])}...</a>'
    else:
        tx_line = NA

    return (
        f"{level.icon} <b>{level.name}</b> {emoji}{arrow}\n\n"
        f"🏷 <b>{coin}-PERP</b> | {position} Position\n"
        f"💰 <b>Value:</b> {fmt_usd(event.notional_value)}\n"
        f"📊 <b>Size:</b> {fmt_size(trade.size)} {coin}\n"
        f"💵 <b>Price:</b> {fmt_price(trade.price)}\n\n"
        f"📈 <b>Market Data:</b>\n{market}\n\n"
        f"🕐 <b>Time:</b> {trade_time_iso(trade.timestamp)}\n"
        f'🔗 <b>Trade:</b> <a href="{trade_url}">View on Hyperliquid</a>\n'
        f"🧾 <b>Transaction:</b> {tx_line}\n\n"
        f"{market_sentiment(trade.coin, trade.side)}\n\n"
        f"#{level.tag} #{coin} #{position} #Hyperliquid"
    )


def format_welcome(threshold: float, channel_id: str | None) -> str:
    channel = escape(channel_id) if channel_id else "Channel not configured"
    return (
        "🐋 <b>Hyperliquid Whale Tracker Bot</b>\n\n"
        "You are now subscribed to real-time alerts for:\n"
        f"• Perpetual futures trades worth {fmt_usd(threshold)} or more\n"
        "• Long/short direction with leverage estimates\n"
        "• Open interest and funding rate context\n\n"
        "<b>Commands:</b>\n"
        "/subscribe - Subscribe to alerts\n"
        "/unsubscribe - Stop receiving alerts\n"
        "/status - Bot connection status\n"
        "/threshold [amount] - Set the minimum whale size\n"
        "/assets - List monitored assets\n"
        "/top - Today's top whale activity\n\n"
        f"<b>Channel:</b> {channel}"
    )


def format_subscribed(changed: bool) -> str:
    if changed:
        return "✅ Subscribed to whale alerts!"
    return "✅ You are already subscribed to whale alerts."


def format_unsubscribed(changed: bool) -> str:
    if changed:
        return "❌ Unsubscribed from whale alerts."
    return "ℹ️ You were not subscribed."


def format_status(
    *,
    connected: bool,
    subscribers: int,
    channel_configured: bool,
    threshold: float,
    assets: int,
    cached_prices: int,
    alerts_sent: int,
    whales_detected: int,
    uptime_seconds: float,
) -> str:
    return (
        "<b>Bot Status:</b>\n"
        f"Connection: {'🟢 Connected' if connected else '🔴 Disconnected'}\n"
        f"Private Subscribers: {subscribers}\n"
        f"Channel: {'✅ Connected' if channel_configured else '❌ Not configured'}\n"
        f"Whale Threshold: {fmt_usd(threshold)}\n"
        f"Monitored Assets: {assets}\n"
        f"Price Cache: {cached_prices} assets\n\n"
        "<b>Recent Activity:</b>\n"
        f"• Alerts sent: {alerts_sent}\n"
        f"• Whales detected: {whales_detected}\n"
        f"• Uptime: {format_uptime(uptime_seconds)}"
    )


def format_threshold_updated(threshold: float) -> str:
    return f"✅ Whale threshold set to {fmt_usd(threshold)}"


def format_threshold_rejected(floor: float) -> str:
    return f"❌ Minimum threshold is {fmt_usd(floor)}"


def format_threshold_usage(current: float) -> str:
    return f"Usage: /threshold &lt;amount&gt;\nCurrent threshold: {fmt_usd(current)}"


def format_assets(assets: Iterable[str], threshold: float) -> str:
    items = list(assets)
    lines = "\n".join(f"• {escape(asset)}-PERP" for asset in items)
    return (
        "<b>Monitored assets:</b>\n"
        f"{lines}\n\n"
        f"<b>Total:</b> {len(items)} assets\n"
        f"<b>Threshold:</b> {fmt_usd(threshold)}+ trades"
    )


def _biggest_lines(window: ActivityWindow) -> str:
    if not window.biggest:
        return "• No whale trades yet"
    return "\n".join(
        f"• {escape(e.trade.coin)}-PERP: {fmt_compact_usd(e.notional_value)} {e.trade.side.position}"
        for e in window.biggest
    )


def _active_lines(window: ActivityWindow, limit: int = 3) -> str:
    ranked = window.coin_counts.most_common(limit)
    if not ranked:
        return "• No whale trades yet"
    return "\n".join(f"• {escape(coin)}: {count} whale trades" for coin, count in ranked)


def format_top(window: ActivityWindow, now: float) -> str:
    return (
        "📊 <b>Top Whale Activity Today</b>\n\n"
        f"🥇 <b>Biggest Trades:</b>\n{_biggest_lines(window)}\n\n"
        f"🔥 <b>Most Active Assets:</b>\n{_active_lines(window)}\n\n"
        f"💰 <b>Total Whale Volume:</b> {fmt_compact_usd(window.whale_volume)}\n"
        f"⏰ <b>Last Updated:</b> {trade_time_iso(int(now))}"
    )


def price_moves(
    baseline: Mapping[str, float], current: Mapping[str, float], coins: Iterable[str]
) -> list[tuple[str, float | None, float | None]]:
    moves: list[tuple[str, float | None, float | None]] = []
    for coin in coins:
        price = current.get(coin)
        start = baseline.get(coin)
        change = (price - start) / start * 100 if price is not None and start else None
        moves.append((coin, change, price))
    return moves


def format_market_summary(
    window: ActivityWindow,
    current_mids: Mapping[str, float],
    coins: Iterable[str],
    period_text: str,
) -> str:
    moves = price_moves(window.baseline_mids, current_mids, coins)
    movement_lines = "\n".join(
        f"• {escape(coin)}: {fmt_pct(change)} ({fmt_price(price)})" for coin, change, price in moves
    )
    return (
        "📊 <b>Hyperliquid Market Update</b>\n\n"
        f"💹 <b>Price Movements ({escape(period_text)}):</b>\n{movement_lines or NA}\n\n"
        "🐋 <b>Whale Activity:</b>\n"
        f"• Total Volume: {fmt_compact_usd(window.whale_volume)}\n"
        f"• Large Positions: {window.whale_count}\n"
        f"• Most Active:\n{_active_lines(window)}\n\n"
        "#MarketUpdate #Hyperliquid"
    )


def format_daily_summary(
    window: ActivityWindow,
    current_mids: Mapping[str, float],
    coins: Iterable[str],
    top: int = 3,
) -> str:
    moves = [m for m in price_moves(window.baseline_mids, current_mids, coins) if m[1] is not None]
    moves.sort(key=lambda m: m[1], reverse=True)
    performer_lines = "\n".join(
        f"• {escape(coin)}: {fmt_pct(change)}" for coin, change, _ in moves[:top]
    )
    biggest = window.biggest[0] if window.biggest else None
    biggest_text = (
        f"{fmt_compact_usd(biggest.notional_value)} {escape(biggest.trade.coin)} "
        f"{biggest.trade.side.position}"
        if biggest
        else NA
    )
    return (
        "📈 <b>Daily Hyperliquid Summary</b>\n\n"
        f"🏆 <b>Top Performers:</b>\n{performer_lines or '• ' + NA}\n\n"
        "🐋 <b>Whale Highlights:</b>\n"
        f"• Biggest Trade: {biggest_text}\n"
        f"• Total Whale Volume: {fmt_compact_usd(window.whale_volume)}\n"
        f"• Whale Trades: {window.whale_count}\n\n"
        f"🔥 <b>Most Active Assets:</b>\n{_active_lines(window)}\n\n"
        "#DailySummary #Hyperliquid\n"
        "<i>Next update in 24 hours</i>"
    )

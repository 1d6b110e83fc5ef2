import pytest

from hyperliquid_whale_bot.config import DEFAULT_ASSETS, HeuristicBands, load_settings

ENV_VARS = (
    "TELEGRAM_BOT_TOKEN",
    "CHANNEL_ID",
    "ADMIN_CHAT_ID",
    "WHALE_THRESHOLD",
    "WHALE_THRESHOLD_FLOOR",
    "TRACKED_ASSETS",
    "DETAILED_ALERTS",
    "HEURISTIC_BANDS",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_missing_token_raises(monkeypatch) -> None:
    with pytest.raises(ValueError):
        load_settings()


def test_defaults(monkeypatch) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "abc")
    settings = load_settings()
    assert settings.channel_id is None
    assert settings.whale_threshold_usd == 50000.0
    assert settings.whale_threshold_floor == 1000.0
    assert settings.tracked_assets == DEFAULT_ASSETS
    assert settings.max_reconnect_attempts == 5
    assert settings.reconnect_base_delay_seconds == 5.0
    assert settings.heartbeat_interval_seconds == 30.0
    assert settings.heuristic_bands == HeuristicBands()


def test_overrides(monkeypatch) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "abc")
    monkeypatch.setenv("CHANNEL_ID", "-100123")
    monkeypatch.setenv("WHALE_THRESHOLD", "500")
    monkeypatch.setenv("TRACKED_ASSETS", "btc, eth ,")
    monkeypatch.setenv("DETAILED_ALERTS", "off")
    monkeypatch.setenv("HEURISTIC_BANDS", '{"market_impact": [[1000, "Tiny"]], "market_impact_default": "Big"}')
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = load_settings()
    assert settings.channel_id == "-100123"
    assert settings.whale_threshold_usd == 1000.0
    assert settings.tracked_assets == ("BTC", "ETH")
    assert settings.detailed_alerts is False
    assert settings.heuristic_bands.market_impact == ((1000.0, "Tiny"),)
    assert settings.heuristic_bands.market_impact_default == "Big"
    assert settings.log_level == "DEBUG"


def test_invalid_values_raise(monkeypatch) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "abc")
    monkeypatch.setenv("DETAILED_ALERTS", "maybe")
    with pytest.raises(ValueError):
        load_settings()

    monkeypatch.setenv("DETAILED_ALERTS", "true")
    monkeypatch.setenv("HEURISTIC_BANDS", "[1, 2]")
    with pytest.raises(ValueError):
        load_settings()


@pytest.mark.parametrize("raw", ["nan", "inf", "-inf"])
def test_non_finite_threshold_raises(monkeypatch, raw) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "abc")
    monkeypatch.setenv("WHALE_THRESHOLD", raw)
    with pytest.raises(ValueError, match="WHALE_THRESHOLD"):
        load_settings()

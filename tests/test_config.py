"""Tests for settings loading, env overrides and validation."""

import json
from decimal import Decimal

import pytest

from dexbot.config import (
    AppSettings,
    load_settings,
    resolve_config_path,
    validate_settings,
    write_example_config,
)
from dexbot.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Run from an empty directory with no bot-related env vars set."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "BOT_CONFIG_PATH",
        "HTTP_API_URL",
        "WS_URL",
        "DRY_RUN",
        "MAX_TOTAL_POSITIONS",
        "MAX_TOTAL_INVESTMENT",
        "RISK_PAUSE_AFTER_LOSS",
        "CONSECUTIVE_BUY_COUNT",
        "BUY_AMOUNT_SOL",
        "RISK_MAX_DAILY_LOSS",
    ):
        monkeypatch.delenv(name, raising=False)


def _write(path, data) -> str:
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path) -> None:
        settings = load_settings(tmp_path / "absent.json")
        assert settings.trading.dry_run is True
        assert settings.trading.max_total_positions == 10
        assert settings.strategy.consecutive_buy_count == 3
        assert validate_settings(settings) == []

    def test_file_values_are_loaded(self, tmp_path) -> None:
        path = _write(
            tmp_path / "bot.json",
            {
                "http_url": "http://exec:3000",
                "trading": {"max_total_positions": 4, "dry_run": False},
                "risk": {"max_daily_loss": 0.2},
                "strategy": {"total_amount_threshold": 7.5},
            },
        )
        settings = load_settings(path)
        assert settings.http_url == "http://exec:3000"
        assert settings.trading.max_total_positions == 4
        assert settings.trading.dry_run is False
        assert settings.risk.max_daily_loss == Decimal("0.2")
        assert settings.strategy.total_amount_threshold == Decimal("7.5")

    def test_legacy_section_names(self, tmp_path) -> None:
        path = _write(
            tmp_path / "bot.json",
            {"global": {"max_total_positions": 2}, "riskManagement": {"max_consecutive_losses": 9}},
        )
        settings = load_settings(path)
        assert settings.trading.max_total_positions == 2
        assert settings.risk.max_consecutive_losses == 9

    def test_legacy_camel_case_file(self, tmp_path) -> None:
        path = _write(
            tmp_path / "bot.json",
            {
                "httpUrl": "http://exec:3000",
                "wsUrl": "ws://feed:9001",
                "global": {
                    "maxTotalPositions": 2,
                    "maxTotalInvestment": 0.05,
                    "emergencyStop": False,
                    "dryRun": False,
                },
                "riskManagement": {
                    "maxDailyLoss": 0.02,
                    "maxConsecutiveLosses": 4,
                    "pauseAfterLoss": 120,
                },
                "strategy": {"consecutiveBuyCount": 5, "buyAmountSol": 0.02},
            },
        )
        settings = load_settings(path)
        assert settings.http_url == "http://exec:3000"
        assert settings.ws_url == "ws://feed:9001"
        assert settings.trading.max_total_positions == 2
        assert settings.trading.max_total_investment == Decimal("0.05")
        assert settings.trading.dry_run is False
        assert settings.risk.max_daily_loss == Decimal("0.02")
        assert settings.risk.max_consecutive_losses == 4
        assert settings.risk.pause_after_loss == 120.0
        assert settings.strategy.consecutive_buy_count == 5
        assert settings.strategy.buy_amount_sol == Decimal("0.02")

    def test_env_overrides_file(self, tmp_path, monkeypatch) -> None:
        path = _write(
            tmp_path / "bot.json",
            {"trading": {"max_total_positions": 4}, "strategy": {"buy_amount_sol": 0.02}},
        )
        monkeypatch.setenv("MAX_TOTAL_POSITIONS", "7")
        monkeypatch.setenv("BUY_AMOUNT_SOL", "0.05")
        monkeypatch.setenv("HTTP_API_URL", "https://exec.example")

        settings = load_settings(path)

        assert settings.trading.max_total_positions == 7
        assert settings.strategy.buy_amount_sol == Decimal("0.05")
        assert settings.http_url == "https://exec.example"

    def test_config_path_from_env(self, tmp_path, monkeypatch) -> None:
        path = _write(tmp_path / "custom.json", {"trading": {"max_total_positions": 6}})
        monkeypatch.setenv("BOT_CONFIG_PATH", path)
        assert resolve_config_path() == tmp_path / "custom.json"
        assert load_settings().trading.max_total_positions == 6

    def test_invalid_json_raises(self, tmp_path) -> None:
        path = tmp_path / "bot.json"
        path.write_text("{broken", encoding="utf-8")
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(path)
        assert "invalid JSON" in exc_info.value.violations[0]

    def test_non_object_raises(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError):
            load_settings(_write(tmp_path / "bot.json", [1, 2]))

    def test_strategy_config_conversion(self) -> None:
        config = AppSettings().strategy.to_config()
        assert config.name == "ConsecutiveBuy"
        assert config.time_window_seconds == 300.0
        assert config.target_profit_ratio == Decimal("0.1")


class TestValidateSettings:
    def test_collects_every_violation(self, tmp_path) -> None:
        path = _write(
            tmp_path / "bot.json",
            {
                "http_url": "ftp://exec",
                "ws_url": "http://feed",
                "trading": {"max_total_positions": 0, "max_total_investment": -1},
                "strategy": {"consecutive_buy_count": 0, "buy_amount_sol": 0},
            },
        )
        errors = validate_settings(load_settings(path))

        assert any("HTTP URL" in e for e in errors)
        assert any("WebSocket URL" in e for e in errors)
        assert any("Max total positions" in e for e in errors)
        assert any("Max total investment" in e for e in errors)
        assert any("Consecutive buy count" in e for e in errors)
        assert any("Buy amount" in e for e in errors)

    def test_buy_amount_outside_trade_bounds(self, tmp_path) -> None:
        path = _write(tmp_path / "bot.json", {"strategy": {"buy_amount_sol": 0.5}})
        errors = validate_settings(load_settings(path))
        assert errors == ["Buy amount 0.5 must be within [0.01, 0.1]"]

    def test_stop_loss_must_be_negative(self, tmp_path) -> None:
        path = _write(tmp_path / "bot.json", {"strategy": {"stop_loss_ratio": 0.05}})
        assert validate_settings(load_settings(path)) == ["Stop loss ratio must be negative"]


def test_example_config_is_valid(tmp_path) -> None:
    path = write_example_config(tmp_path / "out" / "example.json")
    settings = load_settings(path)
    assert validate_settings(settings) == []
    assert settings.trading.max_total_positions == 5

"""Configuration system using pydantic-settings with a JSON file plus env overlay.

Settings are read from an optional JSON document (``bot-config.json`` by
default) and then overridden by environment variables. Environment values
always win over the file, so every settings group puts the env source ahead
of the init kwargs that carry the file values.
"""

import json
import os
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field
from pydantic.alias_generators import to_snake
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from dexbot.exceptions import ConfigurationError
from dexbot.strategy.consecutive_buy import ConsecutiveBuyConfig

DEFAULT_CONFIG_PATH = "./bot-config.json"


class _EnvFirstSettings(BaseSettings):
    """Base for settings groups where env vars override JSON file values."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, dotenv_settings, init_settings, file_secret_settings


class TradingSettings(_EnvFirstSettings):
    """Global risk envelope (the ``global`` block of the bot config)."""

    model_config = SettingsConfigDict(env_prefix="")

    max_total_positions: int = 10
    max_total_investment: Decimal = Decimal("1.0")  # SOL
    emergency_stop: bool = False
    dry_run: bool = True  # never send trades unless explicitly disabled


class RiskSettings(_EnvFirstSettings):
    """Loss limits applied by the risk gate."""

    model_config = SettingsConfigDict(env_prefix="RISK_")

    max_daily_loss: Decimal = Decimal("0.1")  # SOL
    max_consecutive_losses: int = 5
    pause_after_loss: float = 300.0  # seconds


class ExecutorSettings(_EnvFirstSettings):
    """HTTP trading-execution service client settings."""

    model_config = SettingsConfigDict(env_prefix="EXECUTOR_")

    request_timeout: float = Field(
        default=30.0,
        validation_alias=AliasChoices(
            "REQUEST_TIMEOUT", "EXECUTOR_REQUEST_TIMEOUT", "request_timeout"
        ),
    )
    max_retries: int = 3
    retry_delay: float = 1.0  # seconds, multiplied by attempt number
    default_slippage_bps: int = 500


class FeedSettings(_EnvFirstSettings):
    """Event feed ingestion and periodic sweep settings."""

    model_config = SettingsConfigDict(env_prefix="FEED_")

    queue_size: int = 1000  # drop-oldest beyond this many pending messages
    reconnect_base_delay: float = 0.5
    reconnect_max_delay: float = 10.0
    exit_check_interval: float = Field(
        default=5.0,
        validation_alias=AliasChoices(
            "EXIT_CHECK_INTERVAL", "FEED_EXIT_CHECK_INTERVAL", "exit_check_interval"
        ),
    )
    strategy_cleanup_interval: float = 1800.0
    closed_retention_days: float = 7.0


class ConsecutiveBuySettings(_EnvFirstSettings):
    """Consecutive-buy strategy parameters.

    The five strategy-specific thresholds keep their historical env names
    (CONSECUTIVE_BUY_COUNT, TOTAL_AMOUNT_THRESHOLD, ...). Everything else is
    available under the STRATEGY_ prefix.
    """

    model_config = SettingsConfigDict(env_prefix="STRATEGY_")

    name: str = "ConsecutiveBuy"
    enabled: bool = True
    max_positions: int = 5
    max_trade_amount: Decimal = Decimal("0.1")
    min_trade_amount: Decimal = Decimal("0.01")
    slippage_bps: int = 500
    take_profit_ratio: Decimal | None = Decimal("0.1")
    stop_loss_ratio: Decimal | None = Decimal("-0.05")
    min_hold_time: float | None = 10.0  # seconds
    cooldown_seconds: float = 0.0

    consecutive_buy_count: int = Field(
        default=3,
        validation_alias=AliasChoices(
            "CONSECUTIVE_BUY_COUNT", "STRATEGY_CONSECUTIVE_BUY_COUNT", "consecutive_buy_count"
        ),
    )
    total_amount_threshold: Decimal = Field(
        default=Decimal("5.0"),
        validation_alias=AliasChoices(
            "TOTAL_AMOUNT_THRESHOLD", "STRATEGY_TOTAL_AMOUNT_THRESHOLD", "total_amount_threshold"
        ),
    )
    time_window_seconds: float = Field(
        default=300.0,
        validation_alias=AliasChoices(
            "TIME_WINDOW_SECONDS", "STRATEGY_TIME_WINDOW_SECONDS", "time_window_seconds"
        ),
    )
    target_profit_ratio: Decimal = Field(
        default=Decimal("0.1"),
        validation_alias=AliasChoices(
            "TARGET_PROFIT_RATIO", "STRATEGY_TARGET_PROFIT_RATIO", "target_profit_ratio"
        ),
    )
    buy_amount_sol: Decimal = Field(
        default=Decimal("0.01"),
        validation_alias=AliasChoices(
            "BUY_AMOUNT_SOL", "STRATEGY_BUY_AMOUNT_SOL", "buy_amount_sol"
        ),
    )

    def to_config(self) -> ConsecutiveBuyConfig:
        """Build the strategy's runtime config from these settings."""
        return ConsecutiveBuyConfig(
            name=self.name,
            enabled=self.enabled,
            max_positions=self.max_positions,
            max_trade_amount=self.max_trade_amount,
            min_trade_amount=self.min_trade_amount,
            slippage_bps=self.slippage_bps,
            take_profit_ratio=self.take_profit_ratio,
            stop_loss_ratio=self.stop_loss_ratio,
            min_hold_time=self.min_hold_time,
            consecutive_buy_count=self.consecutive_buy_count,
            total_amount_threshold=self.total_amount_threshold,
            time_window_seconds=self.time_window_seconds,
            target_profit_ratio=self.target_profit_ratio,
            buy_amount_sol=self.buy_amount_sol,
            cooldown_seconds=self.cooldown_seconds,
        )


class DashboardSettings(_EnvFirstSettings):
    """Status API server configuration."""

    model_config = SettingsConfigDict(env_prefix="DASHBOARD_")

    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8080


class AppSettings(_EnvFirstSettings):
    """Root application settings, composing all sub-settings."""

    http_url: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("HTTP_API_URL", "http_url"),
    )
    ws_url: str = Field(
        default="ws://127.0.0.1:9001",
        validation_alias=AliasChoices("WS_URL", "ws_url"),
    )
    log_level: str = "INFO"
    trading: TradingSettings = Field(default_factory=TradingSettings)
    risk: RiskSettings = Field(default_factory=RiskSettings)
    executor: ExecutorSettings = Field(default_factory=ExecutorSettings)
    feed: FeedSettings = Field(default_factory=FeedSettings)
    strategy: ConsecutiveBuySettings = Field(default_factory=ConsecutiveBuySettings)
    dashboard: DashboardSettings = Field(default_factory=DashboardSettings)


_SECTIONS: dict[str, type[_EnvFirstSettings]] = {
    "trading": TradingSettings,
    "risk": RiskSettings,
    "executor": ExecutorSettings,
    "feed": FeedSettings,
    "strategy": ConsecutiveBuySettings,
    "dashboard": DashboardSettings,
}


def _snake_keys(section: Any) -> Any:
    """Rename camelCase keys (``maxTotalInvestment``) to their field names."""
    if not isinstance(section, dict):
        return section
    return {
        (to_snake(key) if "_" not in key and not key.islower() else key): value
        for key, value in section.items()
    }


def resolve_config_path(path: str | os.PathLike[str] | None = None) -> Path:
    """Return the config file path: explicit argument, BOT_CONFIG_PATH, or default."""
    if path is not None:
        return Path(path)
    return Path(os.environ.get("BOT_CONFIG_PATH", DEFAULT_CONFIG_PATH))


def load_settings(path: str | os.PathLike[str] | None = None) -> AppSettings:
    """Load settings from the JSON config file, overlaid with environment variables.

    A missing file is not an error: all values fall back to defaults (and env).
    The legacy ``global``/``riskManagement`` section names are accepted as
    aliases for ``trading``/``risk``, and camelCase keys such as
    ``maxTotalInvestment`` map to their snake_case fields.

    Args:
        path: Config file path. Defaults to BOT_CONFIG_PATH or ./bot-config.json.

    Returns:
        Fully populated AppSettings.

    Raises:
        ConfigurationError: If the file exists but is not a JSON object.
    """
    config_path = resolve_config_path(path)
    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            loaded = json.loads(config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigurationError([f"{config_path}: invalid JSON ({exc})"]) from exc
        if not isinstance(loaded, dict):
            raise ConfigurationError([f"{config_path}: top level must be an object"])
        data = loaded

    if "global" in data and "trading" not in data:
        data["trading"] = data.pop("global")
    if "riskManagement" in data and "risk" not in data:
        data["risk"] = data.pop("riskManagement")
    data = _snake_keys(data)

    sections = {
        name: cls(**_snake_keys(data.get(name) or {})) for name, cls in _SECTIONS.items()
    }
    top_level = {
        key: data[key] for key in ("http_url", "ws_url", "log_level") if key in data
    }
    return AppSettings(**top_level, **sections)


def validate_settings(settings: AppSettings) -> list[str]:
    """Return every configuration violation found (empty list when valid)."""
    errors: list[str] = []

    if not settings.http_url:
        errors.append("HTTP URL is required")
    elif not settings.http_url.startswith(("http://", "https://")):
        errors.append(f"HTTP URL must start with http:// or https://: {settings.http_url}")

    if not settings.ws_url:
        errors.append("WebSocket URL is required")
    elif not settings.ws_url.startswith(("ws://", "wss://")):
        errors.append(f"WebSocket URL must start with ws:// or wss://: {settings.ws_url}")

    trading = settings.trading
    if trading.max_total_positions <= 0:
        errors.append("Max total positions must be positive")
    if trading.max_total_investment <= 0:
        errors.append("Max total investment must be positive")

    risk = settings.risk
    if risk.max_daily_loss <= 0:
        errors.append("Max daily loss must be positive")
    if risk.max_consecutive_losses <= 0:
        errors.append("Max consecutive losses must be positive")
    if risk.pause_after_loss < 0:
        errors.append("Pause after loss must not be negative")

    executor = settings.executor
    if executor.request_timeout <= 0:
        errors.append("Request timeout must be positive")
    if executor.max_retries < 1:
        errors.append("Executor max retries must be at least 1")
    if not 0 <= executor.default_slippage_bps <= 10_000:
        errors.append("Default slippage must be between 0 and 10000 bps")

    feed = settings.feed
    if feed.queue_size <= 0:
        errors.append("Feed queue size must be positive")
    if feed.exit_check_interval <= 0:
        errors.append("Exit check interval must be positive")

    strategy = settings.strategy
    if strategy.consecutive_buy_count < 1:
        errors.append("Consecutive buy count must be at least 1")
    if strategy.total_amount_threshold < 0:
        errors.append("Total amount threshold must not be negative")
    if strategy.time_window_seconds <= 0:
        errors.append("Time window must be positive")
    if strategy.target_profit_ratio <= 0:
        errors.append("Target profit ratio must be positive")
    if strategy.buy_amount_sol <= 0:
        errors.append("Buy amount must be positive")
    elif not strategy.min_trade_amount <= strategy.buy_amount_sol <= strategy.max_trade_amount:
        errors.append(
            f"Buy amount {strategy.buy_amount_sol} must be within "
            f"[{strategy.min_trade_amount}, {strategy.max_trade_amount}]"
        )
    if strategy.stop_loss_ratio is not None and strategy.stop_loss_ratio >= 0:
        errors.append("Stop loss ratio must be negative")
    if not 0 <= strategy.slippage_bps <= 10_000:
        errors.append("Strategy slippage must be between 0 and 10000 bps")
    if strategy.max_positions <= 0:
        errors.append("Strategy max positions must be positive")

    return errors


def write_example_config(path: str | os.PathLike[str] = "./bot-config.example.json") -> Path:
    """Write an example config document with conservative values.

    Returns:
        The path written.
    """
    example = {
        "http_url": "http://localhost:3000",
        "ws_url": "ws://127.0.0.1:9001",
        "trading": {
            "max_total_positions": 5,
            "max_total_investment": 0.5,
            "emergency_stop": False,
            "dry_run": True,
        },
        "risk": {
            "max_daily_loss": 0.05,
            "max_consecutive_losses": 3,
            "pause_after_loss": 600,
        },
        "strategy": {
            "consecutive_buy_count": 3,
            "total_amount_threshold": 5.0,
            "time_window_seconds": 300,
            "target_profit_ratio": 0.1,
            "buy_amount_sol": 0.01,
        },
    }
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(example, indent=2) + "\n", encoding="utf-8")
    return target

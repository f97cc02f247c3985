"""Shared test fixtures for the DEX trading bot."""

from decimal import Decimal

import pytest

from dexbot.config import RiskSettings, TradingSettings
from dexbot.market_data.price_cache import PriceCache
from dexbot.models import Position
from dexbot.notifications import NotificationBus
from dexbot.position.manager import PositionManager
from dexbot.strategy.base import StrategyContext

START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced Unix-seconds clock."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus() -> NotificationBus:
    return NotificationBus()


@pytest.fixture
def published(bus: NotificationBus) -> list:
    """Every notification published on ``bus``, in order."""
    received: list = []
    bus.subscribe(received.append)
    return received


@pytest.fixture
def price_cache() -> PriceCache:
    return PriceCache()


@pytest.fixture
def position_manager(price_cache: PriceCache, bus: NotificationBus, clock: FakeClock) -> PositionManager:
    return PositionManager(price_cache, bus, clock=clock)


@pytest.fixture
def context(price_cache: PriceCache, position_manager: PositionManager) -> StrategyContext:
    return StrategyContext(price_cache, position_manager)


@pytest.fixture
def trading_settings() -> TradingSettings:
    return TradingSettings(
        max_total_positions=3,
        max_total_investment=Decimal("1.0"),
        emergency_stop=False,
        dry_run=True,
    )


@pytest.fixture
def risk_settings() -> RiskSettings:
    return RiskSettings(
        max_daily_loss=Decimal("0.1"),
        max_consecutive_losses=2,
        pause_after_loss=60.0,
    )


@pytest.fixture
def make_position(clock: FakeClock):
    """Factory for active positions entered at the current fake time."""

    def _make(
        mint: str = "MintA",
        amount: str = "10",
        entry_price: str = "0.001",
        invested: str | None = None,
        strategy: str = "ConsecutiveBuy",
        **kwargs,
    ) -> Position:
        amount_d = Decimal(amount)
        price_d = Decimal(entry_price)
        defaults = dict(
            mint=mint,
            amount=amount_d,
            entry_price=price_d,
            entry_time=clock(),
            entry_tx_signature="sig-entry",
            strategy=strategy,
            invested_sol=Decimal(invested) if invested is not None else amount_d * price_d,
            current_value=amount_d * price_d,
            pnl_ratio=Decimal("0"),
            last_update=clock(),
        )
        defaults.update(kwargs)
        return Position(**defaults)

    return _make

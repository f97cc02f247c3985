"""Strategy interface and the exit policy shared by all strategies.

A strategy turns normalized events into trade signals and decides when its
own open positions should be closed. Strategies read shared state only
through a StrategyContext; all mutable pattern state (windows, marks)
belongs to the strategy instance and is torn down in ``destroy``.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable

from dexbot.events.models import DexEvent, LatencyInfo
from dexbot.market_data.price_cache import PriceCache
from dexbot.models import SELL_ALL, Position, SignalPriority, TradeResult, TradeSide, TradeSignal

if TYPE_CHECKING:
    from dexbot.position.manager import PositionManager


@dataclass
class StrategyConfig:
    """Settings common to every strategy."""

    name: str
    enabled: bool = True
    max_positions: int = 5
    max_trade_amount: Decimal = Decimal("0.1")  # SOL
    min_trade_amount: Decimal = Decimal("0.01")  # SOL
    slippage_bps: int = 500
    take_profit_ratio: Decimal | None = None
    stop_loss_ratio: Decimal | None = None
    min_hold_time: float | None = None  # seconds
    params: dict[str, Any] = field(default_factory=dict)


class StrategyContext:
    """Read-only view of shared state handed to strategies.

    Args:
        price_cache: Shared per-mint price history.
        positions: The position manager (queried, never mutated).
    """

    def __init__(self, price_cache: PriceCache, positions: "PositionManager") -> None:
        self._price_cache = price_cache
        self._positions = positions
        self._latency: LatencyInfo | None = None

    def get_price(self, mint: str) -> Decimal | None:
        return self._price_cache.current_price(mint)

    def get_price_history(self, mint: str, length: int | None = None) -> list[Decimal]:
        return self._price_cache.history(mint, length)

    def get_price_change(self, mint: str, periods: int = 1) -> Decimal | None:
        return self._price_cache.price_change(mint, periods)

    def has_position(self, mint: str) -> bool:
        return self._positions.has_position(mint)

    def get_position(self, mint: str) -> Position | None:
        return self._positions.get_position(mint)

    def get_latency(self) -> LatencyInfo | None:
        """Latency of the event currently being processed, if measured."""
        return self._latency

    def set_latency(self, latency: LatencyInfo | None) -> None:
        self._latency = latency


def pnl_ratio(position: Position, current_price: Decimal) -> Decimal | None:
    """Return (current - entry) / entry, or None for a zero entry price."""
    if position.entry_price == 0:
        return None
    return (current_price - position.entry_price) / position.entry_price


class BaseStrategy(ABC):
    """Abstract strategy.

    ``analyze_event`` and ``check_exit_conditions`` are synchronous and must
    not block; lifecycle hooks are coroutines.

    Args:
        config: Strategy settings.
        context: Shared read-only state.
        clock: Unix-seconds clock, injectable for tests.
    """

    def __init__(
        self,
        config: StrategyConfig,
        context: StrategyContext,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.context = context
        self._clock = clock

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @abstractmethod
    def analyze_event(self, event: DexEvent, latency: LatencyInfo | None = None) -> list[TradeSignal]:
        """Return zero or more trade signals for one event."""

    def check_exit_conditions(self, position: Position) -> TradeSignal | None:
        """Apply the shared exit policy to one open position.

        The minimum hold time is checked first: a position younger than
        ``min_hold_time`` never exits on this tick, whatever its PnL. After
        that, take profit fires at ``pnl_ratio >= take_profit_ratio`` and stop
        loss at ``pnl_ratio <= stop_loss_ratio``.
        """
        current_price = self.context.get_price(position.mint)
        if current_price is None:
            return None
        ratio = pnl_ratio(position, current_price)
        if ratio is None:
            return None

        if self.config.min_hold_time is not None:
            held = self._clock() - position.entry_time
            if held < self.config.min_hold_time:
                return None

        tp = self.config.take_profit_ratio
        if tp is not None and ratio >= tp:
            return self._sell_all(position, f"take profit ({ratio:.2%})")

        sl = self.config.stop_loss_ratio
        if sl is not None and ratio <= sl:
            return self._sell_all(position, f"stop loss ({ratio:.2%})")

        return None

    def _sell_all(self, position: Position, reason: str) -> TradeSignal:
        return TradeSignal(
            side=TradeSide.SELL,
            mint=position.mint,
            amount=SELL_ALL,
            reason=reason,
            priority=SignalPriority.HIGH,
            slippage_bps=self.config.slippage_bps,
            strategy=self.name,
        )

    async def initialize(self) -> None:
        """Called once before the first event."""

    async def destroy(self) -> None:
        """Called once on shutdown; release per-instance state here."""

    async def on_trade_result(self, signal: TradeSignal, result: TradeResult) -> None:
        """Called after every execution attempt of this strategy's signals."""

    def cleanup(self) -> None:
        """Prune expired internal state. Called periodically."""

    def get_status(self) -> dict[str, Any]:
        return {"name": self.name, "enabled": self.enabled}

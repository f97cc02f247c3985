"""Consecutive-buy strategy.

Buys a token after ``consecutive_buy_count`` buys by other traders land
close together in time with a combined size of at least
``total_amount_threshold``. Exits at ``target_profit_ratio`` or through the
shared take-profit / stop-loss policy.

Pattern state per mint:
- a trailing time window of recent buys, pruned on every append
- a bought-mark set when a buy signal is emitted, cleared when the position
  exits or the buy fails
- an optional cooldown after a successful sell
"""

from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from dexbot.events.models import (
    LAMPORTS_PER_SOL,
    BondingCurveTrade,
    DexEvent,
    LatencyInfo,
    SwapTrade,
)
from dexbot.logging import get_logger
from dexbot.models import (
    SELL_ALL,
    Position,
    SignalPriority,
    TradeResult,
    TradeSide,
    TradeSignal,
)
from dexbot.strategy.base import BaseStrategy, StrategyConfig, pnl_ratio

logger = get_logger(__name__)


@dataclass(frozen=True)
class BuyEvent:
    """A buy observed on the feed."""

    mint: str
    amount: Decimal  # SOL
    timestamp: float
    trader: str


@dataclass
class ConsecutiveBuyConfig(StrategyConfig):
    """Consecutive-buy settings on top of the common strategy fields."""

    name: str = "ConsecutiveBuy"
    take_profit_ratio: Decimal | None = Decimal("0.1")
    stop_loss_ratio: Decimal | None = Decimal("-0.05")
    min_hold_time: float | None = 10.0
    consecutive_buy_count: int = 3
    total_amount_threshold: Decimal = Decimal("5.0")
    time_window_seconds: float = 300.0
    target_profit_ratio: Decimal = Decimal("0.1")
    buy_amount_sol: Decimal = Decimal("0.01")
    cooldown_seconds: float = 0.0
    params: dict[str, Any] = field(default_factory=dict)


def extract_buy_event(event: DexEvent, timestamp: float) -> BuyEvent | None:
    """Return the buy carried by a trade event, or None for sells and other variants.

    The SOL leg arrives in lamports; the returned amount is in SOL.
    """
    if isinstance(event, SwapTrade) and event.is_buy:
        return BuyEvent(
            mint=event.mint,
            amount=event.amount_in / LAMPORTS_PER_SOL,
            timestamp=timestamp,
            trader=event.trader,
        )
    if isinstance(event, BondingCurveTrade) and event.is_buy:
        return BuyEvent(
            mint=event.mint,
            amount=event.amount_sol / LAMPORTS_PER_SOL,
            timestamp=timestamp,
            trader=event.trader,
        )
    return None


class ConsecutiveBuyStrategy(BaseStrategy):
    """Follows bursts of consecutive buys on a token."""

    config: ConsecutiveBuyConfig

    def __init__(self, config: ConsecutiveBuyConfig, *args: Any, **kwargs: Any) -> None:
        super().__init__(config, *args, **kwargs)
        self._windows: dict[str, deque[BuyEvent]] = {}
        self._bought: set[str] = set()
        self._cooldown_until: dict[str, float] = {}

    # ------------------------------------------------------------------
    # Entry
    # ------------------------------------------------------------------

    def analyze_event(self, event: DexEvent, latency: LatencyInfo | None = None) -> list[TradeSignal]:
        now = self._clock()
        buy = extract_buy_event(event, now)
        if buy is None:
            return []

        self._record(buy)
        total = self._pattern_total(buy.mint)
        if total is None:
            return []

        mint = buy.mint
        if mint in self._bought or self.context.has_position(mint):
            return []
        if self._in_cooldown(mint, now):
            logger.debug("consecutive_buy_cooldown", mint=mint, strategy=self.name)
            return []

        self._bought.add(mint)
        logger.info(
            "consecutive_buy_detected",
            mint=mint,
            strategy=self.name,
            buys=self.config.consecutive_buy_count,
            total=str(total),
            latency_ms=latency.latency_ms if latency is not None else None,
        )
        return [
            TradeSignal(
                side=TradeSide.BUY,
                mint=mint,
                amount=self.config.buy_amount_sol,
                reason=f"{self.config.consecutive_buy_count} consecutive buys totalling {total:.2f}",
                priority=SignalPriority.MEDIUM,
                slippage_bps=self.config.slippage_bps,
                strategy=self.name,
                params={"source_event": event},
            )
        ]

    def _record(self, buy: BuyEvent) -> None:
        """Append a buy and prune entries outside the trailing window."""
        window = self._windows.setdefault(buy.mint, deque())
        window.append(buy)
        cutoff = buy.timestamp - self.config.time_window_seconds
        while window and window[0].timestamp <= cutoff:
            window.popleft()
        if not window:
            del self._windows[buy.mint]

    def _pattern_total(self, mint: str) -> Decimal | None:
        """Return the summed amount when the last N buys form the pattern, else None."""
        window = self._windows.get(mint)
        count = self.config.consecutive_buy_count
        if window is None or len(window) < count:
            return None

        recent = list(window)[-count:]
        for prev, curr in zip(recent, recent[1:]):
            if curr.timestamp - prev.timestamp > self.config.time_window_seconds:
                return None

        total = sum((b.amount for b in recent), Decimal("0"))
        if total < self.config.total_amount_threshold:
            return None
        return total

    def _in_cooldown(self, mint: str, now: float) -> bool:
        until = self._cooldown_until.get(mint)
        if until is None:
            return False
        if now >= until:
            del self._cooldown_until[mint]
            return False
        return True

    # ------------------------------------------------------------------
    # Exit
    # ------------------------------------------------------------------

    def check_exit_conditions(self, position: Position) -> TradeSignal | None:
        current_price = self.context.get_price(position.mint)
        if current_price is None:
            return None

        ratio = pnl_ratio(position, current_price)
        if ratio is not None and ratio >= self.config.target_profit_ratio:
            self._bought.discard(position.mint)
            return TradeSignal(
                side=TradeSide.SELL,
                mint=position.mint,
                amount=SELL_ALL,
                reason=f"target profit reached ({ratio:.2%})",
                priority=SignalPriority.HIGH,
                slippage_bps=self.config.slippage_bps,
                strategy=self.name,
            )

        signal = super().check_exit_conditions(position)
        if signal is not None:
            self._bought.discard(position.mint)
        return signal

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        logger.info(
            "strategy_initialized",
            strategy=self.name,
            consecutive_buy_count=self.config.consecutive_buy_count,
            total_amount_threshold=str(self.config.total_amount_threshold),
            time_window_seconds=self.config.time_window_seconds,
            target_profit_ratio=str(self.config.target_profit_ratio),
            buy_amount_sol=str(self.config.buy_amount_sol),
        )

    async def destroy(self) -> None:
        self._windows.clear()
        self._bought.clear()
        self._cooldown_until.clear()
        logger.info("strategy_destroyed", strategy=self.name)

    async def on_trade_result(self, signal: TradeSignal, result: TradeResult) -> None:
        if signal.side == TradeSide.BUY and not result.success:
            # Allow the pattern to trigger again
            self._bought.discard(signal.mint)
        elif signal.side == TradeSide.SELL and result.success:
            self._bought.discard(signal.mint)
            if self.config.cooldown_seconds > 0:
                self._cooldown_until[signal.mint] = self._clock() + self.config.cooldown_seconds

    def cleanup(self) -> None:
        """Drop expired windows, stale bought-marks and finished cooldowns."""
        now = self._clock()
        cutoff = now - self.config.time_window_seconds
        for mint in list(self._windows):
            window = self._windows[mint]
            while window and window[0].timestamp <= cutoff:
                window.popleft()
            if not window:
                del self._windows[mint]

        for mint in list(self._bought):
            if mint not in self._windows and not self.context.has_position(mint):
                self._bought.discard(mint)

        for mint, until in list(self._cooldown_until.items()):
            if now >= until:
                del self._cooldown_until[mint]

    def is_bought(self, mint: str) -> bool:
        return mint in self._bought

    def get_status(self) -> dict[str, Any]:
        return {
            **super().get_status(),
            "tracked_tokens": len(self._windows),
            "bought_tokens": sorted(self._bought),
            "cooldowns": len(self._cooldown_until),
            "windows": {
                mint: [
                    {"amount": str(b.amount), "timestamp": b.timestamp, "trader": b.trader}
                    for b in window
                ]
                for mint, window in self._windows.items()
            },
        }

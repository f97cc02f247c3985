"""Signal execution coordinator.

Runs a batch of trade signals one at a time, in priority order:

1. Risk gate. A rejected signal publishes SignalRejected and has no other
   side effect.
2. Executor call with the originating event and, for sells, the live
   position (used to resolve sell-all).
3. Reconciliation on success: a buy opens a position, a sell closes it.
4. Strategy callback, always, whatever the outcome.

Every signal is isolated: an exception while executing one signal is
logged, published as SignalFailed, and the batch moves on.
"""

import time
from collections.abc import Callable, Mapping, Sequence
from decimal import Decimal

from dexbot.events.models import DexEvent
from dexbot.exceptions import PositionNotFoundError
from dexbot.execution.executor import TradeExecutor
from dexbot.logging import get_logger, trade_context
from dexbot.market_data.price_cache import tokens_for_sol
from dexbot.models import Position, TradeResult, TradeSide, TradeSignal
from dexbot.notifications import (
    NotificationBus,
    SignalExecuted,
    SignalFailed,
    SignalRejected,
    StatsUpdated,
    StrategyFailed,
)
from dexbot.pnl.stats import TradeStatsTracker
from dexbot.position.manager import PositionManager
from dexbot.risk.manager import RiskManager
from dexbot.strategy.base import BaseStrategy

logger = get_logger(__name__)


def sort_by_priority(signals: Sequence[TradeSignal]) -> list[TradeSignal]:
    """Order signals high > medium > low, keeping arrival order within a priority."""
    return sorted(signals, key=lambda s: s.priority.rank)


class SignalCoordinator:
    """Executes trade signals against the risk gate, executor and position store.

    Args:
        risk_manager: Pre-trade risk gate.
        position_manager: Position store reconciled after each execution.
        executor: Dry-run or HTTP executor.
        stats: Trade statistics accumulator.
        bus: Notification bus.
        strategies: Strategies by name, for result callbacks and position caps.
        clock: Unix-seconds clock, injectable for tests.
    """

    def __init__(
        self,
        risk_manager: RiskManager,
        position_manager: PositionManager,
        executor: TradeExecutor,
        stats: TradeStatsTracker,
        bus: NotificationBus,
        strategies: Mapping[str, BaseStrategy] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._risk = risk_manager
        self._positions = position_manager
        self._executor = executor
        self._stats = stats
        self._bus = bus
        self._strategies: Mapping[str, BaseStrategy] = strategies if strategies is not None else {}
        self._clock = clock

    async def execute_batch(
        self,
        signals: Sequence[TradeSignal],
        source_event: DexEvent | None = None,
    ) -> list[TradeResult | None]:
        """Execute signals in priority order.

        Returns:
            One entry per signal in execution order: the TradeResult, or None
            when the risk gate rejected the signal.
        """
        results: list[TradeResult | None] = []
        for signal in sort_by_priority(signals):
            try:
                results.append(await self.execute_signal(signal, source_event))
            except Exception as exc:
                logger.error(
                    "signal_execution_error",
                    mint=signal.mint,
                    side=signal.side.value,
                    error=str(exc),
                    exc_info=True,
                )
                self._bus.publish(SignalFailed(signal=signal, error=str(exc)))
                results.append(TradeResult(success=False, error=str(exc)))
        return results

    async def execute_signal(
        self,
        signal: TradeSignal,
        source_event: DexEvent | None = None,
        *,
        skip_risk: bool = False,
    ) -> TradeResult | None:
        """Run one signal through gate, executor, reconciliation and callback.

        Args:
            signal: The signal to execute.
            source_event: Originating event, if any.
            skip_risk: Bypass the risk gate (emergency liquidation only).

        Returns:
            The TradeResult, or None if the risk gate rejected the signal.
        """
        with trade_context(mint=signal.mint, side=signal.side.value, strategy=signal.strategy):
            return await self._execute_signal(signal, source_event, skip_risk)

    async def _execute_signal(
        self, signal: TradeSignal, source_event: DexEvent | None, skip_risk: bool
    ) -> TradeResult | None:
        strategy = self._strategies.get(signal.strategy or "")

        if not skip_risk:
            max_positions = strategy.config.max_positions if strategy is not None else None
            allowed, reason = self._risk.check_signal(signal, self._positions, max_positions)
            if not allowed:
                self._bus.publish(SignalRejected(signal=signal, reason=reason))
                return None

        if source_event is None:
            source_event = signal.params.get("source_event")
        position = self._positions.get_position(signal.mint)

        try:
            result = await self._executor.execute(signal, source_event, position)
        except Exception as exc:
            logger.error(
                "executor_failed",
                mint=signal.mint,
                side=signal.side.value,
                error=str(exc),
                exc_info=True,
            )
            self._bus.publish(SignalFailed(signal=signal, error=str(exc)))
            result = TradeResult(success=False, error=str(exc), executed_at=self._clock())
        else:
            self._bus.publish(SignalExecuted(signal=signal, result=result))

        self._stats.record_execution(result)

        if result.success:
            try:
                self._reconcile(signal, result)
            except PositionNotFoundError as exc:
                logger.warning("reconcile_position_missing", mint=signal.mint)
                self._bus.publish(SignalFailed(signal=signal, error=str(exc)))

        if strategy is not None:
            try:
                await strategy.on_trade_result(signal, result)
            except Exception as exc:
                logger.error(
                    "strategy_callback_failed",
                    strategy=strategy.name,
                    error=str(exc),
                    exc_info=True,
                )
                self._bus.publish(StrategyFailed(strategy=strategy.name, error=str(exc)))

        self._bus.publish(StatsUpdated(stats=self._stats.snapshot()))
        return result

    def _reconcile(self, signal: TradeSignal, result: TradeResult) -> None:
        if signal.side == TradeSide.BUY:
            position = self._position_from_buy(signal, result)
            if position is None:
                logger.error(
                    "position_open_skipped",
                    mint=signal.mint,
                    reason="no entry price available",
                    signature=result.signature,
                )
                return
            self._positions.open_position(position)
            return

        closed = self._positions.close_position(signal.mint, result)
        pnl = closed.pnl if closed.pnl is not None else Decimal("0")
        self._risk.record_close(pnl)
        self._stats.record_close(pnl)

    def _position_from_buy(self, signal: TradeSignal, result: TradeResult) -> Position | None:
        """Build the opened position from a successful buy.

        Entry price is the executed price, else the latest cached price, else
        derived from the executed token amount. Token amount, in raw units, is
        the executed amount, else SOL invested divided by the entry price and
        rounded to a whole unit.
        """
        invested = signal.amount
        executed = result.executed_amount if result.executed_amount else None

        entry_price = result.executed_price if result.executed_price else None
        if entry_price is None:
            entry_price = self._positions.get_price(signal.mint)
        if not entry_price and executed:
            entry_price = invested / executed
        if not entry_price:
            return None

        amount = executed if executed is not None else tokens_for_sol(invested, entry_price)
        now = self._clock()
        return Position(
            mint=signal.mint,
            amount=amount,
            entry_price=entry_price,
            entry_time=now,
            entry_tx_signature=result.signature or "",
            strategy=signal.strategy or "unknown",
            invested_sol=invested,
            current_value=amount * entry_price,
            pnl_ratio=Decimal("0"),
            last_update=now,
            metadata={"reason": signal.reason, "simulated": result.is_simulated},
        )

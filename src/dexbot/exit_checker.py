"""Periodic exit checker.

On a fixed interval, asks each open position's owning strategy whether the
position should be closed, and routes any exit signal through the
coordinator as a single-signal batch. Sweeps run under the same execution
lock as event-driven batches, so the two never interleave.

On slower intervals the sweep also prunes strategy state, the closed
position log, and the trade event cache.
"""

import asyncio
import time
from collections.abc import Callable, Mapping

from dexbot.coordinator import SignalCoordinator
from dexbot.execution.dex_params import TradeEventCache
from dexbot.logging import get_logger
from dexbot.models import Position, PositionStatus, TradeSignal
from dexbot.notifications import NotificationBus, StrategyFailed
from dexbot.position.manager import PositionManager
from dexbot.strategy.base import BaseStrategy

logger = get_logger(__name__)


class ExitChecker:
    """Timer-driven exit sweep over all active positions.

    Args:
        position_manager: Source of active positions.
        strategies: Strategies by name; positions are matched on ``position.strategy``.
        coordinator: Executes exit signals.
        lock: Execution lock shared with the event path.
        bus: Notification bus for strategy failures.
        interval: Seconds between exit sweeps.
        strategy_cleanup_interval: Seconds between strategy ``cleanup`` calls.
        closed_retention_days: Age after which closed positions are pruned.
        event_cache: Trade event cache to prune alongside strategy state.
        clock: Unix-seconds clock, injectable for tests.
    """

    def __init__(
        self,
        position_manager: PositionManager,
        strategies: Mapping[str, BaseStrategy],
        coordinator: SignalCoordinator,
        lock: asyncio.Lock,
        bus: NotificationBus,
        interval: float = 5.0,
        strategy_cleanup_interval: float = 1800.0,
        closed_retention_days: float = 7.0,
        event_cache: TradeEventCache | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._positions = position_manager
        self._strategies = strategies
        self._coordinator = coordinator
        self._lock = lock
        self._bus = bus
        self._interval = interval
        self._cleanup_interval = strategy_cleanup_interval
        self._retention_days = closed_retention_days
        self._event_cache = event_cache
        self._clock = clock
        self._last_cleanup = clock()
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    async def start(self) -> None:
        """Begin periodic sweeps in the background."""
        if self._running:
            logger.warning("exit_checker_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("exit_checker_started", interval=self._interval)

    async def stop(self) -> None:
        """Cancel the periodic timer."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("exit_checker_stopped")

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                async with self._lock:
                    await self.sweep()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("exit_sweep_error", exc_info=True)

    async def sweep(self) -> int:
        """Run one exit check, plus cleanup when its interval has elapsed.

        Callers must hold the execution lock.

        Returns:
            Number of exit signals routed to the coordinator.
        """
        routed = await self.check_positions()
        now = self._clock()
        if now - self._last_cleanup >= self._cleanup_interval:
            self.run_cleanup()
            self._last_cleanup = now
        return routed

    async def check_positions(self) -> int:
        routed = 0
        for position in self._positions.get_open_positions():
            if position.status != PositionStatus.ACTIVE:
                continue
            signal = self._exit_signal_for(position)
            if signal is None:
                continue
            logger.info(
                "exit_signal",
                mint=position.mint,
                strategy=position.strategy,
                reason=signal.reason,
            )
            await self._coordinator.execute_batch([signal])
            routed += 1
        return routed

    def _exit_signal_for(self, position: Position) -> TradeSignal | None:
        strategy = self._strategies.get(position.strategy)
        if strategy is None or not strategy.enabled:
            return None
        try:
            signal = strategy.check_exit_conditions(position)
        except Exception as exc:
            logger.error(
                "exit_check_failed",
                strategy=strategy.name,
                mint=position.mint,
                error=str(exc),
                exc_info=True,
            )
            self._bus.publish(StrategyFailed(strategy=strategy.name, error=str(exc)))
            return None
        if signal is not None and signal.strategy is None:
            signal.strategy = strategy.name
        return signal

    def run_cleanup(self) -> None:
        """Prune strategy state, old closed positions and stale cached events."""
        for strategy in self._strategies.values():
            try:
                strategy.cleanup()
            except Exception:
                logger.error("strategy_cleanup_failed", strategy=strategy.name, exc_info=True)
        self._positions.cleanup_closed_positions(self._retention_days)
        if self._event_cache is not None:
            self._event_cache.prune()

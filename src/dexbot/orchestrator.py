"""Main bot orchestrator -- owns the ingress queue, strategies and lifecycle.

Feed messages are pushed into a bounded queue and consumed by one task.
Each message is processed under the execution lock:

  1. NORMALIZE: wire text -> typed event (or FeedError notification)
  2. PRICE: record the implied price and revalue the mint's position
  3. ANALYZE: every enabled strategy, each isolated from the others' failures
  4. EXECUTE: the combined signal batch through the coordinator

The exit checker takes the same lock, so event batches and exit sweeps
never interleave. When messages arrive faster than batches complete, the
queue keeps the newest ``queue_size`` messages and drops the oldest.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any

from dexbot.coordinator import SignalCoordinator
from dexbot.events.models import FeedError, NormalizedEvent, event_mint
from dexbot.events.normalizer import normalize_message
from dexbot.exit_checker import ExitChecker
from dexbot.logging import get_logger, trade_context
from dexbot.market_data.price_cache import price_from_event
from dexbot.models import TradeSignal
from dexbot.notifications import FeedErrorReceived, NotificationBus, StrategyFailed
from dexbot.position.manager import PositionManager
from dexbot.strategy.base import BaseStrategy, StrategyContext

if TYPE_CHECKING:
    from dexbot.execution.dex_params import TradeEventCache
    from dexbot.pnl.stats import TradeStatsTracker
    from dexbot.risk.emergency import EmergencyController
    from dexbot.risk.manager import RiskManager

logger = get_logger(__name__)

DEFAULT_QUEUE_SIZE = 1000


class Orchestrator:
    """Event pipeline and lifecycle owner.

    Args:
        strategies: Strategies by name.
        context: Shared strategy context (latency is set per event).
        position_manager: Position store; receives price ticks.
        coordinator: Signal execution coordinator.
        bus: Notification bus.
        risk_manager: Risk gate (status reporting).
        stats: Trade statistics (status reporting).
        execution_lock: Lock serializing event batches and exit sweeps.
        exit_checker: Periodic exit sweep, started and stopped with the bot.
        event_cache: Latest tradeable event per mint for later sells.
        queue_size: Ingress bound; oldest messages are dropped beyond it.
        clock_us: Local receive clock in Unix microseconds.
    """

    def __init__(
        self,
        strategies: Mapping[str, BaseStrategy],
        context: StrategyContext,
        position_manager: PositionManager,
        coordinator: SignalCoordinator,
        bus: NotificationBus,
        risk_manager: RiskManager,
        stats: TradeStatsTracker,
        execution_lock: asyncio.Lock | None = None,
        exit_checker: ExitChecker | None = None,
        event_cache: TradeEventCache | None = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        clock_us: Callable[[], int] | None = None,
    ) -> None:
        self._strategies = strategies
        self._context = context
        self._position_manager = position_manager
        self._coordinator = coordinator
        self._bus = bus
        self._risk_manager = risk_manager
        self._stats = stats
        self._lock = execution_lock or asyncio.Lock()
        self._exit_checker = exit_checker
        self._event_cache = event_cache
        self._queue: deque[str | bytes] = deque(maxlen=queue_size)
        self._queue_size = queue_size
        self._clock_us = clock_us
        self._wakeup = asyncio.Event()
        self._stopped = asyncio.Event()
        self._consumer: asyncio.Task | None = None  # type: ignore[type-arg]
        self._feed_stop: Callable[[], Awaitable[None]] | None = None
        self._emergency_controller: EmergencyController | None = None
        self._accepting = False
        self._running = False
        self._started_at: float | None = None
        self._processed = 0
        self._dropped = 0
        self._feed_errors = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Initialize strategies and start the consumer and exit sweep."""
        if self._running:
            logger.warning("orchestrator_already_running")
            return
        logger.info("orchestrator_starting", strategies=list(self._strategies))

        for strategy in self._strategies.values():
            await strategy.initialize()

        self._running = True
        self._accepting = True
        self._started_at = time.time()
        self._stopped.clear()
        self._consumer = asyncio.create_task(self._consume_loop())
        if self._exit_checker is not None:
            await self._exit_checker.start()
        logger.info("orchestrator_started", queue_size=self._queue_size)

    async def stop(self) -> None:
        """Stop in order: ingress, in-flight batch, periodic timer, strategies."""
        if not self._running:
            return
        logger.info("orchestrator_stopping")

        # 1. Stop accepting feed messages
        self._accepting = False
        if self._feed_stop is not None:
            try:
                await self._feed_stop()
            except Exception:
                logger.error("feed_stop_failed", exc_info=True)

        # 2. Let any in-flight batch finish
        async with self._lock:
            self._running = False
            if self._consumer is not None:
                self._consumer.cancel()
                try:
                    await self._consumer
                except asyncio.CancelledError:
                    pass
                self._consumer = None

            # 3. Cancel the periodic timer
            if self._exit_checker is not None:
                await self._exit_checker.stop()

        discarded = len(self._queue)
        self._queue.clear()

        # 4. Tear down strategies
        for name, strategy in self._strategies.items():
            try:
                await strategy.destroy()
            except Exception:
                logger.error("strategy_destroy_failed", strategy=name, exc_info=True)

        self._stopped.set()
        logger.info(
            "orchestrator_stopped",
            processed=self._processed,
            dropped=self._dropped,
            discarded=discarded,
        )

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    def set_feed_stop(self, stop: Callable[[], Awaitable[None]]) -> None:
        """Register the feed's stop coroutine (called first on shutdown)."""
        self._feed_stop = stop

    def set_emergency_controller(self, controller: EmergencyController) -> None:
        """Set the emergency controller (resolves circular dependency)."""
        self._emergency_controller = controller

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def execution_lock(self) -> asyncio.Lock:
        return self._lock

    # ------------------------------------------------------------------
    # Ingress
    # ------------------------------------------------------------------

    def submit(self, raw: str | bytes) -> bool:
        """Queue one raw feed message. Returns False if the bot is not accepting."""
        if not self._accepting:
            return False
        if len(self._queue) >= self._queue_size:
            self._dropped += 1
            if self._dropped == 1 or self._dropped % 100 == 0:
                logger.warning(
                    "ingress_queue_overflow",
                    queue_size=self._queue_size,
                    dropped_total=self._dropped,
                )
        self._queue.append(raw)
        self._wakeup.set()
        return True

    async def _consume_loop(self) -> None:
        while self._running:
            if not self._queue:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            raw = self._queue.popleft()
            try:
                async with self._lock:
                    await self.process_message(raw)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("event_processing_error", exc_info=True)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_message(self, raw: str | bytes) -> list[TradeSignal]:
        """Normalize and handle one raw message. Callers must hold the lock."""
        if self._clock_us is not None:
            parsed = normalize_message(raw, clock_us=self._clock_us)
        else:
            parsed = normalize_message(raw)
        if isinstance(parsed, FeedError):
            self._feed_errors += 1
            self._bus.publish(FeedErrorReceived(error=parsed))
            return []
        return await self.handle_event(parsed)

    async def handle_event(self, normalized: NormalizedEvent) -> list[TradeSignal]:
        """Update prices, run strategies and execute the resulting batch.

        Returns:
            The signals produced for this event.
        """
        event = normalized.event
        self._processed += 1

        if self._event_cache is not None:
            self._event_cache.remember(event)

        mint = event_mint(event)
        with trade_context(variant=event.variant, mint=mint):
            price = price_from_event(event)
            if mint is not None and price is not None:
                self._position_manager.update_price(mint, price)

            self._context.set_latency(normalized.latency)

            signals: list[TradeSignal] = []
            for name, strategy in self._strategies.items():
                if not strategy.enabled:
                    continue
                try:
                    produced = strategy.analyze_event(event, normalized.latency)
                except Exception as exc:
                    logger.error(
                        "strategy_analyze_failed", strategy=name, error=str(exc), exc_info=True
                    )
                    self._bus.publish(StrategyFailed(strategy=name, error=str(exc)))
                    continue
                for signal in produced:
                    if signal.strategy is None:
                        signal.strategy = name
                signals.extend(produced)

            if signals:
                await self._coordinator.execute_batch(signals, event)
        return signals

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> dict[str, Any]:
        """Return current orchestrator status for the dashboard and logs."""
        stats = self._stats.snapshot()
        return {
            "running": self._running,
            "uptime_seconds": (
                round(time.time() - self._started_at, 1) if self._started_at else 0.0
            ),
            "queue_depth": len(self._queue),
            "queue_size": self._queue_size,
            "processed_events": self._processed,
            "dropped_events": self._dropped,
            "feed_errors": self._feed_errors,
            "open_positions": self._position_manager.position_count,
            "total_invested": str(self._position_manager.total_invested()),
            "total_pnl": str(stats.total_pnl),
            "daily_pnl": str(self._position_manager.daily_pnl()),
            "total_trades": stats.total_trades,
            "successful_trades": stats.successful_trades,
            "risk": self._risk_manager.get_status(),
            "emergency_triggered": (
                self._emergency_controller.triggered
                if self._emergency_controller is not None
                else False
            ),
            "strategies": sorted(self._strategies),
        }

    def get_strategy_status(self) -> dict[str, dict[str, Any]]:
        return {name: strategy.get_status() for name, strategy in self._strategies.items()}

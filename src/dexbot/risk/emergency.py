"""Emergency stop controller with sequential liquidation and retry logic.

Triggered by the user (dashboard action or SIGUSR1). Sets the emergency
flag so the risk gate rejects every new signal, sells every open position
through the coordinator (bypassing the gate) with linear-backoff retries,
then stops the bot.

Positions that remain open after all retries are logged at CRITICAL level
with mint and amount so they can be closed by hand.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from dexbot.logging import get_logger
from dexbot.models import SELL_ALL, SignalPriority, TradeSide, TradeSignal

if TYPE_CHECKING:
    from dexbot.coordinator import SignalCoordinator
    from dexbot.models import Position
    from dexbot.position.manager import PositionManager
    from dexbot.risk.manager import RiskManager

logger = get_logger(__name__)


class EmergencyController:
    """Emergency stop: liquidate all positions, then halt.

    Args:
        risk_manager: Holds the emergency flag.
        position_manager: Source of open positions.
        coordinator: Executes the liquidation sells.
        stop_callback: Async callable that stops the orchestrator.
        execution_lock: Lock serializing trade execution with the event path.
        max_retries: Attempts per position.
        retry_delay: Base delay in seconds; attempt ``n`` waits ``n * retry_delay``.
    """

    def __init__(
        self,
        risk_manager: RiskManager,
        position_manager: PositionManager,
        coordinator: SignalCoordinator,
        stop_callback: Callable[[], Awaitable[None]],
        execution_lock: asyncio.Lock | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self._risk = risk_manager
        self._positions = position_manager
        self._coordinator = coordinator
        self._stop_callback = stop_callback
        self._lock = execution_lock or asyncio.Lock()
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._triggered = False

    async def trigger(self, reason: str) -> tuple[list[str], list[str]]:
        """Trigger the emergency stop.

        If already triggered, logs a warning and returns early.

        Args:
            reason: Human-readable reason for the stop.

        Returns:
            Tuple of (sold_mints, failed_mints).
        """
        if self._triggered:
            logger.warning("emergency_stop_already_triggered")
            return [], []

        self._triggered = True
        self._risk.set_emergency_stop(True)
        logger.critical("emergency_stop_triggered", reason=reason)

        sold: list[str] = []
        failed: list[str] = []

        async with self._lock:
            for position in self._positions.get_open_positions():
                if await self._sell_with_retry(position):
                    sold.append(position.mint)
                else:
                    failed.append(position.mint)
                    logger.critical(
                        "emergency_sell_failed_all_retries",
                        mint=position.mint,
                        amount=str(position.amount),
                        strategy=position.strategy,
                    )

        await self._stop_callback()
        logger.info("emergency_stop_complete", sold=len(sold), failed=len(failed))
        return sold, failed

    async def _sell_with_retry(self, position: Position) -> bool:
        signal = TradeSignal(
            side=TradeSide.SELL,
            mint=position.mint,
            amount=SELL_ALL,
            reason="emergency stop",
            priority=SignalPriority.HIGH,
            strategy=position.strategy,
        )

        for attempt in range(1, self._max_retries + 1):
            result = await self._coordinator.execute_signal(signal, skip_risk=True)
            if result is not None and result.success:
                logger.info("emergency_position_sold", mint=position.mint, attempt=attempt)
                return True
            logger.warning(
                "emergency_sell_retry",
                mint=position.mint,
                attempt=attempt,
                max_retries=self._max_retries,
                error=result.error if result is not None else None,
            )
            if attempt < self._max_retries:
                await asyncio.sleep(self._retry_delay * attempt)
        return False

    @property
    def triggered(self) -> bool:
        return self._triggered

    def reset(self) -> None:
        """Clear the triggered flag and the risk gate's emergency stop."""
        self._triggered = False
        self._risk.set_emergency_stop(False)

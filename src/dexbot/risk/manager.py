"""Pre-trade risk gate.

Every signal passes through ``check_signal`` before execution. Checks run
against position manager state at call time; there is no reservation, so
callers must execute one signal at a time.

Checks, in order:
  - emergency stop flag is off
  - buys: active position count below the global cap
  - buys: total invested plus the signal amount within the investment cap
  - buys: the originating strategy is below its own position cap
  - daily PnL not below the negative daily-loss limit
  - buys: not inside the pause that follows a losing streak
"""

from __future__ import annotations

import time
from collections.abc import Callable
from decimal import Decimal
from typing import TYPE_CHECKING

from dexbot.config import RiskSettings, TradingSettings
from dexbot.logging import get_logger
from dexbot.models import TradeSide, TradeSignal

if TYPE_CHECKING:
    from dexbot.position.manager import PositionManager

logger = get_logger(__name__)


class RiskManager:
    """Signal-level risk gate plus losing-streak tracking.

    Args:
        trading: Global position and investment caps, initial emergency flag.
        risk: Daily loss limit and losing-streak pause settings.
        clock: Unix-seconds clock, injectable for tests.
    """

    def __init__(
        self,
        trading: TradingSettings,
        risk: RiskSettings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._trading = trading
        self._risk = risk
        self._clock = clock
        self._emergency_stop = trading.emergency_stop
        self._consecutive_losses = 0
        self._paused_until: float | None = None

    @property
    def emergency_stop(self) -> bool:
        return self._emergency_stop

    def set_emergency_stop(self, enabled: bool) -> None:
        if enabled != self._emergency_stop:
            logger.warning("emergency_stop_changed", enabled=enabled)
        self._emergency_stop = enabled

    @property
    def consecutive_losses(self) -> int:
        return self._consecutive_losses

    @property
    def paused_until(self) -> float | None:
        return self._paused_until

    def check_signal(
        self,
        signal: TradeSignal,
        positions: PositionManager,
        strategy_max_positions: int | None = None,
    ) -> tuple[bool, str]:
        """Decide whether a signal may be executed now.

        Args:
            signal: The signal to check.
            positions: Position manager to read current exposure from.
            strategy_max_positions: Position cap of the signal's strategy, if known.

        Returns:
            Tuple of (allowed, reason). If allowed is True, reason is "".
        """
        if self._emergency_stop:
            return False, "Emergency stop is active"

        if signal.side == TradeSide.BUY:
            if positions.position_count >= self._trading.max_total_positions:
                return False, f"At max positions: {self._trading.max_total_positions}"

            projected = positions.total_invested() + signal.amount
            if projected > self._trading.max_total_investment:
                return False, (
                    f"Exceeds max total investment: {projected} > "
                    f"{self._trading.max_total_investment}"
                )

            if strategy_max_positions is not None and signal.strategy is not None:
                owned = sum(
                    1 for p in positions.get_open_positions() if p.strategy == signal.strategy
                )
                if owned >= strategy_max_positions:
                    return False, (
                        f"Strategy {signal.strategy} at max positions: {strategy_max_positions}"
                    )

        daily_pnl = positions.daily_pnl()
        if daily_pnl < -self._risk.max_daily_loss:
            return False, f"Daily loss limit reached: {daily_pnl} < -{self._risk.max_daily_loss}"

        if signal.side == TradeSide.BUY and self._paused_until is not None:
            now = self._clock()
            if now < self._paused_until:
                return False, (
                    f"Paused after {self._risk.max_consecutive_losses} consecutive losses "
                    f"({self._paused_until - now:.0f}s remaining)"
                )
            self._paused_until = None

        return True, ""

    def record_close(self, pnl: Decimal) -> None:
        """Update the losing streak after a position closes."""
        if pnl < 0:
            self._consecutive_losses += 1
            if self._consecutive_losses >= self._risk.max_consecutive_losses:
                self._paused_until = self._clock() + self._risk.pause_after_loss
                logger.warning(
                    "trading_paused_after_losses",
                    consecutive_losses=self._consecutive_losses,
                    pause_seconds=self._risk.pause_after_loss,
                )
                self._consecutive_losses = 0
        else:
            self._consecutive_losses = 0

    def get_status(self) -> dict:
        return {
            "emergency_stop": self._emergency_stop,
            "consecutive_losses": self._consecutive_losses,
            "paused_until": self._paused_until,
            "max_total_positions": self._trading.max_total_positions,
            "max_total_investment": str(self._trading.max_total_investment),
            "max_daily_loss": str(self._risk.max_daily_loss),
        }

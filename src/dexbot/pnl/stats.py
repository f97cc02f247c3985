"""Trade statistics across the bot's lifetime.

Execution counters and best/worst closes are accumulated here; PnL, win
rate, hold time and open-position count are read from the position manager
when a snapshot is taken.
"""

import time
from collections.abc import Callable
from decimal import Decimal
from typing import TYPE_CHECKING

from dexbot.models import TradeResult, TradingStats

if TYPE_CHECKING:
    from dexbot.position.manager import PositionManager


class TradeStatsTracker:
    """Accumulates execution outcomes into TradingStats snapshots.

    Args:
        positions: Source of PnL and hold-time aggregates.
        clock: Unix-seconds clock, injectable for tests.
    """

    def __init__(
        self,
        positions: "PositionManager",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._positions = positions
        self._clock = clock
        self._total_trades = 0
        self._successful_trades = 0
        self._max_win = Decimal("0")
        self._max_loss = Decimal("0")

    def record_execution(self, result: TradeResult) -> None:
        """Count one execution attempt."""
        self._total_trades += 1
        if result.success:
            self._successful_trades += 1

    def record_close(self, pnl: Decimal) -> None:
        """Track the largest winning and losing close (losses as negative values)."""
        if pnl > self._max_win:
            self._max_win = pnl
        if pnl < self._max_loss:
            self._max_loss = pnl

    def snapshot(self) -> TradingStats:
        return TradingStats(
            total_trades=self._total_trades,
            successful_trades=self._successful_trades,
            total_pnl=self._positions.total_pnl(),
            win_rate=self._positions.win_rate(),
            avg_hold_time=self._positions.average_hold_time(),
            max_win=self._max_win,
            max_loss=self._max_loss,
            current_positions=self._positions.position_count,
            last_update=self._clock(),
        )

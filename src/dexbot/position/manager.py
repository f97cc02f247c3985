"""Authoritative store of open and closed positions.

Positions are keyed by mint: at most one active position per mint. The
manager overwrites on open, so callers (the coordinator, behind the risk
gate) must check uniqueness and limits first. Closed positions move to a
closed log that is only ever pruned by age.

PnL conventions:
- ``current_value`` = amount x latest price
- ``pnl_ratio`` = (price - entry_price) / entry_price
- aggregate PnL = current_value - invested_sol, summed over positions
"""

import dataclasses
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from dexbot.exceptions import PositionNotFoundError
from dexbot.logging import get_logger
from dexbot.market_data.price_cache import PriceCache
from dexbot.models import Position, PositionStatus, TradeResult
from dexbot.notifications import NotificationBus, PositionClosed, PositionOpened

logger = get_logger(__name__)

_SECONDS_PER_DAY = 24 * 60 * 60
_UPDATABLE_FIELDS = frozenset(
    {"amount", "current_value", "pnl_ratio", "status", "metadata"}
)


def _local_midnight(now: float) -> float:
    return datetime.fromtimestamp(now).replace(
        hour=0, minute=0, second=0, microsecond=0
    ).timestamp()


class PositionManager:
    """Tracks position lifecycle and computes PnL aggregates.

    Args:
        price_cache: Shared price history; ``update_price`` writes to it.
        bus: Notification bus for open/close events.
        clock: Unix-seconds clock, injectable for tests.
    """

    def __init__(
        self,
        price_cache: PriceCache,
        bus: NotificationBus | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._price_cache = price_cache
        self._bus = bus or NotificationBus()
        self._clock = clock
        self._positions: dict[str, Position] = {}
        self._closed: list[Position] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open_position(self, position: Position) -> None:
        """Insert a position, replacing any existing record for the mint."""
        if position.mint in self._positions:
            logger.warning("position_overwritten", mint=position.mint)
        position.status = PositionStatus.ACTIVE
        self._positions[position.mint] = position
        self._bus.publish(PositionOpened(position=position))

    def close_position(self, mint: str, result: TradeResult) -> Position:
        """Close the active position for a mint and move it to the closed log.

        The close price is the latest cached price, falling back to the
        executed price of the sell and then to the entry price.

        Returns:
            The closed Position.

        Raises:
            PositionNotFoundError: If the mint has no active position.
        """
        position = self._positions.get(mint)
        if position is None:
            raise PositionNotFoundError(mint)

        price = self._price_cache.current_price(mint)
        if price is None:
            price = result.executed_price if result.executed_price is not None else position.entry_price

        pnl = (price - position.entry_price) * position.amount
        position.current_value = position.amount * price
        position.pnl_ratio = self._ratio(position, price)
        position.status = PositionStatus.CLOSED
        position.last_update = self._clock()
        if result.signature:
            position.metadata["exit_tx_signature"] = result.signature

        del self._positions[mint]
        self._closed.append(position)
        self._bus.publish(PositionClosed(position=position, pnl=pnl))
        return position

    def update_position(self, mint: str, **changes: Any) -> Position | None:
        """Apply field changes to an active position. Unknown mints are ignored."""
        position = self._positions.get(mint)
        if position is None:
            return None
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update position fields: {sorted(unknown)}")
        for name, value in changes.items():
            setattr(position, name, value)
        position.last_update = self._clock()
        return position

    def update_price(self, mint: str, price: Decimal) -> None:
        """Record a price tick and revalue the mint's active position, if any."""
        self._price_cache.record_tick(mint, price)
        position = self._positions.get(mint)
        if position is not None:
            self.update_position(
                mint,
                current_value=position.amount * price,
                pnl_ratio=self._ratio(position, price),
            )

    @staticmethod
    def _ratio(position: Position, price: Decimal) -> Decimal | None:
        if position.entry_price == 0:
            return None
        return (price - position.entry_price) / position.entry_price

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_position(self, mint: str) -> Position | None:
        return self._positions.get(mint)

    def has_position(self, mint: str) -> bool:
        return mint in self._positions

    def get_open_positions(self) -> list[Position]:
        return list(self._positions.values())

    def get_closed_positions(self) -> list[Position]:
        return list(self._closed)

    @property
    def position_count(self) -> int:
        return len(self._positions)

    def get_price(self, mint: str) -> Decimal | None:
        return self._price_cache.current_price(mint)

    def total_invested(self) -> Decimal:
        """SOL committed to active positions."""
        return sum((p.invested_sol for p in self._positions.values()), Decimal("0"))

    def total_value(self) -> Decimal:
        return sum(
            (p.current_value for p in self._positions.values() if p.current_value is not None),
            Decimal("0"),
        )

    def total_pnl(self) -> Decimal:
        """Unrealized PnL of active positions plus realized PnL of closed ones."""
        positions = [*self._positions.values(), *self._closed]
        return sum(
            (p.current_value - p.invested_sol for p in positions if p.current_value is not None),
            Decimal("0"),
        )

    def daily_pnl(self) -> Decimal:
        """PnL of positions opened (active) or closed since local midnight."""
        midnight = _local_midnight(self._clock())
        total = Decimal("0")
        for p in self._positions.values():
            if p.entry_time >= midnight and p.current_value is not None:
                total += p.current_value - p.invested_sol
        for p in self._closed:
            if p.last_update >= midnight and p.current_value is not None:
                total += p.current_value - p.invested_sol
        return total

    def win_rate(self) -> Decimal:
        """Fraction of closed positions whose final value exceeds the SOL invested."""
        if not self._closed:
            return Decimal("0")
        wins = sum(
            1
            for p in self._closed
            if p.current_value is not None and p.current_value > p.invested_sol
        )
        return Decimal(wins) / Decimal(len(self._closed))

    def average_hold_time(self) -> float:
        """Mean seconds between entry and close over closed positions."""
        if not self._closed:
            return 0.0
        return sum(p.last_update - p.entry_time for p in self._closed) / len(self._closed)

    def get_stats(self) -> dict[str, Any]:
        return {
            "active_positions": len(self._positions),
            "closed_positions": len(self._closed),
            "total_invested": self.total_invested(),
            "total_value": self.total_value(),
            "total_pnl": self.total_pnl(),
            "daily_pnl": self.daily_pnl(),
            "win_rate": self.win_rate(),
            "avg_hold_time": self.average_hold_time(),
        }

    # ------------------------------------------------------------------
    # Retention and persistence
    # ------------------------------------------------------------------

    def cleanup_closed_positions(self, older_than_days: float = 7) -> int:
        """Drop closed positions whose last update is outside the retention window.

        Returns:
            Number of records removed.
        """
        cutoff = self._clock() - older_than_days * _SECONDS_PER_DAY
        before = len(self._closed)
        self._closed = [p for p in self._closed if p.last_update > cutoff]
        removed = before - len(self._closed)
        if removed:
            logger.info("closed_positions_pruned", removed=removed, remaining=len(self._closed))
        return removed

    def export_data(self) -> dict[str, Any]:
        """Snapshot of active positions, closed log and latest prices."""
        return {
            "active": [dataclasses.replace(p) for p in self._positions.values()],
            "closed": [dataclasses.replace(p) for p in self._closed],
            "prices": {
                mint: price
                for mint in self._price_cache.mints()
                if (price := self._price_cache.current_price(mint)) is not None
            },
        }

    def import_data(self, data: dict[str, Any]) -> None:
        """Replace all state with a snapshot produced by ``export_data``."""
        self._positions = {p.mint: p for p in data.get("active", [])}
        self._closed = list(data.get("closed", []))
        self._price_cache.clear()
        for mint, price in data.get("prices", {}).items():
            self._price_cache.record_tick(mint, Decimal(str(price)))
        logger.info(
            "positions_imported",
            active=len(self._positions),
            closed=len(self._closed),
        )

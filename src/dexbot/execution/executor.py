"""Abstract trade executor interface.

The coordinator depends only on this contract. The concrete executor
(dry-run or HTTP) is chosen at startup from ``trading.dry_run``.
"""

from abc import ABC, abstractmethod

from dexbot.events.models import DexEvent
from dexbot.models import Position, TradeResult, TradeSignal


class TradeExecutor(ABC):
    """Abstract base class for trade executors."""

    @abstractmethod
    async def execute(
        self,
        signal: TradeSignal,
        source_event: DexEvent | None = None,
        position: Position | None = None,
    ) -> TradeResult:
        """Execute a trade signal.

        Args:
            signal: Buy or sell request.
            source_event: Event that triggered the signal, used to derive
                exchange-specific parameters.
            position: Live position for the mint, used to resolve sell-all.

        Returns:
            TradeResult. Domain failures (no position to sell, missing
            trade data, rejected by the service) come back as
            ``success=False`` rather than raising.

        Raises:
            ExecutorUnavailableError: If the service stays unreachable
                after retries.
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""

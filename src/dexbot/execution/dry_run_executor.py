"""Dry-run executor with simulated fills.

Nothing is sent to the execution service. Fills use the latest cached price
for the mint, so simulated positions are valued on the same price series
as live ones. All results have ``is_simulated=True``.
"""

import time
from uuid import uuid4

from dexbot.events.models import DexEvent
from dexbot.execution.executor import TradeExecutor
from dexbot.logging import get_logger
from dexbot.market_data.price_cache import PriceCache, tokens_for_sol
from dexbot.models import Position, TradeResult, TradeSide, TradeSignal

logger = get_logger(__name__)


class DryRunExecutor(TradeExecutor):
    """Simulated executor for dry-run mode.

    Args:
        price_cache: Shared price history used as the fill price.
    """

    def __init__(self, price_cache: PriceCache) -> None:
        self._price_cache = price_cache

    async def execute(
        self,
        signal: TradeSignal,
        source_event: DexEvent | None = None,
        position: Position | None = None,
    ) -> TradeResult:
        price = self._price_cache.current_price(signal.mint)
        if price is None or price <= 0:
            return TradeResult(
                success=False,
                error=f"no price available for {signal.mint}",
                is_simulated=True,
            )

        if signal.side == TradeSide.BUY:
            executed_amount = tokens_for_sol(signal.amount, price)
        elif signal.is_sell_all:
            if position is None:
                return TradeResult(
                    success=False,
                    error=f"Position not found: {signal.mint}",
                    is_simulated=True,
                )
            executed_amount = position.amount
        else:
            executed_amount = signal.amount

        signature = f"dry_run_{uuid4().hex[:16]}"
        logger.info(
            "dry_run_fill",
            side=signal.side.value,
            mint=signal.mint,
            amount=str(signal.amount),
            executed_amount=str(executed_amount),
            price=str(price),
            reason=signal.reason,
            signature=signature,
        )
        return TradeResult(
            success=True,
            signature=signature,
            executed_amount=executed_amount,
            executed_price=price,
            executed_at=time.time(),
            fee=None,
            is_simulated=True,
        )

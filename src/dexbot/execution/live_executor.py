"""Live executor sending trades to the HTTP execution service.

Resolves the sell-all sentinel from the live position, derives exchange
parameters from the source event (or the latest cached event for the mint),
and converts amounts to the wire units: ``amount_sol`` as a float and
``amount_tokens`` as an integer raw token count.
"""

import time
from decimal import ROUND_DOWN

from dexbot.events.models import DexEvent
from dexbot.exceptions import MissingTradeDataError, PositionNotFoundError
from dexbot.execution.client import TradingApiClient
from dexbot.execution.dex_params import TradeEventCache, build_dex_params
from dexbot.execution.executor import TradeExecutor
from dexbot.logging import get_logger
from dexbot.models import Position, TradeResult, TradeSide, TradeSignal

logger = get_logger(__name__)

DEFAULT_SLIPPAGE_BPS = 500


class HttpTradeExecutor(TradeExecutor):
    """Executes signals through TradingApiClient.

    Args:
        client: Execution service client.
        event_cache: Latest tradeable event per mint, consulted when a
            signal has no source event (e.g. exits from the periodic sweep).
        default_slippage_bps: Slippage used when a signal carries none.
    """

    def __init__(
        self,
        client: TradingApiClient,
        event_cache: TradeEventCache | None = None,
        default_slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
    ) -> None:
        self._client = client
        self._event_cache = event_cache if event_cache is not None else TradeEventCache()
        self._default_slippage_bps = default_slippage_bps

    def _resolve_event(self, signal: TradeSignal, source_event: DexEvent | None) -> DexEvent:
        if source_event is not None:
            return source_event
        cached = self._event_cache.get(signal.mint)
        if cached is not None:
            return cached
        attached = signal.params.get("source_event")
        if attached is not None:
            return attached
        raise MissingTradeDataError(f"no source event available for {signal.mint}")

    async def execute(
        self,
        signal: TradeSignal,
        source_event: DexEvent | None = None,
        position: Position | None = None,
    ) -> TradeResult:
        slippage = signal.slippage_bps if signal.slippage_bps is not None else self._default_slippage_bps

        try:
            event = self._resolve_event(signal, source_event)
            params = build_dex_params(event, signal.mint).to_payload()

            if signal.side == TradeSide.BUY:
                response = await self._client.buy(
                    params, signal.mint, float(signal.amount), slippage
                )
                executed_amount = None
            else:
                if signal.is_sell_all:
                    if position is None:
                        raise PositionNotFoundError(signal.mint)
                    tokens = position.amount
                else:
                    tokens = signal.amount
                raw_tokens = tokens.to_integral_value(rounding=ROUND_DOWN)
                response = await self._client.sell(params, signal.mint, int(raw_tokens), slippage)
                executed_amount = raw_tokens
        except MissingTradeDataError as exc:
            logger.warning("trade_data_missing", mint=signal.mint, side=signal.side.value, error=str(exc))
            return TradeResult(success=False, error=str(exc), executed_at=time.time())
        except PositionNotFoundError as exc:
            logger.warning("sell_without_position", mint=signal.mint)
            return TradeResult(success=False, error=str(exc), executed_at=time.time())

        if not response.success:
            logger.warning(
                "trade_rejected_by_service",
                mint=signal.mint,
                side=signal.side.value,
                message=response.message,
            )
        return TradeResult(
            success=response.success,
            signature=response.signature,
            error=None if response.success else response.message,
            executed_amount=executed_amount if response.success else None,
            executed_at=time.time(),
        )

    async def close(self) -> None:
        await self._client.close()

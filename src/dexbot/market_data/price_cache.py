"""Per-mint rolling price history derived from trade events.

Written only by the event-processing path and read by strategies and the
position manager. Everything runs on the single event loop task that owns
the execution lock, so the cache is not locked.
"""

from collections import defaultdict, deque
from decimal import Decimal

from dexbot.events.models import LAMPORTS_PER_SOL, BondingCurveTrade, DexEvent, SwapTrade

MAX_HISTORY = 1000


def price_from_event(event: DexEvent) -> Decimal | None:
    """Return the price implied by a trade event, in SOL per raw token unit.

    The SOL leg arrives in lamports and the token leg in raw units. PumpSwap
    buys spend SOL for tokens (amount_in / amount_out), sells spend tokens
    for SOL (amount_out / amount_in). Bonding-curve trades report both legs
    directly. Returns None for non-trade variants or zero denominators.

    A position's raw token amount times this price is its value in SOL.
    """
    if isinstance(event, SwapTrade):
        lamports, tokens = (
            (event.amount_in, event.amount_out)
            if event.is_buy
            else (event.amount_out, event.amount_in)
        )
    elif isinstance(event, BondingCurveTrade):
        lamports, tokens = event.amount_sol, event.amount_token
    else:
        return None
    if tokens == 0:
        return None
    return lamports / LAMPORTS_PER_SOL / tokens


def tokens_for_sol(sol: Decimal, price: Decimal) -> Decimal:
    """Raw token units bought by ``sol`` at ``price``, rounded to a whole unit."""
    return (sol / price).quantize(Decimal("1"))


class PriceCache:
    """Bounded per-mint price series (oldest ticks dropped first)."""

    def __init__(self, max_history: int = MAX_HISTORY) -> None:
        self._max_history = max_history
        self._history: defaultdict[str, deque[Decimal]] = defaultdict(
            lambda: deque(maxlen=self._max_history)
        )

    def record_tick(self, mint: str, price: Decimal) -> None:
        """Append a price observation for a mint."""
        self._history[mint].append(price)

    def current_price(self, mint: str) -> Decimal | None:
        """Return the latest price, or None if the mint has no history."""
        series = self._history.get(mint)
        if not series:
            return None
        return series[-1]

    def price_change(self, mint: str, periods: int = 1) -> Decimal | None:
        """Return the relative change between the latest tick and ``periods`` ticks back.

        Returns None when there is not enough history or the old price is zero.
        """
        series = self._history.get(mint)
        if series is None or periods < 1 or len(series) <= periods:
            return None
        old = series[-1 - periods]
        if old == 0:
            return None
        return (series[-1] - old) / old

    def history(self, mint: str, length: int | None = None) -> list[Decimal]:
        """Return up to ``length`` most recent prices, oldest first."""
        series = self._history.get(mint)
        if not series:
            return []
        prices = list(series)
        if length is not None:
            prices = prices[-length:] if length > 0 else []
        return prices

    def mints(self) -> list[str]:
        return list(self._history)

    def clear(self, mint: str | None = None) -> None:
        """Drop history for one mint, or for all mints."""
        if mint is None:
            self._history.clear()
        else:
            self._history.pop(mint, None)

    def export(self) -> dict[str, str]:
        """Latest price per mint as strings, for persistence snapshots."""
        return {mint: str(series[-1]) for mint, series in self._history.items() if series}

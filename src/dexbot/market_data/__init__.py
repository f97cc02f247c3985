"""Market data layer -- per-mint price history fed by trade events."""

from dexbot.market_data.price_cache import PriceCache, price_from_event, tokens_for_sol

__all__ = ["PriceCache", "price_from_event", "tokens_for_sol"]

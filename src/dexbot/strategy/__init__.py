"""Strategy engine -- strategy interface, shared exit policy, and registry."""

from dexbot.strategy.base import BaseStrategy, StrategyConfig, StrategyContext
from dexbot.strategy.consecutive_buy import (
    BuyEvent,
    ConsecutiveBuyConfig,
    ConsecutiveBuyStrategy,
)
from dexbot.strategy.registry import create_strategy, list_strategy_types, register_strategy

__all__ = [
    "BaseStrategy",
    "BuyEvent",
    "ConsecutiveBuyConfig",
    "ConsecutiveBuyStrategy",
    "StrategyConfig",
    "StrategyContext",
    "create_strategy",
    "list_strategy_types",
    "register_strategy",
]

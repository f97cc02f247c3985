"""Event layer -- typed DEX event models and wire message normalization."""

from dexbot.events.models import (
    BondingCurveTrade,
    DexEvent,
    EventMetadata,
    FeedError,
    LatencyInfo,
    NormalizedEvent,
    PoolSwap,
    SwapTrade,
    TokenCreated,
    event_mint,
)
from dexbot.events.normalizer import decode_binary_fields, normalize_message

__all__ = [
    "BondingCurveTrade",
    "DexEvent",
    "EventMetadata",
    "FeedError",
    "LatencyInfo",
    "NormalizedEvent",
    "PoolSwap",
    "SwapTrade",
    "TokenCreated",
    "decode_binary_fields",
    "event_mint",
    "normalize_message",
]

"""JSON conversion for dashboard payloads.

Decimals become strings, enums their values, dataclasses dicts. Trade
signal params are omitted (they can hold whole source events).
"""

import dataclasses
from decimal import Decimal
from enum import Enum
from typing import Any

from dexbot.models import TradeSignal
from dexbot.notifications import Notification


def to_jsonable(obj: Any) -> Any:
    """Recursively convert a value into JSON-serializable primitives."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, TradeSignal):
        return {
            "side": obj.side.value,
            "mint": obj.mint,
            "amount": str(obj.amount),
            "reason": obj.reason,
            "priority": obj.priority.value,
            "slippage_bps": obj.slippage_bps,
            "strategy": obj.strategy,
        }
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        data = {f.name: to_jsonable(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
        if hasattr(obj, "pnl") and "pnl" not in data:
            data["pnl"] = to_jsonable(obj.pnl)
        return data
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [to_jsonable(item) for item in obj]
    return obj


def notification_to_dict(notification: Notification) -> dict[str, Any]:
    return {"type": type(notification).__name__, "data": to_jsonable(notification)}

"""Shared data models for the DEX trading bot.

All monetary values, prices and ratios use Decimal. Timestamps are Unix
seconds as float.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

# Sell-signal amount meaning "the entire current position size"
SELL_ALL = Decimal("-1")


class TradeSide(str, Enum):
    """Trade signal direction."""

    BUY = "buy"
    SELL = "sell"


class SignalPriority(str, Enum):
    """Execution priority of a trade signal within one batch."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    SignalPriority.HIGH: 0,
    SignalPriority.MEDIUM: 1,
    SignalPriority.LOW: 2,
}


class PositionStatus(str, Enum):
    """Lifecycle state of a position."""

    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class TradeSignal:
    """Request from a strategy to buy or sell a token.

    For buys ``amount`` is SOL to spend. For sells it is a raw token count,
    or SELL_ALL to sell whatever the live position holds.
    """

    side: TradeSide
    mint: str
    amount: Decimal
    reason: str
    priority: SignalPriority = SignalPriority.MEDIUM
    slippage_bps: int | None = None
    strategy: str | None = None
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def is_sell_all(self) -> bool:
        return self.side == TradeSide.SELL and self.amount == SELL_ALL


@dataclass
class TradeResult:
    """Outcome of executing a trade signal."""

    success: bool
    signature: str | None = None
    error: str | None = None
    executed_amount: Decimal | None = None  # tokens received (buy) or sold (sell)
    executed_price: Decimal | None = None  # SOL per token
    executed_at: float = field(default_factory=time.time)
    fee: Decimal | None = None
    is_simulated: bool = False


@dataclass
class Position:
    """A token holding opened by a strategy buy."""

    mint: str
    amount: Decimal  # tokens held
    entry_price: Decimal  # SOL per token
    entry_time: float
    entry_tx_signature: str
    strategy: str
    invested_sol: Decimal
    status: PositionStatus = PositionStatus.ACTIVE
    current_value: Decimal | None = None
    pnl_ratio: Decimal | None = None
    last_update: float = field(default_factory=time.time)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def pnl(self) -> Decimal | None:
        """Unrealized (or, once closed, realized) PnL in SOL."""
        if self.current_value is None:
            return None
        return self.current_value - self.amount * self.entry_price


@dataclass
class TradingStats:
    """Aggregate trading statistics snapshot."""

    total_trades: int = 0
    successful_trades: int = 0
    total_pnl: Decimal = Decimal("0")
    win_rate: Decimal = Decimal("0")
    avg_hold_time: float = 0.0  # seconds
    max_win: Decimal = Decimal("0")
    max_loss: Decimal = Decimal("0")
    current_positions: int = 0
    last_update: float = field(default_factory=time.time)

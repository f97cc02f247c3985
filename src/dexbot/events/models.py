"""Typed DEX event models produced by the normalizer.

Every wire message names exactly one variant. Amounts are Decimal in the
units the upstream service reports them: SOL legs in lamports and token
legs in raw (undecimalized) units. Pool swaps carry raw input/output
quantities of whatever pair they trade.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Union

SPL_TOKEN_PROGRAM = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
WSOL_MINT = "So11111111111111111111111111111111111111112"

# pump.fun bonding curve state at token launch
DEFAULT_VIRTUAL_TOKEN_RESERVES = 1_073_000_000_000_000
DEFAULT_VIRTUAL_SOL_RESERVES = 30_000_000_000
DEFAULT_REAL_TOKEN_RESERVES = 793_100_000_000_000
DEFAULT_REAL_SOL_RESERVES = 0
DEFAULT_TOKEN_TOTAL_SUPPLY = 1_000_000_000_000_000

LAMPORTS_PER_SOL = 1_000_000_000


@dataclass(frozen=True)
class EventMetadata:
    """Upstream envelope data attached to an event."""

    upstream_recv_us: int | None = None  # wire name: grpc_recv_us
    slot: int | None = None
    signature: str | None = None


@dataclass(frozen=True)
class LatencyInfo:
    """Feed latency for a single event, never negative."""

    upstream_recv_us: int
    local_recv_us: int
    latency_us: int
    latency_ms: float


@dataclass(frozen=True)
class SwapTrade:
    """PumpSwap AMM trade."""

    mint: str
    pool: str
    trader: str
    amount_in: Decimal
    amount_out: Decimal
    is_buy: bool
    metadata: EventMetadata | None = None
    pool_base_token_account: str | None = None
    pool_quote_token_account: str | None = None
    pool_base_token_reserves: int | None = None
    pool_quote_token_reserves: int | None = None
    coin_creator_vault_ata: str | None = None
    coin_creator_vault_authority: str | None = None
    base_token_program: str = SPL_TOKEN_PROGRAM
    quote_token_program: str = SPL_TOKEN_PROGRAM

    variant = "PumpSwap"


@dataclass(frozen=True)
class BondingCurveTrade:
    """pump.fun bonding curve trade."""

    mint: str
    trader: str
    amount_sol: Decimal
    amount_token: Decimal
    is_buy: bool
    metadata: EventMetadata | None = None
    bonding_curve: str | None = None
    associated_bonding_curve: str | None = None
    creator: str | None = None
    creator_vault: str | None = None
    virtual_token_reserves: int = DEFAULT_VIRTUAL_TOKEN_RESERVES
    virtual_sol_reserves: int = DEFAULT_VIRTUAL_SOL_RESERVES
    real_token_reserves: int = DEFAULT_REAL_TOKEN_RESERVES
    real_sol_reserves: int = DEFAULT_REAL_SOL_RESERVES
    token_total_supply: int = DEFAULT_TOKEN_TOTAL_SUPPLY
    complete: bool = False

    variant = "PumpFunTrade"


@dataclass(frozen=True)
class TokenCreated:
    """pump.fun token launch."""

    mint: str
    creator: str
    name: str
    symbol: str
    uri: str
    metadata: EventMetadata | None = None
    bonding_curve: str | None = None
    associated_bonding_curve: str | None = None
    creator_vault: str | None = None

    variant = "PumpFunCreate"


@dataclass(frozen=True)
class PoolSwap:
    """Swap on another pool protocol (Raydium AMM v4, Raydium CLMM, Orca Whirlpool)."""

    variant: str
    pool: str
    trader: str
    amount_in: Decimal
    amount_out: Decimal
    token_in: str
    token_out: str
    metadata: EventMetadata | None = None


DexEvent = Union[SwapTrade, BondingCurveTrade, TokenCreated, PoolSwap]


@dataclass(frozen=True)
class FeedError:
    """A feed message that could not be turned into an event.

    Returned by the normalizer instead of raising so the stream keeps flowing.
    """

    reason: str
    raw: str = field(default="", repr=False)


@dataclass(frozen=True)
class NormalizedEvent:
    """A parsed event with its optional latency measurement."""

    event: DexEvent
    latency: LatencyInfo | None
    received_at: float  # local Unix seconds


def event_mint(event: DexEvent) -> str | None:
    """Return the token mint an event concerns, if the variant carries one."""
    if isinstance(event, PoolSwap):
        return None
    return event.mint

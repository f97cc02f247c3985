"""Exchange-specific trade parameters derived from a source event.

The execution service needs on-chain account addresses and curve/pool
reserves alongside every buy and sell. They are read from the event that
triggered the trade. Addresses that the event does not carry are never
synthesized: building fails with MissingTradeDataError and the trade is
reported as failed.
"""

import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any, Union

from dexbot.events.models import (
    DEFAULT_REAL_SOL_RESERVES,
    DEFAULT_REAL_TOKEN_RESERVES,
    DEFAULT_TOKEN_TOTAL_SUPPLY,
    DEFAULT_VIRTUAL_SOL_RESERVES,
    DEFAULT_VIRTUAL_TOKEN_RESERVES,
    WSOL_MINT,
    BondingCurveTrade,
    DexEvent,
    PoolSwap,
    SwapTrade,
    TokenCreated,
    event_mint,
)
from dexbot.exceptions import MissingTradeDataError, UnsupportedEventError


@dataclass(frozen=True)
class PumpSwapParams:
    pool: str
    base_mint: str
    quote_mint: str
    pool_base_token_account: str
    pool_quote_token_account: str
    pool_base_token_reserves: int
    pool_quote_token_reserves: int
    coin_creator_vault_ata: str
    coin_creator_vault_authority: str
    base_token_program: str
    quote_token_program: str

    dex_type = "PumpSwap"

    def to_payload(self) -> dict[str, Any]:
        return {"dex_type": self.dex_type, **asdict(self)}


@dataclass(frozen=True)
class PumpFunParams:
    bonding_curve_account: str
    virtual_token_reserves: int
    virtual_sol_reserves: int
    real_token_reserves: int
    real_sol_reserves: int
    token_total_supply: int
    complete: bool
    creator: str
    associated_bonding_curve: str
    creator_vault: str

    dex_type = "PumpFun"

    def to_payload(self) -> dict[str, Any]:
        return {"dex_type": self.dex_type, **asdict(self)}


DexParams = Union[PumpSwapParams, PumpFunParams]


def _required(variant: str, **fields: Any) -> None:
    missing = sorted(name for name, value in fields.items() if value is None)
    if missing:
        raise MissingTradeDataError(f"{variant} event missing {', '.join(missing)}")


def build_dex_params(event: DexEvent, mint: str) -> DexParams:
    """Build trade parameters for ``mint`` from a source event.

    Raises:
        MissingTradeDataError: If the event lacks a required account or reserve.
        UnsupportedEventError: If the event variant cannot be traded through
            the execution service.
    """
    if isinstance(event, SwapTrade):
        _required(
            "PumpSwap",
            pool_base_token_account=event.pool_base_token_account,
            pool_quote_token_account=event.pool_quote_token_account,
            pool_base_token_reserves=event.pool_base_token_reserves,
            pool_quote_token_reserves=event.pool_quote_token_reserves,
            coin_creator_vault_ata=event.coin_creator_vault_ata,
            coin_creator_vault_authority=event.coin_creator_vault_authority,
        )
        return PumpSwapParams(
            pool=event.pool,
            base_mint=mint,
            quote_mint=WSOL_MINT,
            pool_base_token_account=event.pool_base_token_account,
            pool_quote_token_account=event.pool_quote_token_account,
            pool_base_token_reserves=int(event.pool_base_token_reserves),
            pool_quote_token_reserves=int(event.pool_quote_token_reserves),
            coin_creator_vault_ata=event.coin_creator_vault_ata,
            coin_creator_vault_authority=event.coin_creator_vault_authority,
            base_token_program=event.base_token_program,
            quote_token_program=event.quote_token_program,
        )

    if isinstance(event, BondingCurveTrade):
        _required(
            "PumpFunTrade",
            bonding_curve=event.bonding_curve,
            associated_bonding_curve=event.associated_bonding_curve,
            creator=event.creator,
            creator_vault=event.creator_vault,
        )
        return PumpFunParams(
            bonding_curve_account=event.bonding_curve,
            virtual_token_reserves=int(event.virtual_token_reserves),
            virtual_sol_reserves=int(event.virtual_sol_reserves),
            real_token_reserves=int(event.real_token_reserves),
            real_sol_reserves=int(event.real_sol_reserves),
            token_total_supply=int(event.token_total_supply),
            complete=bool(event.complete),
            creator=event.creator,
            associated_bonding_curve=event.associated_bonding_curve,
            creator_vault=event.creator_vault,
        )

    if isinstance(event, TokenCreated):
        _required(
            "PumpFunCreate",
            bonding_curve=event.bonding_curve,
            associated_bonding_curve=event.associated_bonding_curve,
            creator_vault=event.creator_vault,
        )
        # Fresh curve: launch reserves
        return PumpFunParams(
            bonding_curve_account=event.bonding_curve,
            virtual_token_reserves=DEFAULT_VIRTUAL_TOKEN_RESERVES,
            virtual_sol_reserves=DEFAULT_VIRTUAL_SOL_RESERVES,
            real_token_reserves=DEFAULT_REAL_TOKEN_RESERVES,
            real_sol_reserves=DEFAULT_REAL_SOL_RESERVES,
            token_total_supply=DEFAULT_TOKEN_TOTAL_SUPPLY,
            complete=False,
            creator=event.creator,
            associated_bonding_curve=event.associated_bonding_curve,
            creator_vault=event.creator_vault,
        )

    if isinstance(event, PoolSwap):
        raise UnsupportedEventError(f"{event.variant} events cannot be traded")
    raise UnsupportedEventError(f"unsupported event type: {type(event).__name__}")


class TradeEventCache:
    """Latest tradeable event per mint, for sells that have no triggering event.

    Entries older than ``max_age`` seconds are dropped by ``prune``.
    """

    def __init__(
        self,
        max_age: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_age = max_age
        self._clock = clock
        self._events: dict[str, tuple[DexEvent, float]] = {}

    def remember(self, event: DexEvent) -> None:
        if isinstance(event, PoolSwap):
            return
        mint = event_mint(event)
        if mint:
            self._events[mint] = (event, self._clock())

    def get(self, mint: str) -> DexEvent | None:
        entry = self._events.get(mint)
        return entry[0] if entry is not None else None

    def prune(self) -> int:
        cutoff = self._clock() - self._max_age
        stale = [mint for mint, (_, seen) in self._events.items() if seen < cutoff]
        for mint in stale:
            del self._events[mint]
        return len(stale)

    def __len__(self) -> int:
        return len(self._events)

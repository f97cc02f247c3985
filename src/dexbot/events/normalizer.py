"""Wire message normalization into typed DEX events.

Feed messages are JSON objects with a single top-level key naming the
variant, e.g. ``{"PumpSwap": {...}}``. Public keys arrive as 32-element byte
arrays and signatures as 64-element byte arrays; both are re-encoded as
base58 strings before the variant is built.

Malformed input never raises: ``normalize_message`` returns a FeedError.
"""

import json
import math
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

import base58

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
)

PUBKEY_LENGTH = 32
SIGNATURE_LENGTH = 64

POOL_SWAP_VARIANTS = ("RaydiumAmmV4Swap", "RaydiumClmmSwap", "OrcaWhirlpoolSwap")


class _MissingField(Exception):
    pass


def _is_byte_array(value: Any, length: int) -> bool:
    return (
        isinstance(value, list)
        and len(value) == length
        and all(
            isinstance(item, int) and not isinstance(item, bool) and 0 <= item <= 255
            for item in value
        )
    )


def decode_binary_fields(value: Any, key: str | None = None) -> Any:
    """Recursively replace byte arrays with base58 strings.

    A 32-byte array anywhere becomes a public key. A 64-byte array becomes a
    signature only when the enclosing key ends in "signature"; elsewhere it
    is passed through unchanged.
    """
    if isinstance(value, dict):
        return {k: decode_binary_fields(v, k) for k, v in value.items()}
    if isinstance(value, list):
        if _is_byte_array(value, PUBKEY_LENGTH):
            return base58.b58encode(bytes(value)).decode("ascii")
        if (
            key is not None
            and key.lower().endswith("signature")
            and _is_byte_array(value, SIGNATURE_LENGTH)
        ):
            return base58.b58encode(bytes(value)).decode("ascii")
        return [decode_binary_fields(item, key) for item in value]
    return value


def compute_latency(upstream_recv_us: int, local_recv_us: int) -> LatencyInfo:
    """Build latency info, clamping clock skew to zero."""
    latency_us = max(0, local_recv_us - upstream_recv_us)
    return LatencyInfo(
        upstream_recv_us=upstream_recv_us,
        local_recv_us=local_recv_us,
        latency_us=latency_us,
        latency_ms=round(latency_us / 1000, 2),
    )


def _require(body: dict[str, Any], name: str) -> Any:
    if body.get(name) is None:
        raise _MissingField(name)
    return body[name]


def _decimal(body: dict[str, Any], name: str) -> Decimal:
    """Read a trade amount: a finite, non-negative number."""
    raw = _require(body, name)
    if isinstance(raw, bool):
        raise _MissingField(name)
    try:
        value = Decimal(str(raw))
    except InvalidOperation as exc:
        raise _MissingField(name) from exc
    if not value.is_finite() or value < 0:
        raise _MissingField(name)
    return value


def _whole_number(value: Any) -> int | None:
    """Return an integral metadata number, or None for anything else."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)


def _optional(body: dict[str, Any], meta: dict[str, Any], name: str) -> Any:
    """Look a trade-parameter field up on the variant, then in its metadata."""
    if body.get(name) is not None:
        return body[name]
    return meta.get(name)


def _parse_metadata(meta: dict[str, Any]) -> EventMetadata | None:
    if not meta:
        return None
    upstream = meta.get("grpc_recv_us")
    slot = meta.get("slot")
    signature = meta.get("signature")
    return EventMetadata(
        upstream_recv_us=_whole_number(upstream),
        slot=_whole_number(slot),
        signature=signature if isinstance(signature, str) else None,
    )


def _build_swap_trade(body: dict[str, Any], meta: dict[str, Any]) -> SwapTrade:
    extras: dict[str, Any] = {}
    for name in (
        "pool_base_token_account",
        "pool_quote_token_account",
        "pool_base_token_reserves",
        "pool_quote_token_reserves",
        "coin_creator_vault_ata",
        "coin_creator_vault_authority",
        "base_token_program",
        "quote_token_program",
    ):
        value = _optional(body, meta, name)
        if value is not None:
            extras[name] = value
    return SwapTrade(
        mint=_require(body, "mint"),
        pool=_require(body, "pool"),
        trader=_require(body, "trader"),
        amount_in=_decimal(body, "amount_in"),
        amount_out=_decimal(body, "amount_out"),
        is_buy=bool(_require(body, "is_buy")),
        metadata=_parse_metadata(meta),
        **extras,
    )


def _build_bonding_curve_trade(body: dict[str, Any], meta: dict[str, Any]) -> BondingCurveTrade:
    extras: dict[str, Any] = {}
    for name in (
        "bonding_curve",
        "associated_bonding_curve",
        "creator",
        "creator_vault",
        "virtual_token_reserves",
        "virtual_sol_reserves",
        "real_token_reserves",
        "real_sol_reserves",
        "token_total_supply",
        "complete",
    ):
        value = _optional(body, meta, name)
        if value is not None:
            extras[name] = value
    return BondingCurveTrade(
        mint=_require(body, "mint"),
        trader=_require(body, "trader"),
        amount_sol=_decimal(body, "amount_sol"),
        amount_token=_decimal(body, "amount_token"),
        is_buy=bool(_require(body, "is_buy")),
        metadata=_parse_metadata(meta),
        **extras,
    )


def _build_token_created(body: dict[str, Any], meta: dict[str, Any]) -> TokenCreated:
    return TokenCreated(
        mint=_require(body, "mint"),
        creator=_require(body, "creator"),
        name=_require(body, "name"),
        symbol=_require(body, "symbol"),
        uri=_require(body, "uri"),
        metadata=_parse_metadata(meta),
        bonding_curve=_optional(body, meta, "bonding_curve"),
        associated_bonding_curve=_optional(body, meta, "associated_bonding_curve"),
        creator_vault=_optional(body, meta, "creator_vault"),
    )


def _build_pool_swap(variant: str, body: dict[str, Any], meta: dict[str, Any]) -> PoolSwap:
    if variant == "OrcaWhirlpoolSwap":
        token_in, token_out = _require(body, "token_a"), _require(body, "token_b")
    else:
        token_in, token_out = _require(body, "token_in"), _require(body, "token_out")
    return PoolSwap(
        variant=variant,
        pool=_require(body, "pool"),
        trader=_require(body, "trader"),
        amount_in=_decimal(body, "amount_in"),
        amount_out=_decimal(body, "amount_out"),
        token_in=token_in,
        token_out=token_out,
        metadata=_parse_metadata(meta),
    )


def build_event(variant: str, body: dict[str, Any]) -> DexEvent:
    """Build a typed event from a decoded variant body.

    Raises:
        ValueError: On an unknown variant or a missing required field.
    """
    meta = body.get("metadata")
    if not isinstance(meta, dict):
        meta = {}
    try:
        if variant == SwapTrade.variant:
            return _build_swap_trade(body, meta)
        if variant == BondingCurveTrade.variant:
            return _build_bonding_curve_trade(body, meta)
        if variant == TokenCreated.variant:
            return _build_token_created(body, meta)
        if variant in POOL_SWAP_VARIANTS:
            return _build_pool_swap(variant, body, meta)
    except _MissingField as exc:
        raise ValueError(f"{variant}: missing or invalid field '{exc.args[0]}'") from exc
    raise ValueError(f"unknown event variant: {variant}")


def _now_us() -> int:
    return int(time.time() * 1_000_000)


def normalize_message(
    raw: str | bytes,
    clock_us: Callable[[], int] = _now_us,
) -> NormalizedEvent | FeedError:
    """Parse one wire message into a NormalizedEvent, or a FeedError on bad input.

    Args:
        raw: The text frame received from the feed.
        clock_us: Local receive clock in Unix microseconds.
    """
    local_recv_us = clock_us()
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw

    try:
        message = json.loads(text)
    except json.JSONDecodeError as exc:
        return FeedError(reason=f"malformed JSON: {exc.msg}", raw=text)

    if not isinstance(message, dict):
        return FeedError(reason="message is not a JSON object", raw=text)
    if len(message) != 1:
        return FeedError(
            reason=f"expected exactly one variant key, got {len(message)}", raw=text
        )

    variant, body = next(iter(message.items()))
    if not isinstance(body, dict):
        return FeedError(reason=f"{variant}: body is not an object", raw=text)

    try:
        event = build_event(variant, decode_binary_fields(body))
    except ValueError as exc:
        return FeedError(reason=str(exc), raw=text)

    latency = None
    if event.metadata is not None and event.metadata.upstream_recv_us:
        latency = compute_latency(event.metadata.upstream_recv_us, local_recv_us)

    return NormalizedEvent(
        event=event,
        latency=latency,
        received_at=local_recv_us / 1_000_000,
    )

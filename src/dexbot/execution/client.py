"""Async HTTP client for the trading-execution service.

Endpoints:
  GET  /health    -> {"status": ..., "service": ...}
  POST /api/buy   -> {...dex params, mint, amount_sol, slippage_bps}
  POST /api/sell  -> {...dex params, mint, amount_tokens, slippage_bps}
Trade responses are {"success": bool, "signature"?: str, "message": str}.

Timeouts, connection errors and 5xx responses are retried with linear
backoff; 4xx responses are returned to the caller as failed trades.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx

from dexbot.exceptions import ExecutorUnavailableError, HealthCheckFailedError
from dexbot.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TradeResponse:
    success: bool
    message: str = ""
    signature: str | None = None


@dataclass(frozen=True)
class HealthResponse:
    status: str
    service: str


class TradingApiClient:
    """Thin httpx wrapper around the execution service.

    Args:
        base_url: Service root, e.g. ``http://localhost:3000``.
        timeout: Per-request timeout in seconds.
        max_retries: Attempts per request for retryable failures.
        retry_delay: Base delay in seconds; attempt ``n`` waits ``n * retry_delay``.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "TradingApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def health(self) -> HealthResponse:
        """Check that the service is up.

        Raises:
            HealthCheckFailedError: If the service is unreachable or not ok.
        """
        try:
            resp = await self._client.get("/health")
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise HealthCheckFailedError(f"health check failed: {exc}") from exc

        health = HealthResponse(
            status=str(data.get("status", "")), service=str(data.get("service", ""))
        )
        if health.status.lower() not in ("ok", "healthy"):
            raise HealthCheckFailedError(
                f"service {health.service or self._base_url} reported status {health.status!r}"
            )
        return health

    async def buy(
        self, dex_params: dict[str, Any], mint: str, amount_sol: float, slippage_bps: int
    ) -> TradeResponse:
        payload = {
            **dex_params,
            "mint": mint,
            "amount_sol": amount_sol,
            "slippage_bps": slippage_bps,
        }
        return await self._post_trade("/api/buy", payload)

    async def sell(
        self, dex_params: dict[str, Any], mint: str, amount_tokens: int, slippage_bps: int
    ) -> TradeResponse:
        payload = {
            **dex_params,
            "mint": mint,
            "amount_tokens": amount_tokens,
            "slippage_bps": slippage_bps,
        }
        return await self._post_trade("/api/sell", payload)

    async def _post_trade(self, path: str, payload: dict[str, Any]) -> TradeResponse:
        last_error: Exception | None = None

        for attempt in range(1, self._max_retries + 1):
            try:
                resp = await self._client.post(path, json=payload)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_error = exc
            else:
                if resp.status_code < 500:
                    return self._parse_trade(resp)
                last_error = httpx.HTTPStatusError(
                    f"server error {resp.status_code}", request=resp.request, response=resp
                )

            logger.warning(
                "execution_request_retry",
                path=path,
                attempt=attempt,
                max_retries=self._max_retries,
                error=str(last_error),
            )
            if attempt < self._max_retries:
                await asyncio.sleep(self._retry_delay * attempt)

        raise ExecutorUnavailableError(
            f"{path} failed after {self._max_retries} attempts: {last_error}"
        ) from last_error

    @staticmethod
    def _parse_trade(resp: httpx.Response) -> TradeResponse:
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if resp.status_code >= 400:
            message = data.get("message") or data.get("error") or resp.text or f"HTTP {resp.status_code}"
            return TradeResponse(success=False, message=str(message))

        return TradeResponse(
            success=bool(data.get("success", False)),
            message=str(data.get("message") or data.get("error") or ""),
            signature=data.get("signature"),
        )

"""Tests for TradingApiClient against an in-memory httpx transport."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from dexbot.exceptions import ExecutorUnavailableError, HealthCheckFailedError
from dexbot.execution.client import TradingApiClient


def _client(handler, **kwargs) -> TradingApiClient:
    return TradingApiClient(
        "http://exec.test/",
        retry_delay=0.5,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestHealth:
    @pytest.mark.asyncio
    async def test_ok(self) -> None:
        client = _client(lambda request: httpx.Response(200, json={"status": "ok", "service": "exec"}))
        health = await client.health()
        assert health.service == "exec"
        await client.close()

    @pytest.mark.asyncio
    async def test_bad_status_raises(self) -> None:
        client = _client(lambda request: httpx.Response(200, json={"status": "degraded"}))
        with pytest.raises(HealthCheckFailedError):
            await client.health()
        await client.close()

    @pytest.mark.asyncio
    async def test_unreachable_raises(self) -> None:
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(HealthCheckFailedError):
                await client.health()


class TestTrades:
    @pytest.mark.asyncio
    async def test_buy_posts_merged_payload(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "signature": "5ig", "message": "ok"})

        async with _client(handler) as client:
            response = await client.buy({"dex_type": "PumpSwap", "pool": "P"}, "MintA", 0.01, 300)

        assert response.success
        assert response.signature == "5ig"
        assert seen["path"] == "/api/buy"
        assert seen["body"] == {
            "dex_type": "PumpSwap",
            "pool": "P",
            "mint": "MintA",
            "amount_sol": 0.01,
            "slippage_bps": 300,
        }

    @pytest.mark.asyncio
    async def test_sell_posts_token_amount(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "signature": "s"})

        async with _client(handler) as client:
            await client.sell({"dex_type": "PumpFun"}, "MintB", 12345, 500)

        assert seen["path"] == "/api/sell"
        assert seen["body"]["amount_tokens"] == 12345

    @pytest.mark.asyncio
    async def test_client_error_is_failed_trade_without_retry(self) -> None:
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"success": False, "message": "slippage exceeded"})

        async with _client(handler) as client:
            response = await client.buy({}, "MintA", 0.01, 500)

        assert not response.success
        assert response.message == "slippage exceeded"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_server_errors_retry_with_linear_backoff(self) -> None:
        responses = [httpx.Response(503), httpx.Response(502), httpx.Response(200, json={"success": True})]

        async with _client(lambda request: responses.pop(0)) as client:
            with patch("dexbot.execution.client.asyncio.sleep", new_callable=AsyncMock) as sleep:
                response = await client.buy({}, "MintA", 0.01, 500)

        assert response.success
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self) -> None:
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        async with _client(handler, max_retries=2) as client:
            with patch("dexbot.execution.client.asyncio.sleep", new_callable=AsyncMock):
                with pytest.raises(ExecutorUnavailableError):
                    await client.sell({}, "MintA", 1, 500)

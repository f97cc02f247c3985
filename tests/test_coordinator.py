"""Tests for SignalCoordinator -- priority ordering, gating, reconciliation.

Uses the real position manager, risk gate and stats tracker with the
dry-run executor, plus a stub executor for failure paths.
"""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from dexbot.coordinator import SignalCoordinator, sort_by_priority
from dexbot.events.models import BondingCurveTrade
from dexbot.execution.client import TradingApiClient
from dexbot.execution.dry_run_executor import DryRunExecutor
from dexbot.execution.executor import TradeExecutor
from dexbot.execution.live_executor import HttpTradeExecutor
from dexbot.market_data.price_cache import price_from_event
from dexbot.models import (
    SELL_ALL,
    PositionStatus,
    SignalPriority,
    TradeResult,
    TradeSide,
    TradeSignal,
)
from dexbot.notifications import (
    PositionClosed,
    PositionOpened,
    SignalExecuted,
    SignalFailed,
    SignalRejected,
    StatsUpdated,
)
from dexbot.pnl.stats import TradeStatsTracker
from dexbot.risk.manager import RiskManager


class _ExplodingExecutor(TradeExecutor):
    async def execute(self, signal, source_event=None, position=None):
        raise RuntimeError("executor crashed")


def _buy(mint: str = "MintA", amount: str = "0.01", **kwargs) -> TradeSignal:
    kwargs.setdefault("strategy", "ConsecutiveBuy")
    return TradeSignal(side=TradeSide.BUY, mint=mint, amount=Decimal(amount), reason="buy", **kwargs)


def _sell_all(mint: str = "MintA", **kwargs) -> TradeSignal:
    kwargs.setdefault("strategy", "ConsecutiveBuy")
    return TradeSignal(side=TradeSide.SELL, mint=mint, amount=SELL_ALL, reason="sell", **kwargs)


@pytest.fixture
def strategy() -> MagicMock:
    strat = MagicMock()
    strat.name = "ConsecutiveBuy"
    strat.config.max_positions = 5
    strat.on_trade_result = AsyncMock()
    return strat


@pytest.fixture
def risk(trading_settings, risk_settings, clock) -> RiskManager:
    return RiskManager(trading_settings, risk_settings, clock=clock)


@pytest.fixture
def stats(position_manager, clock) -> TradeStatsTracker:
    return TradeStatsTracker(position_manager, clock=clock)


@pytest.fixture
def coordinator(risk, position_manager, price_cache, stats, bus, strategy, clock) -> SignalCoordinator:
    return SignalCoordinator(
        risk_manager=risk,
        position_manager=position_manager,
        executor=DryRunExecutor(price_cache),
        stats=stats,
        bus=bus,
        strategies={"ConsecutiveBuy": strategy},
        clock=clock,
    )


def test_sort_by_priority_is_stable() -> None:
    low = _buy("L", priority=SignalPriority.LOW)
    med1 = _buy("M1")
    high = _sell_all("H", priority=SignalPriority.HIGH)
    med2 = _buy("M2")
    assert sort_by_priority([low, med1, high, med2]) == [high, med1, med2, low]


class TestExecuteSignal:
    @pytest.mark.asyncio
    async def test_buy_opens_position(
        self, coordinator, position_manager, price_cache, published, strategy, stats
    ) -> None:
        price_cache.record_tick("MintA", Decimal("0.001"))

        result = await coordinator.execute_signal(_buy())

        assert result.success
        position = position_manager.get_position("MintA")
        assert position.amount == Decimal("10")
        assert position.entry_price == Decimal("0.001")
        assert position.invested_sol == Decimal("0.01")
        assert position.strategy == "ConsecutiveBuy"
        assert position.entry_tx_signature == result.signature
        strategy.on_trade_result.assert_awaited_once()
        assert stats.snapshot().successful_trades == 1
        kinds = [type(n) for n in published]
        assert kinds == [SignalExecuted, PositionOpened, StatsUpdated]

    @pytest.mark.asyncio
    async def test_sell_closes_position_and_records_pnl(
        self, coordinator, position_manager, price_cache, published, make_position, risk, stats
    ) -> None:
        position_manager.open_position(make_position(mint="MintA", amount="10", entry_price="0.001"))
        price_cache.record_tick("MintA", Decimal("0.0005"))

        result = await coordinator.execute_signal(_sell_all())

        assert result.success
        assert not position_manager.has_position("MintA")
        closed = position_manager.get_closed_positions()[0]
        assert closed.status == PositionStatus.CLOSED
        assert risk.consecutive_losses == 1
        assert stats.snapshot().max_loss == Decimal("-0.005")
        assert any(isinstance(n, PositionClosed) for n in published)

    @pytest.mark.asyncio
    async def test_rejected_signal_has_no_side_effects(
        self, coordinator, risk, position_manager, price_cache, published, strategy, stats
    ) -> None:
        price_cache.record_tick("MintA", Decimal("0.001"))
        risk.set_emergency_stop(True)

        result = await coordinator.execute_signal(_buy())

        assert result is None
        assert position_manager.position_count == 0
        strategy.on_trade_result.assert_not_awaited()
        assert stats.snapshot().total_trades == 0
        assert len(published) == 1
        assert isinstance(published[0], SignalRejected)
        assert "Emergency stop" in published[0].reason

    @pytest.mark.asyncio
    async def test_skip_risk_bypasses_gate(
        self, coordinator, risk, position_manager, price_cache, make_position
    ) -> None:
        position_manager.open_position(make_position(mint="MintA"))
        price_cache.record_tick("MintA", Decimal("0.001"))
        risk.set_emergency_stop(True)

        result = await coordinator.execute_signal(_sell_all(), skip_risk=True)

        assert result.success
        assert not position_manager.has_position("MintA")

    @pytest.mark.asyncio
    async def test_failed_execution_still_notifies_strategy(
        self, coordinator, position_manager, strategy
    ) -> None:
        # No cached price: the dry-run fill fails
        result = await coordinator.execute_signal(_buy())

        assert not result.success
        assert position_manager.position_count == 0
        signal, passed = strategy.on_trade_result.await_args.args
        assert passed is result

    @pytest.mark.asyncio
    async def test_executor_exception_becomes_failed_result(
        self, risk, position_manager, stats, bus, published, strategy
    ) -> None:
        coordinator = SignalCoordinator(
            risk, position_manager, _ExplodingExecutor(), stats, bus, {"ConsecutiveBuy": strategy}
        )

        result = await coordinator.execute_signal(_buy())

        assert not result.success
        assert result.error == "executor crashed"
        assert isinstance(published[0], SignalFailed)
        strategy.on_trade_result.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_strategy_position_cap_enforced(
        self, coordinator, strategy, position_manager, price_cache, make_position, published
    ) -> None:
        strategy.config.max_positions = 1
        position_manager.open_position(make_position(mint="Other"))
        price_cache.record_tick("MintA", Decimal("0.001"))

        assert await coordinator.execute_signal(_buy()) is None
        assert isinstance(published[-1], SignalRejected)


class TestExecuteBatch:
    @pytest.mark.asyncio
    async def test_batch_runs_high_priority_first(
        self, coordinator, position_manager, price_cache, make_position, strategy
    ) -> None:
        position_manager.open_position(make_position(mint="Exit"))
        price_cache.record_tick("Exit", Decimal("0.002"))
        price_cache.record_tick("Enter", Decimal("0.001"))

        results = await coordinator.execute_batch(
            [_buy("Enter"), _sell_all("Exit", priority=SignalPriority.HIGH)]
        )

        assert all(r.success for r in results)
        order = [call.args[0].mint for call in strategy.on_trade_result.await_args_list]
        assert order == ["Exit", "Enter"]

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_stop_batch(
        self, coordinator, strategy, price_cache
    ) -> None:
        strategy.on_trade_result.side_effect = RuntimeError("callback bug")
        price_cache.record_tick("A", Decimal("0.001"))
        price_cache.record_tick("B", Decimal("0.001"))

        results = await coordinator.execute_batch([_buy("A"), _buy("B")])

        assert [r.success for r in results] == [True, True]


class TestLiveRoundTrip:
    @pytest.mark.asyncio
    async def test_sell_all_sends_every_raw_token_bought(
        self, risk, position_manager, stats, bus, strategy, clock
    ) -> None:
        requests: list[tuple[str, dict]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"success": True, "signature": "sig"})

        client = TradingApiClient("http://exec.test", transport=httpx.MockTransport(handler))
        coordinator = SignalCoordinator(
            risk_manager=risk,
            position_manager=position_manager,
            executor=HttpTradeExecutor(client),
            stats=stats,
            bus=bus,
            strategies={"ConsecutiveBuy": strategy},
            clock=clock,
        )
        # 1 SOL for 3.5e13 raw units on the curve
        event = BondingCurveTrade(
            mint="MintA",
            trader="Whale",
            amount_sol=Decimal("1000000000"),
            amount_token=Decimal("35000000000000"),
            is_buy=True,
            bonding_curve="Curve",
            associated_bonding_curve="AssocCurve",
            creator="Dev",
            creator_vault="DevVault",
        )
        position_manager.update_price("MintA", price_from_event(event))

        await coordinator.execute_batch([_buy("MintA")], event)
        position = position_manager.get_position("MintA")
        assert position.amount == Decimal("350000000000")
        assert position.current_value == pytest.approx(Decimal("0.01"))

        await coordinator.execute_batch([_sell_all("MintA")], event)
        await client.close()

        path, body = requests[-1]
        assert path == "/api/sell"
        assert body["amount_tokens"] == 350_000_000_000
        assert not position_manager.has_position("MintA")

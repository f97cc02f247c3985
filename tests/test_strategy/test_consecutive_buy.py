"""Tests for ConsecutiveBuyStrategy.

Covers the trailing window and consecutive-gap rule, the bought-mark that
keeps a pattern from firing twice, cooldowns, exits and cleanup.
"""

from decimal import Decimal

import pytest

from dexbot.events.models import LAMPORTS_PER_SOL, BondingCurveTrade, SwapTrade, TokenCreated
from dexbot.models import SELL_ALL, SignalPriority, TradeResult, TradeSide, TradeSignal
from dexbot.strategy.consecutive_buy import (
    ConsecutiveBuyConfig,
    ConsecutiveBuyStrategy,
    extract_buy_event,
)


def _buy(sol: str, mint: str = "MintA", trader: str = "Trader") -> SwapTrade:
    return SwapTrade(
        mint=mint,
        pool="Pool",
        trader=trader,
        amount_in=Decimal(sol) * LAMPORTS_PER_SOL,
        amount_out=Decimal(sol) * LAMPORTS_PER_SOL * 1000,
        is_buy=True,
    )


def _sell(mint: str = "MintA") -> SwapTrade:
    return SwapTrade(
        mint=mint,
        pool="Pool",
        trader="Trader",
        amount_in=Decimal("1000"),
        amount_out=Decimal("1"),
        is_buy=False,
    )


@pytest.fixture
def config() -> ConsecutiveBuyConfig:
    return ConsecutiveBuyConfig(
        consecutive_buy_count=3,
        total_amount_threshold=Decimal("5"),
        time_window_seconds=3.0,
        target_profit_ratio=Decimal("0.1"),
        buy_amount_sol=Decimal("0.01"),
    )


@pytest.fixture
def strategy(config, context, clock) -> ConsecutiveBuyStrategy:
    return ConsecutiveBuyStrategy(config, context, clock=clock)


def _feed(strategy, clock, schedule):
    """Feed (time, amount) buys; return the signals produced at each time."""
    fired = {}
    start = clock()
    for t, amount in schedule:
        clock.now = start + t
        signals = strategy.analyze_event(_buy(amount))
        if signals:
            fired[t] = signals
    return fired


class TestExtractBuyEvent:
    def test_swap_buy_converts_lamports_in_to_sol(self) -> None:
        buy = extract_buy_event(_buy("2.5"), 10.0)
        assert buy is not None
        assert buy.amount == Decimal("2.5")
        assert buy.timestamp == 10.0

    def test_bonding_curve_buy_uses_sol_leg_in_sol(self) -> None:
        event = BondingCurveTrade(
            mint="MintB",
            trader="T",
            amount_sol=Decimal("1800000000"),
            amount_token=Decimal("100"),
            is_buy=True,
        )
        assert extract_buy_event(event, 0.0).amount == Decimal("1.8")

    def test_sells_and_creates_are_ignored(self) -> None:
        created = TokenCreated(mint="M", creator="C", name="n", symbol="s", uri="u")
        assert extract_buy_event(_sell(), 0.0) is None
        assert extract_buy_event(created, 0.0) is None


class TestPatternDetection:
    def test_fires_exactly_once_at_third_buy(self, strategy, clock) -> None:
        fired = _feed(strategy, clock, [(0, "2"), (1, "2"), (2, "2"), (4, "2")])

        assert list(fired) == [2]
        (signal,) = fired[2]
        assert signal.side == TradeSide.BUY
        assert signal.mint == "MintA"
        assert signal.amount == Decimal("0.01")
        assert signal.priority == SignalPriority.MEDIUM
        assert signal.strategy == "ConsecutiveBuy"
        assert isinstance(signal.params["source_event"], SwapTrade)
        assert strategy.is_bought("MintA")

    def test_gap_larger_than_window_never_matches(self, strategy, clock) -> None:
        fired = _feed(strategy, clock, [(0, "3"), (1, "3"), (10, "3")])
        assert fired == {}

    def test_below_threshold_does_not_fire(self, strategy, clock) -> None:
        fired = _feed(strategy, clock, [(0, "1"), (1, "1"), (2, "2.9")])
        assert fired == {}

    def test_threshold_is_inclusive(self, strategy, clock) -> None:
        fired = _feed(strategy, clock, [(0, "1"), (1, "2"), (2, "2")])
        assert list(fired) == [2]

    def test_only_most_recent_buys_count(self, strategy, clock) -> None:
        # Four small buys in the window: the last three total 3, not 5.5
        fired = _feed(strategy, clock, [(0, "2.5"), (0.5, "1"), (1, "1"), (1.5, "1")])
        assert fired == {}

    def test_mints_are_tracked_independently(self, strategy, clock) -> None:
        strategy.analyze_event(_buy("2", mint="MintA"))
        strategy.analyze_event(_buy("2", mint="MintB"))
        strategy.analyze_event(_buy("2", mint="MintA"))
        assert strategy.analyze_event(_buy("2", mint="MintB")) == []
        assert len(strategy.analyze_event(_buy("2", mint="MintA"))) == 1

    def test_existing_position_blocks_signal(
        self, strategy, clock, position_manager, make_position
    ) -> None:
        position_manager.open_position(make_position(mint="MintA"))
        fired = _feed(strategy, clock, [(0, "2"), (1, "2"), (2, "2")])
        assert fired == {}

    def test_sell_events_do_not_enter_window(self, strategy) -> None:
        assert strategy.analyze_event(_sell()) == []
        assert strategy.get_status()["tracked_tokens"] == 0


class TestTradeResults:
    @pytest.mark.asyncio
    async def test_failed_buy_clears_mark(self, strategy, clock) -> None:
        (signal,) = _feed(strategy, clock, [(0, "2"), (1, "2"), (2, "2")])[2]

        await strategy.on_trade_result(signal, TradeResult(success=False, error="boom"))

        assert not strategy.is_bought("MintA")
        clock.advance(0.5)
        assert len(strategy.analyze_event(_buy("2"))) == 1

    @pytest.mark.asyncio
    async def test_successful_buy_keeps_mark(self, strategy, clock) -> None:
        (signal,) = _feed(strategy, clock, [(0, "2"), (1, "2"), (2, "2")])[2]
        await strategy.on_trade_result(signal, TradeResult(success=True, signature="sig"))
        assert strategy.is_bought("MintA")

    @pytest.mark.asyncio
    async def test_cooldown_after_successful_sell(self, config, context, clock) -> None:
        config.cooldown_seconds = 60.0
        strategy = ConsecutiveBuyStrategy(config, context, clock=clock)
        sell = TradeSignal(side=TradeSide.SELL, mint="MintA", amount=SELL_ALL, reason="exit")

        await strategy.on_trade_result(sell, TradeResult(success=True, signature="sig"))
        assert _feed(strategy, clock, [(0, "2"), (1, "2"), (2, "2")]) == {}

        clock.advance(60)
        fired = _feed(strategy, clock, [(0, "2"), (1, "2"), (2, "2")])
        assert list(fired) == [2]


class TestExitConditions:
    def test_target_profit_sells_all_and_clears_mark(
        self, strategy, clock, price_cache, make_position
    ) -> None:
        _feed(strategy, clock, [(0, "2"), (1, "2"), (2, "2")])
        position = make_position(mint="MintA", entry_price="0.001")
        price_cache.record_tick("MintA", Decimal("0.0011"))

        signal = strategy.check_exit_conditions(position)

        assert signal is not None
        assert signal.side == TradeSide.SELL
        assert signal.is_sell_all
        assert signal.priority == SignalPriority.HIGH
        assert not strategy.is_bought("MintA")

    def test_target_profit_ignores_min_hold(self, strategy, price_cache, make_position) -> None:
        # Entered just now, min_hold_time is 10s
        position = make_position(mint="MintA", entry_price="0.001")
        price_cache.record_tick("MintA", Decimal("0.002"))
        assert strategy.check_exit_conditions(position) is not None

    def test_stop_loss_respects_min_hold(self, strategy, clock, price_cache, make_position) -> None:
        position = make_position(mint="MintA", entry_price="0.001")
        price_cache.record_tick("MintA", Decimal("0.0009"))

        assert strategy.check_exit_conditions(position) is None
        clock.advance(10)
        signal = strategy.check_exit_conditions(position)
        assert signal is not None
        assert "stop loss" in signal.reason

    def test_no_price_no_exit(self, strategy, make_position) -> None:
        assert strategy.check_exit_conditions(make_position(mint="Unpriced")) is None


class TestCleanup:
    def test_cleanup_drops_expired_windows_and_stale_marks(self, strategy, clock) -> None:
        _feed(strategy, clock, [(0, "2"), (1, "2"), (2, "2")])
        assert strategy.is_bought("MintA")

        clock.advance(10)
        strategy.cleanup()

        status = strategy.get_status()
        assert status["tracked_tokens"] == 0
        assert status["bought_tokens"] == []

    def test_cleanup_keeps_mark_while_position_open(
        self, strategy, clock, position_manager, make_position
    ) -> None:
        _feed(strategy, clock, [(0, "2"), (1, "2"), (2, "2")])
        position_manager.open_position(make_position(mint="MintA"))

        clock.advance(10)
        strategy.cleanup()

        assert strategy.is_bought("MintA")

    @pytest.mark.asyncio
    async def test_destroy_clears_state(self, strategy, clock) -> None:
        _feed(strategy, clock, [(0, "2"), (1, "2"), (2, "2")])
        await strategy.destroy()
        assert strategy.get_status()["bought_tokens"] == []
        assert strategy.get_status()["windows"] == {}

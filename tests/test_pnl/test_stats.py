"""Tests for TradeStatsTracker."""

from decimal import Decimal

from dexbot.models import TradeResult
from dexbot.pnl.stats import TradeStatsTracker


def test_counts_attempts_and_successes(position_manager, clock) -> None:
    stats = TradeStatsTracker(position_manager, clock=clock)
    stats.record_execution(TradeResult(success=True))
    stats.record_execution(TradeResult(success=False, error="x"))

    snap = stats.snapshot()
    assert snap.total_trades == 2
    assert snap.successful_trades == 1
    assert snap.last_update == clock()


def test_tracks_best_and_worst_close(position_manager) -> None:
    stats = TradeStatsTracker(position_manager)
    for pnl in ("0.01", "-0.02", "0.05", "-0.01"):
        stats.record_close(Decimal(pnl))

    snap = stats.snapshot()
    assert snap.max_win == Decimal("0.05")
    assert snap.max_loss == Decimal("-0.02")


def test_snapshot_reads_position_aggregates(position_manager, make_position) -> None:
    stats = TradeStatsTracker(position_manager)
    position_manager.open_position(make_position(mint="A", amount="10", entry_price="0.001"))
    position_manager.update_price("A", Decimal("0.002"))

    snap = stats.snapshot()
    assert snap.current_positions == 1
    assert snap.total_pnl == Decimal("0.01")

"""Trade execution -- executor interface, dry-run and HTTP implementations."""

from dexbot.execution.client import TradingApiClient
from dexbot.execution.dex_params import (
    PumpFunParams,
    PumpSwapParams,
    TradeEventCache,
    build_dex_params,
)
from dexbot.execution.dry_run_executor import DryRunExecutor
from dexbot.execution.executor import TradeExecutor
from dexbot.execution.live_executor import HttpTradeExecutor

__all__ = [
    "DryRunExecutor",
    "HttpTradeExecutor",
    "PumpFunParams",
    "PumpSwapParams",
    "TradeEventCache",
    "TradeExecutor",
    "TradingApiClient",
    "build_dex_params",
]

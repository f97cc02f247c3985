"""Entry point for the DEX trading bot.

Loads and validates configuration, wires all components together, health-checks
the execution service, and runs the event pipeline until stopped. When the
dashboard is enabled, the bot and dashboard share one asyncio event loop
via uvicorn's programmatic API and FastAPI's lifespan context manager.

Handles SIGINT/SIGTERM for graceful shutdown and SIGUSR1 for emergency stop.

Component wiring order (in _build_components):
1. NotificationBus (log subscriber attached)
2. PriceCache (shared price history)
3. PositionManager (position lifecycle)
4. StrategyContext + strategies from the registry
5. Executor (DryRunExecutor or HttpTradeExecutor based on dry_run)
6. RiskManager (pre-trade gate)
7. TradeStatsTracker
8. SignalCoordinator
9. ExitChecker (periodic exit sweep)
10. Orchestrator (ingress queue and lifecycle)
11. FeedSubscriber (WebSocket transport)
12. EmergencyController (liquidate and stop)
"""

import argparse
import asyncio
import signal
import sys
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from dexbot.config import AppSettings, load_settings, validate_settings, write_example_config
from dexbot.coordinator import SignalCoordinator
from dexbot.exceptions import ConfigurationError, HealthCheckFailedError
from dexbot.execution.client import TradingApiClient
from dexbot.execution.dex_params import TradeEventCache
from dexbot.exit_checker import ExitChecker
from dexbot.feed.subscriber import FeedSubscriber, ReconnectPolicy
from dexbot.logging import get_logger, setup_logging
from dexbot.market_data.price_cache import PriceCache
from dexbot.notifications import NotificationBus, log_notifications
from dexbot.orchestrator import Orchestrator
from dexbot.pnl.stats import TradeStatsTracker
from dexbot.position.manager import PositionManager
from dexbot.risk.emergency import EmergencyController
from dexbot.risk.manager import RiskManager
from dexbot.strategy.base import StrategyContext
from dexbot.strategy.registry import create_strategy

_STATUS_LOG_INTERVAL = 30.0  # seconds


async def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all bot components from settings.

    Does NOT start anything or contact the execution service; that happens
    in the lifespan (dashboard mode) or run() (headless mode).

    Args:
        settings: Validated application settings.

    Returns:
        Dict mapping component names to instances.
    """
    logger = get_logger("dexbot.main")

    # 1. Notifications
    bus = NotificationBus()
    bus.subscribe(log_notifications)

    # 2-3. Shared price history and positions
    price_cache = PriceCache()
    position_manager = PositionManager(price_cache, bus)

    # 4. Strategies
    context = StrategyContext(price_cache, position_manager)
    strategy = create_strategy("consecutive_buy", settings.strategy.to_config(), context)
    strategies = {strategy.name: strategy}

    # 5. Executor based on mode
    event_cache = TradeEventCache()
    client = TradingApiClient(
        settings.http_url,
        timeout=settings.executor.request_timeout,
        max_retries=settings.executor.max_retries,
        retry_delay=settings.executor.retry_delay,
    )
    if settings.trading.dry_run:
        from dexbot.execution.dry_run_executor import DryRunExecutor

        executor = DryRunExecutor(price_cache)
        logger.warning("dry_run_mode", note="Trades are simulated and never sent")
    else:
        from dexbot.execution.live_executor import HttpTradeExecutor

        executor = HttpTradeExecutor(
            client,
            event_cache=event_cache,
            default_slippage_bps=settings.executor.default_slippage_bps,
        )

    # 6-8. Risk gate, statistics, coordinator
    risk_manager = RiskManager(settings.trading, settings.risk)
    stats = TradeStatsTracker(position_manager)
    coordinator = SignalCoordinator(
        risk_manager=risk_manager,
        position_manager=position_manager,
        executor=executor,
        stats=stats,
        bus=bus,
        strategies=strategies,
    )

    # 9-10. Exit sweep and orchestrator share one execution lock
    execution_lock = asyncio.Lock()
    exit_checker = ExitChecker(
        position_manager=position_manager,
        strategies=strategies,
        coordinator=coordinator,
        lock=execution_lock,
        bus=bus,
        interval=settings.feed.exit_check_interval,
        strategy_cleanup_interval=settings.feed.strategy_cleanup_interval,
        closed_retention_days=settings.feed.closed_retention_days,
        event_cache=event_cache,
    )
    orchestrator = Orchestrator(
        strategies=strategies,
        context=context,
        position_manager=position_manager,
        coordinator=coordinator,
        bus=bus,
        risk_manager=risk_manager,
        stats=stats,
        execution_lock=execution_lock,
        exit_checker=exit_checker,
        event_cache=event_cache,
        queue_size=settings.feed.queue_size,
    )

    # 11. Feed transport pushes raw frames into the orchestrator
    feed = FeedSubscriber(
        settings.ws_url,
        orchestrator.submit,
        ReconnectPolicy(
            base_delay=settings.feed.reconnect_base_delay,
            max_delay=settings.feed.reconnect_max_delay,
        ),
    )
    orchestrator.set_feed_stop(feed.stop)

    # 12. Emergency controller (needs orchestrator.stop as callback)
    emergency_controller = EmergencyController(
        risk_manager=risk_manager,
        position_manager=position_manager,
        coordinator=coordinator,
        stop_callback=orchestrator.stop,
        execution_lock=execution_lock,
        max_retries=settings.executor.max_retries,
        retry_delay=settings.executor.retry_delay,
    )
    orchestrator.set_emergency_controller(emergency_controller)

    return {
        "bus": bus,
        "price_cache": price_cache,
        "position_manager": position_manager,
        "strategies": strategies,
        "client": client,
        "executor": executor,
        "risk_manager": risk_manager,
        "stats": stats,
        "coordinator": coordinator,
        "orchestrator": orchestrator,
        "feed": feed,
        "emergency_controller": emergency_controller,
    }


async def _check_health(settings: AppSettings, client: TradingApiClient) -> bool:
    """Health-check the execution service. Failure aborts live mode only."""
    logger = get_logger("dexbot.main")
    try:
        health = await client.health()
    except HealthCheckFailedError as exc:
        if settings.trading.dry_run:
            logger.warning("execution_service_unavailable", error=str(exc), dry_run=True)
            return True
        logger.error("execution_service_unavailable", error=str(exc), url=settings.http_url)
        return False
    logger.info("execution_service_healthy", service=health.service, status=health.status)
    return True


def _setup_signal_handlers(
    orchestrator: Orchestrator, emergency_controller: EmergencyController
) -> None:
    """Register OS signal handlers for graceful and emergency shutdown.

    SIGINT/SIGTERM trigger a graceful stop (positions are kept).
    SIGUSR1 triggers an emergency stop (sell everything, then stop).

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("dexbot.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        asyncio.create_task(orchestrator.stop())

    def _emergency_handler() -> None:
        logger.critical("emergency_stop_signal_received")
        asyncio.create_task(emergency_controller.trigger("user_signal_SIGUSR1"))

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)
    loop.add_signal_handler(signal.SIGUSR1, _emergency_handler)


async def _status_log_loop(orchestrator: Orchestrator) -> None:
    """Log a status line periodically while the bot runs."""
    logger = get_logger("dexbot.main")
    while True:
        await asyncio.sleep(_STATUS_LOG_INTERVAL)
        status = orchestrator.get_status()
        logger.info(
            "bot_status",
            processed=status["processed_events"],
            dropped=status["dropped_events"],
            open_positions=status["open_positions"],
            total_pnl=status["total_pnl"],
            daily_pnl=status["daily_pnl"],
        )


async def _run_bot(components: dict[str, Any]) -> None:
    """Start the pipeline and block until the orchestrator stops."""
    orchestrator: Orchestrator = components["orchestrator"]
    await orchestrator.start()
    await components["feed"].start()
    status_task = asyncio.create_task(_status_log_loop(orchestrator))
    try:
        await orchestrator.wait_stopped()
    finally:
        status_task.cancel()
        try:
            await status_task
        except asyncio.CancelledError:
            pass


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage bot component lifecycle within the FastAPI application."""
    logger = get_logger("dexbot.main")
    components = app.state.components

    app.state.orchestrator = components["orchestrator"]
    app.state.position_manager = components["position_manager"]
    app.state.stats = components["stats"]
    app.state.emergency_controller = components["emergency_controller"]
    components["bus"].subscribe(app.state.hub.on_notification)

    _setup_signal_handlers(components["orchestrator"], components["emergency_controller"])

    bot_task = asyncio.create_task(_run_bot(components))
    logger.info("lifespan_started", dry_run=app.state.settings.trading.dry_run)

    yield

    await components["orchestrator"].stop()
    bot_task.cancel()
    try:
        await bot_task
    except asyncio.CancelledError:
        pass
    await components["executor"].close()
    await components["client"].close()
    logger.info("dexbot_stopped")


async def run(settings: AppSettings) -> int:
    """Run the bot with validated settings. Returns a process exit code."""
    logger = get_logger("dexbot.main")
    components = await _build_components(settings)

    if not await _check_health(settings, components["client"]):
        await components["client"].close()
        return 1

    if settings.dashboard.enabled:
        from dexbot.dashboard.app import create_dashboard_app

        app = create_dashboard_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info(
            "starting_with_dashboard",
            host=settings.dashboard.host,
            port=settings.dashboard.port,
            dry_run=settings.trading.dry_run,
        )
        config = uvicorn.Config(
            app,
            host=settings.dashboard.host,
            port=settings.dashboard.port,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        await server.serve()
        return 0

    _setup_signal_handlers(components["orchestrator"], components["emergency_controller"])
    logger.info(
        "starting_without_dashboard",
        dry_run=settings.trading.dry_run,
        ws_url=settings.ws_url,
        http_url=settings.http_url,
        max_total_positions=settings.trading.max_total_positions,
        max_total_investment=str(settings.trading.max_total_investment),
    )
    try:
        await _run_bot(components)
    finally:
        await components["executor"].close()
        await components["client"].close()
        logger.info("dexbot_stopped")
    return 0


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="dexbot", description="DEX swap-event trading bot")
    parser.add_argument("--config", help="Path to the JSON config file (default: BOT_CONFIG_PATH or ./bot-config.json)")
    parser.add_argument(
        "--generate-config",
        metavar="PATH",
        nargs="?",
        const="./bot-config.example.json",
        help="Write an example config file and exit",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Synchronous entry point."""
    args = _parse_args(argv)

    if args.generate_config:
        path = write_example_config(args.generate_config)
        print(f"Example config written to {path}")
        return

    try:
        settings = load_settings(args.config)
        violations = validate_settings(settings)
        if violations:
            raise ConfigurationError(violations)
    except ConfigurationError as exc:
        print("Configuration errors:", file=sys.stderr)
        for violation in exc.violations:
            print(f"  - {violation}", file=sys.stderr)
        sys.exit(1)

    setup_logging(settings.log_level)
    sys.exit(asyncio.run(run(settings)))


if __name__ == "__main__":
    main()

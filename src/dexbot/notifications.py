"""Typed notifications for observable state transitions.

Components publish explicitly through a NotificationBus; subscribers are
called synchronously in subscription order, so delivery order matches the
order in which transitions happened. A failing subscriber is logged and
does not stop delivery to the others.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Union

from dexbot.events.models import FeedError
from dexbot.logging import get_logger
from dexbot.models import Position, TradeResult, TradeSignal, TradingStats

logger = get_logger(__name__)


@dataclass(frozen=True)
class PositionOpened:
    position: Position


@dataclass(frozen=True)
class PositionClosed:
    position: Position
    pnl: Decimal


@dataclass(frozen=True)
class SignalRejected:
    signal: TradeSignal
    reason: str


@dataclass(frozen=True)
class SignalExecuted:
    signal: TradeSignal
    result: TradeResult


@dataclass(frozen=True)
class SignalFailed:
    signal: TradeSignal
    error: str


@dataclass(frozen=True)
class StrategyFailed:
    strategy: str
    error: str


@dataclass(frozen=True)
class FeedErrorReceived:
    error: FeedError


@dataclass(frozen=True)
class StatsUpdated:
    stats: TradingStats


Notification = Union[
    PositionOpened,
    PositionClosed,
    SignalRejected,
    SignalExecuted,
    SignalFailed,
    StrategyFailed,
    FeedErrorReceived,
    StatsUpdated,
]

Subscriber = Callable[[Notification], None]


class NotificationBus:
    """Synchronous fan-out of notifications to registered subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a subscriber. Returns a function that unsubscribes it."""
        self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return _unsubscribe

    def publish(self, notification: Notification) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(notification)
            except Exception:
                logger.exception(
                    "notification_subscriber_failed",
                    notification=type(notification).__name__,
                )


def log_notifications(notification: Notification) -> None:
    """Subscriber that renders each notification as a structured log event."""
    if isinstance(notification, PositionOpened):
        p = notification.position
        logger.info(
            "position_opened",
            mint=p.mint,
            strategy=p.strategy,
            amount=str(p.amount),
            entry_price=str(p.entry_price),
            invested_sol=str(p.invested_sol),
        )
    elif isinstance(notification, PositionClosed):
        p = notification.position
        logger.info(
            "position_closed",
            mint=p.mint,
            strategy=p.strategy,
            pnl_sol=str(notification.pnl),
            pnl_ratio=str(p.pnl_ratio) if p.pnl_ratio is not None else None,
            hold_seconds=round(p.last_update - p.entry_time, 1),
        )
    elif isinstance(notification, SignalRejected):
        logger.warning(
            "signal_rejected",
            side=notification.signal.side.value,
            mint=notification.signal.mint,
            reason=notification.reason,
        )
    elif isinstance(notification, SignalExecuted):
        logger.info(
            "signal_executed",
            side=notification.signal.side.value,
            mint=notification.signal.mint,
            success=notification.result.success,
            signature=notification.result.signature,
            error=notification.result.error,
        )
    elif isinstance(notification, SignalFailed):
        logger.error(
            "signal_failed",
            side=notification.signal.side.value,
            mint=notification.signal.mint,
            error=notification.error,
        )
    elif isinstance(notification, StrategyFailed):
        logger.error("strategy_failed", strategy=notification.strategy, error=notification.error)
    elif isinstance(notification, FeedErrorReceived):
        logger.warning("feed_message_rejected", reason=notification.error.reason)
    elif isinstance(notification, StatsUpdated):
        s = notification.stats
        logger.debug(
            "stats_updated",
            total_trades=s.total_trades,
            successful_trades=s.successful_trades,
            total_pnl=str(s.total_pnl),
            current_positions=s.current_positions,
        )

"""Event feed transport."""

from dexbot.feed.subscriber import FeedSubscriber, ReconnectPolicy

__all__ = ["FeedSubscriber", "ReconnectPolicy"]

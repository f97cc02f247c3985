"""Custom exceptions for the DEX trading bot.

All execution-layer and position-management exceptions live here
to avoid circular imports between modules.

Malformed feed messages are NOT exceptions: the normalizer returns a
FeedError value so the stream keeps flowing.
"""


class BotError(Exception):
    """Base exception for all bot errors."""


class ConfigurationError(BotError):
    """Raised at startup when the configuration has one or more violations."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__("Invalid configuration: " + "; ".join(self.violations))


class PositionNotFoundError(BotError):
    """Raised when closing or selling a mint with no active position."""

    def __init__(self, mint: str) -> None:
        self.mint = mint
        super().__init__(f"Position not found: {mint}")


class MissingTradeDataError(BotError):
    """Raised when the source event lacks data needed to build trade parameters."""


class UnsupportedEventError(MissingTradeDataError):
    """Raised when trade parameters cannot be built from this event variant."""


class ExecutorUnavailableError(BotError):
    """Raised when the execution service keeps failing after all retries."""


class HealthCheckFailedError(BotError):
    """Raised when the execution service health check does not report ok."""

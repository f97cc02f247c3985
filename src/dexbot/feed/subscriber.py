"""WebSocket feed subscriber with reconnect and exponential backoff.

Delivers each text frame, unparsed, to a sink callable (the orchestrator's
``submit``). Parsing and validation happen downstream in the normalizer.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

import websockets
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from dexbot.logging import get_logger

logger = get_logger(__name__)

MessageSink = Callable[[str | bytes], bool]


@dataclass(slots=True)
class ReconnectPolicy:
    max_retries: int = 0  # 0 means infinite
    base_delay: float = 0.5  # seconds
    max_delay: float = 10.0  # seconds

    def delay(self, retries: int) -> float:
        return min(self.max_delay, self.base_delay * (2**retries))


class FeedSubscriber:
    """Streams raw messages from the event feed into a sink.

    Args:
        url: Feed WebSocket URL.
        sink: Called with every received frame.
        reconnect: Backoff policy for dropped connections.
    """

    def __init__(
        self,
        url: str,
        sink: MessageSink,
        reconnect: ReconnectPolicy | None = None,
    ) -> None:
        self._url = url
        self._sink = sink
        self._reconnect = reconnect or ReconnectPolicy()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._connected = False
        self._received = 0

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def received(self) -> int:
        return self._received

    async def start(self) -> None:
        """Run the subscriber in the background."""
        if self._task is not None:
            logger.warning("feed_already_running")
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Stop receiving and close the connection."""
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._connected = False
        logger.info("feed_stopped", received=self._received)

    async def _connect_once(self) -> None:
        logger.info("feed_connecting", url=self._url)
        async with websockets.connect(self._url, ping_interval=20, ping_timeout=20) as ws:
            self._connected = True
            logger.info("feed_connected", url=self._url)
            try:
                async for message in ws:
                    if self._stop_event.is_set():
                        break
                    self._received += 1
                    self._sink(message)
            finally:
                self._connected = False

    async def run(self) -> None:
        retries = 0
        while not self._stop_event.is_set():
            try:
                await self._connect_once()
                retries = 0
            except (ConnectionClosedOK, ConnectionClosedError, OSError, asyncio.TimeoutError) as exc:
                logger.warning("feed_disconnected", error=str(exc))
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("feed_unexpected_error")

            if self._stop_event.is_set():
                break

            if self._reconnect.max_retries and retries >= self._reconnect.max_retries:
                logger.error("feed_max_retries_reached", retries=retries)
                break

            delay = self._reconnect.delay(retries)
            retries += 1
            logger.info("feed_reconnecting", delay=delay, attempt=retries)
            await asyncio.sleep(delay)

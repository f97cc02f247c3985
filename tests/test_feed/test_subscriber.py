"""Tests for the WebSocket feed subscriber and its reconnect policy."""

from unittest.mock import AsyncMock, patch

import pytest

from dexbot.feed.subscriber import FeedSubscriber, ReconnectPolicy


class _FakeSocket:
    def __init__(self, messages: list[str]) -> None:
        self._messages = list(messages)

    async def __aenter__(self) -> "_FakeSocket":
        return self

    async def __aexit__(self, *exc) -> None:
        return None

    def __aiter__(self) -> "_FakeSocket":
        return self

    async def __anext__(self) -> str:
        if not self._messages:
            raise StopAsyncIteration
        return self._messages.pop(0)


def test_backoff_is_exponential_and_capped() -> None:
    policy = ReconnectPolicy(base_delay=0.5, max_delay=10.0)
    assert [policy.delay(n) for n in range(6)] == [0.5, 1.0, 2.0, 4.0, 8.0, 10.0]


@pytest.mark.asyncio
async def test_frames_go_to_sink_and_reconnect_after_failure() -> None:
    received: list[str] = []
    connections = [_FakeSocket(["frame-1", "frame-2"]), OSError("connection refused")]

    def fake_connect(url, **kwargs):
        outcome = connections.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    subscriber = FeedSubscriber(
        "ws://feed.test",
        lambda raw: received.append(raw) or True,
        ReconnectPolicy(max_retries=1, base_delay=0.5),
    )

    with patch("dexbot.feed.subscriber.websockets.connect", side_effect=fake_connect), patch(
        "dexbot.feed.subscriber.asyncio.sleep", new_callable=AsyncMock
    ) as sleep:
        await subscriber.run()

    assert received == ["frame-1", "frame-2"]
    assert subscriber.received == 2
    assert not subscriber.connected
    sleep.assert_awaited_once_with(0.5)


@pytest.mark.asyncio
async def test_stop_without_start() -> None:
    subscriber = FeedSubscriber("ws://feed.test", lambda raw: True)
    await subscriber.stop()
    assert not subscriber.connected

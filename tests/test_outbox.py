"""Tests for per-channel send spacing."""

import asyncio

from conftest import FakeTransport

from wagerbot.bot import ChannelOutbox


class Timeline:
    """Fake monotonic clock whose sleep advances time."""

    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


def test_sends_on_one_channel_are_spaced() -> None:
    async def run() -> None:
        timeline = Timeline()
        transport = FakeTransport()
        outbox = ChannelOutbox(transport, gap_ms=2500, clock=timeline.clock, sleep=timeline.sleep)

        for text in ("one", "two", "three"):
            assert await outbox.send("c1", text)

        assert timeline.sleeps == [2.5, 5.0]
        assert [content for _, content, _ in transport.sent] == ["one", "two", "three"]

    asyncio.run(run())


def test_channels_are_independent() -> None:
    async def run() -> None:
        timeline = Timeline()
        outbox = ChannelOutbox(
            FakeTransport(), gap_ms=2500, clock=timeline.clock, sleep=timeline.sleep
        )

        await outbox.send("c1", "a")
        await outbox.send("c2", "b")
        assert timeline.sleeps == []

    asyncio.run(run())


def test_slot_frees_up_after_gap() -> None:
    timeline = Timeline()
    outbox = ChannelOutbox(FakeTransport(), gap_ms=2500, clock=timeline.clock)

    assert outbox.reserve("c1") == 0
    timeline.now += 1.0
    assert outbox.reserve("c1") == 1.5
    timeline.now += 10.0
    assert outbox.reserve("c1") == 0


def test_transport_failure_returns_false() -> None:
    async def run() -> None:
        transport = FakeTransport()
        transport.fail = True
        outbox = ChannelOutbox(transport, gap_ms=0)

        assert not await outbox.send("c1", "hello")

    asyncio.run(run())


def test_prune_forgets_idle_channels() -> None:
    timeline = Timeline()
    outbox = ChannelOutbox(FakeTransport(), gap_ms=2500, clock=timeline.clock)
    outbox.reserve("c1")
    outbox.reserve("c2")

    assert outbox.prune() == 0
    timeline.now += 3
    assert outbox.prune() == 2

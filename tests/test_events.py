"""Tests for output events and the per-run output channel."""

from __future__ import annotations

import asyncio

import pytest

from scriptdeck.execution.events import EventKind, OutputChannel, OutputEvent


class TestOutputEvent:
    def test_start_to_dict(self) -> None:
        event = OutputEvent.start("abc", "bash -c true")
        assert event.to_dict() == {"id": "abc", "type": "start", "message": "bash -c true"}

    def test_chunk_to_dict(self) -> None:
        event = OutputEvent(EventKind.STDERR, "abc", message="oops\n")
        assert event.to_dict() == {"id": "abc", "type": "stderr", "message": "oops\n"}

    def test_end_to_dict(self) -> None:
        assert OutputEvent.end("abc", 3).to_dict() == {"id": "abc", "type": "end", "code": 3}

    def test_end_with_signal_to_dict(self) -> None:
        data = OutputEvent.end("abc", None, "SIGTERM").to_dict()
        assert data == {"id": "abc", "type": "end", "code": None, "signal": "SIGTERM"}


class TestOutputChannel:
    """Ordering rules and consumption of a run's events."""

    @pytest.fixture
    def channel(self) -> OutputChannel:
        return OutputChannel("abc")

    @pytest.mark.asyncio
    async def test_iterates_until_final(self, channel: OutputChannel) -> None:
        channel.publish(OutputEvent.start("abc", "sh -c x"))
        channel.publish(OutputEvent(EventKind.STDOUT, "abc", message="hi"))
        channel.publish(OutputEvent.end("abc", 0), final=True)

        events = await channel.collect()
        assert [e.kind for e in events] == [EventKind.START, EventKind.STDOUT, EventKind.END]
        assert channel.closed
        assert channel.terminal_event == events[-1]

    @pytest.mark.asyncio
    async def test_consumer_sees_events_published_later(self, channel: OutputChannel) -> None:
        async def produce() -> None:
            await asyncio.sleep(0)
            channel.publish(OutputEvent.start("abc", "sh -c x"))
            await asyncio.sleep(0)
            channel.publish(OutputEvent.end("abc", 1), final=True)

        producer = asyncio.create_task(produce())
        events = await channel.collect()
        await producer
        assert [e.kind for e in events] == [EventKind.START, EventKind.END]

    def test_first_event_must_be_start(self, channel: OutputChannel) -> None:
        with pytest.raises(RuntimeError, match="first event must be start"):
            channel.publish(OutputEvent(EventKind.STDOUT, "abc", message="early"))

    def test_single_start(self, channel: OutputChannel) -> None:
        channel.publish(OutputEvent.start("abc", "sh -c x"))
        with pytest.raises(RuntimeError, match="duplicate start"):
            channel.publish(OutputEvent.start("abc", "sh -c x"))

    def test_nothing_after_final(self, channel: OutputChannel) -> None:
        channel.publish(OutputEvent.start("abc", "sh -c x"))
        channel.publish(OutputEvent.error("abc", "spawn failed"), final=True)
        with pytest.raises(RuntimeError, match="closed"):
            channel.publish(OutputEvent.end("abc", 0))

    def test_rejects_other_script_ids(self, channel: OutputChannel) -> None:
        with pytest.raises(ValueError):
            channel.publish(OutputEvent.start("other", "sh -c x"))

    @pytest.mark.asyncio
    async def test_consumed_once(self, channel: OutputChannel) -> None:
        channel.publish(OutputEvent.start("abc", "sh -c x"))
        channel.publish(OutputEvent.end("abc", 0), final=True)
        await channel.collect()
        with pytest.raises(RuntimeError, match="already consumed"):
            await channel.collect()

    @pytest.mark.asyncio
    async def test_wait_returns_terminal_event(self, channel: OutputChannel) -> None:
        waiter = asyncio.create_task(channel.wait())
        channel.publish(OutputEvent.start("abc", "sh -c x"))
        channel.publish(OutputEvent.error("abc", "spawn failed"), final=True)
        terminal = await waiter
        assert terminal.kind is EventKind.ERROR


class TestListeners:
    def test_listener_sees_every_event(self) -> None:
        channel = OutputChannel("abc")
        seen: list[OutputEvent] = []
        channel.subscribe(seen.append)

        channel.publish(OutputEvent.start("abc", "sh -c x"))
        channel.publish(OutputEvent.end("abc", 0), final=True)
        assert [e.kind for e in seen] == [EventKind.START, EventKind.END]

    def test_unsubscribe(self) -> None:
        channel = OutputChannel("abc")
        seen: list[OutputEvent] = []
        unsubscribe = channel.subscribe(seen.append)
        channel.publish(OutputEvent.start("abc", "sh -c x"))
        unsubscribe()
        unsubscribe()
        channel.publish(OutputEvent.end("abc", 0), final=True)
        assert len(seen) == 1

    def test_failing_listener_does_not_break_publishing(self) -> None:
        channel = OutputChannel("abc")
        seen: list[OutputEvent] = []

        def broken(event: OutputEvent) -> None:
            raise RuntimeError("listener bug")

        channel.subscribe(broken)
        channel.subscribe(seen.append)
        channel.publish(OutputEvent.start("abc", "sh -c x"))
        channel.publish(OutputEvent.end("abc", 0), final=True)
        assert len(seen) == 2
        assert channel.closed

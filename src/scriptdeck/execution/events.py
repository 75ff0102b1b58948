"""Output events and the per-run channel that carries them.

Each run produces, in order:

- exactly one ``start`` (the resolved command line)
- any number of ``stdout`` / ``stderr`` chunks, ordered within each stream
  but not across streams, and not aligned to lines
- at most one ``error``
- exactly one ``end`` with the exit code, unless the process could not be
  spawned at all, in which case the ``error`` is the last event

The channel is a finite async iterable that can be consumed once. Push
listeners may also be attached; they see every event as it is published.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from scriptdeck.logging import get_logger

log = get_logger("execution.events")


class EventKind(str, Enum):
    """Types of output events emitted during a run."""

    START = "start"
    STDOUT = "stdout"
    STDERR = "stderr"
    ERROR = "error"
    END = "end"


@dataclass(frozen=True)
class OutputEvent:
    """A single event from a run.

    Attributes:
        kind: Event type.
        script_id: The script this run belongs to.
        message: Command line (start), text chunk (stdout/stderr), or
            failure description (error). None for end.
        code: Exit code for end; None if the process was killed by a signal.
        signal: Signal name for end when the process was killed by a signal.
    """

    kind: EventKind
    script_id: str
    message: str | None = None
    code: int | None = None
    signal: str | None = None

    @classmethod
    def start(cls, script_id: str, command_line: str) -> OutputEvent:
        return cls(EventKind.START, script_id, message=command_line)

    @classmethod
    def error(cls, script_id: str, message: str) -> OutputEvent:
        return cls(EventKind.ERROR, script_id, message=message)

    @classmethod
    def end(cls, script_id: str, code: int | None, signal: str | None = None) -> OutputEvent:
        return cls(EventKind.END, script_id, code=code, signal=signal)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for a push transport (one JSON object per event)."""
        data: dict[str, Any] = {"id": self.script_id, "type": self.kind.value}
        if self.kind is EventKind.END:
            data["code"] = self.code
            if self.signal:
                data["signal"] = self.signal
        else:
            data["message"] = self.message
        return data


Listener = Callable[[OutputEvent], None]


class OutputChannel:
    """Ordered, finite event sequence for one run.

    The producer calls publish() for each event and marks the last one with
    ``final=True``. Consumers either iterate the channel once (async for) or
    subscribe a listener, or both.
    """

    def __init__(self, script_id: str) -> None:
        self.script_id = script_id
        self._queue: asyncio.Queue[OutputEvent | None] = asyncio.Queue()
        self._listeners: list[Listener] = []
        self._started = False
        self._closed = False
        self._consumed = False
        self._terminal: OutputEvent | None = None
        self._done = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def terminal_event(self) -> OutputEvent | None:
        """The last event of the run, once the run has finished."""
        return self._terminal

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Attach a push listener.

        Returns:
            A function that detaches the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: OutputEvent, *, final: bool = False) -> None:
        """Append an event, enforcing the per-run ordering rules.

        Raises:
            RuntimeError: The channel is closed, or the event would break the
                start-first / single-start ordering.
            ValueError: The event belongs to another script.
        """
        if self._closed:
            raise RuntimeError(f"output channel for {self.script_id} is closed")
        if event.script_id != self.script_id:
            raise ValueError(
                f"event for {event.script_id} published on channel for {self.script_id}"
            )
        if not self._started:
            if event.kind is not EventKind.START:
                raise RuntimeError(f"first event must be start, got {event.kind.value}")
            self._started = True
        elif event.kind is EventKind.START:
            raise RuntimeError(f"duplicate start event for {self.script_id}")

        self._queue.put_nowait(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                log.exception("Output listener failed on %s event", event.kind.value)

        if final:
            self._closed = True
            self._terminal = event
            self._queue.put_nowait(None)
            self._done.set()

    async def wait(self) -> OutputEvent:
        """Wait until the run finishes and return its terminal event."""
        await self._done.wait()
        assert self._terminal is not None
        return self._terminal

    def __aiter__(self) -> AsyncIterator[OutputEvent]:
        if self._consumed:
            raise RuntimeError(f"output channel for {self.script_id} was already consumed")
        self._consumed = True
        return self._drain()

    async def _drain(self) -> AsyncIterator[OutputEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def collect(self) -> list[OutputEvent]:
        """Consume the channel and return every event of the run."""
        return [event async for event in self]

"""Execution controller: the run/stop API used by presentation layers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING

from scriptdeck.errors import AlreadyRunningError
from scriptdeck.execution.events import Listener, OutputEvent
from scriptdeck.execution.shells import ShellPlan, ShellResolver
from scriptdeck.execution.supervisor import ProcessSupervisor, RunHandle, RunState
from scriptdeck.logging import get_logger

if TYPE_CHECKING:
    from scriptdeck.config.schema import Config
    from scriptdeck.execution.protocol import ScriptSource

log = get_logger("execution")


class ExecutionController:
    """Runs saved scripts and stops them on request.

    Responsibilities:
    - Load the script from the persistence collaborator
    - Resolve its shell to a ShellPlan
    - Start it under the ProcessSupervisor
    - Fan out every run's events to subscribed listeners

    ``run`` raises NotFoundError, UnresolvedShellError or AlreadyRunningError
    without touching the registry. Failures after that point arrive as
    ``error`` events on the run's channel.
    """

    def __init__(
        self,
        source: ScriptSource,
        *,
        resolver: ShellResolver | None = None,
        supervisor: ProcessSupervisor | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            source: Where scripts are loaded from (e.g. a ScriptStore).
            resolver: Shell resolver; defaults to one for this host.
            supervisor: Process supervisor; defaults to a fresh one.
        """
        self._source = source
        self._resolver = resolver or ShellResolver()
        self._supervisor = supervisor or ProcessSupervisor()
        self._listeners: list[Listener] = []

    @classmethod
    def from_config(cls, source: ScriptSource, config: Config) -> ExecutionController:
        return cls(
            source,
            resolver=ShellResolver.from_config(config.execution),
            supervisor=ProcessSupervisor.from_config(config.execution),
        )

    @property
    def resolver(self) -> ShellResolver:
        return self._resolver

    @property
    def supervisor(self) -> ProcessSupervisor:
        return self._supervisor

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Receive every event of every run started after this call.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _dispatch(self, event: OutputEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                log.exception("Run listener failed on %s event", event.kind.value)

    def plan(self, script_id: str) -> ShellPlan:
        """Resolve the command line ``run`` would use, without running it."""
        record = self._source.get(script_id)
        return self._resolver.resolve(record.shell, record.content)

    async def run(self, script_id: str) -> RunHandle:
        """Start the script with id ``script_id``.

        Returns:
            The RunHandle; iterate ``handle.channel`` or ``await handle.wait()``.

        Raises:
            NotFoundError: No script has this id.
            UnresolvedShellError: No interpreter for the script's shell.
            AlreadyRunningError: The script is already running.
        """
        record = self._source.get(script_id)
        if self._supervisor.is_running(script_id):
            raise AlreadyRunningError(script_id)

        plan = self._resolver.resolve(record.shell, record.content)
        log.debug("Resolved %s to %s", script_id, plan.executable)
        return await self._supervisor.start(script_id, plan, listeners=[self._dispatch])

    def stop(self, script_id: str) -> bool:
        """Ask the run for ``script_id`` to terminate.

        Returns:
            True if a run was signaled, False if nothing was running.
            Never raises.
        """
        try:
            return self._supervisor.stop(script_id)
        except Exception:
            log.exception("Stopping %s failed", script_id)
            return False

    def is_running(self, script_id: str) -> bool:
        return self._supervisor.is_running(script_id)

    def state(self, script_id: str) -> RunState:
        """RUNNING while a run is registered for ``script_id``, else IDLE."""
        return RunState.RUNNING if self.is_running(script_id) else RunState.IDLE

    async def shutdown(self) -> None:
        """Stop every run and wait for their terminal events."""
        handles = self._supervisor.stop_all()
        if handles:
            log.info("Stopping %d running script(s)", len(handles))
            await asyncio.gather(*(handle.wait() for handle in handles))

"""Process supervisor: at most one live child process per script id.

The supervisor owns the registry of running scripts. A run is registered
before its first event is published and removed exactly once, right before
its terminal event, so a consumer that has seen ``end`` (or a pre-spawn
``error``) can start the script again immediately.

The registry lock is never held across an await; output is read by
per-stream tasks outside of it.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import signal
import subprocess
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from scriptdeck.errors import AlreadyRunningError
from scriptdeck.execution.events import EventKind, Listener, OutputChannel, OutputEvent
from scriptdeck.execution.shells import ShellPlan, is_windows
from scriptdeck.logging import get_logger

if TYPE_CHECKING:
    from scriptdeck.config.schema import ExecutionConfig

log = get_logger("execution.supervisor")

# Seconds to keep reading output after the shell process has exited
DRAIN_TIMEOUT = 1.0

# Seconds to wait for taskkill before falling back to killing the shell only
TASKKILL_TIMEOUT = 5.0


class RunState(str, Enum):
    """Lifecycle of a script id: IDLE -> RUNNING -> EXITED/KILLED/ERROR -> IDLE."""

    IDLE = "idle"
    RUNNING = "running"
    EXITED = "exited"
    KILLED = "killed"
    ERROR = "error"


@dataclass
class RunHandle:
    """One execution of a script.

    Attributes:
        script_id: The script being run.
        plan: The resolved command line.
        channel: Events of this run.
        started_at: When the run was registered.
        process: The child process; None until spawned or if spawning failed.
        state: RUNNING until the run ends, then its outcome.
        stop_requested: True once stop() was called for this run.
    """

    script_id: str
    plan: ShellPlan
    channel: OutputChannel
    started_at: datetime = field(default_factory=datetime.now)
    process: asyncio.subprocess.Process | None = None
    state: RunState = RunState.RUNNING
    stop_requested: bool = False
    error_reported: bool = False
    task: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process is not None else None

    @property
    def events(self) -> OutputChannel:
        return self.channel

    async def wait(self) -> OutputEvent:
        """Wait for the run's terminal event."""
        return await self.channel.wait()


def tree_kill_command(pid: int) -> list[str]:
    """Command that force-kills a Windows process and all its descendants."""
    return ["taskkill", "/pid", str(pid), "/T", "/F"]


def _signal_name(returncode: int) -> str:
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


class ProcessSupervisor:
    """Starts, streams and stops script processes, one per script id.

    Args:
        cwd: Working directory for children. Defaults to the user's home.
        env: Environment for children. Defaults to inheriting ours.
        encoding: Codec used to decode child output.
        chunk_size: Maximum bytes read from a stream at a time.
        platform: ``sys.platform`` style name. Defaults to the host's.
    """

    def __init__(
        self,
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        encoding: str = "utf-8",
        chunk_size: int = 4096,
        platform: str | None = None,
    ) -> None:
        codecs.lookup(encoding)  # fail fast on unknown codecs
        self._cwd = Path(cwd).expanduser() if cwd else Path.home()
        self._env = dict(env) if env is not None else None
        self._encoding = encoding
        self._chunk_size = chunk_size
        self._windows = is_windows(platform)

        self._lock = threading.Lock()
        self._runs: dict[str, RunHandle] = {}

    @classmethod
    def from_config(cls, config: ExecutionConfig) -> ProcessSupervisor:
        return cls(cwd=config.cwd, encoding=config.encoding, chunk_size=config.chunk_size)

    @property
    def cwd(self) -> Path:
        return self._cwd

    def get(self, script_id: str) -> RunHandle | None:
        with self._lock:
            return self._runs.get(script_id)

    def is_running(self, script_id: str) -> bool:
        with self._lock:
            return script_id in self._runs

    def running_ids(self) -> list[str]:
        with self._lock:
            return list(self._runs)

    async def start(
        self,
        script_id: str,
        plan: ShellPlan,
        *,
        listeners: Sequence[Listener] = (),
    ) -> RunHandle:
        """Spawn ``plan`` for ``script_id`` and begin streaming its output.

        Listeners are attached before the first event is published. If the
        OS refuses to spawn the process the returned handle is already
        finished: its events are ``start`` followed by ``error``.

        Raises:
            AlreadyRunningError: A run for ``script_id`` is in progress.
        """
        channel = OutputChannel(script_id)
        for listener in listeners:
            channel.subscribe(listener)
        handle = RunHandle(script_id=script_id, plan=plan, channel=channel)

        with self._lock:
            if script_id in self._runs:
                raise AlreadyRunningError(script_id)
            self._runs[script_id] = handle

        log.info("Starting %s: %s", script_id, plan.command_line)
        if plan.platform_note:
            log.debug("Shell for %s: %s", script_id, plan.platform_note)
        channel.publish(OutputEvent.start(script_id, f"Running with {plan.command_line}"))

        try:
            process = await asyncio.create_subprocess_exec(
                plan.executable,
                *plan.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self._cwd),
                env=self._env,
            )
        except (OSError, ValueError) as e:
            log.warning("Failed to spawn %s for %s: %s", plan.executable, script_id, e)
            reason = getattr(e, "strerror", None) or e
            self._fail_before_spawn(handle, f"Failed to start {plan.executable}: {reason}")
            return handle
        except asyncio.CancelledError:
            self._fail_before_spawn(handle, "Start was cancelled")
            raise

        handle.process = process
        log.debug("Spawned %s with pid %d", script_id, process.pid)

        # stop() may have been called while we were spawning
        if handle.stop_requested:
            self._terminate(handle)

        handle.task = asyncio.create_task(
            self._supervise(handle), name=f"scriptdeck-run-{script_id}"
        )
        return handle

    def stop(self, script_id: str) -> bool:
        """Signal the run for ``script_id`` to terminate.

        Best-effort and asynchronous: the run's ``end`` event arrives later.

        Returns:
            True if a run was signaled, False if none was running.
        """
        with self._lock:
            handle = self._runs.get(script_id)
        if handle is None:
            return False

        log.info("Stopping %s", script_id)
        handle.stop_requested = True
        if handle.process is not None:
            self._terminate(handle)
        return True

    def stop_all(self) -> list[RunHandle]:
        """Signal every live run. Returns the handles that were signaled."""
        with self._lock:
            handles = list(self._runs.values())
        for handle in handles:
            self.stop(handle.script_id)
        return handles

    def _terminate(self, handle: RunHandle) -> None:
        process = handle.process
        if process is None or process.returncode is not None:
            return

        if self._windows:
            # The shell may have spawned its own children (e.g. wsl.exe)
            try:
                result = subprocess.run(
                    tree_kill_command(process.pid),
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    check=False,
                    timeout=TASKKILL_TIMEOUT,
                )
                if result.returncode == 0:
                    return
                log.warning("taskkill exited with %d for pid %d", result.returncode, process.pid)
            except (OSError, subprocess.TimeoutExpired) as e:
                log.warning("taskkill failed for pid %d: %s", process.pid, e)
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            return

        try:
            process.terminate()
        except ProcessLookupError:
            pass

    def _forget(self, handle: RunHandle) -> bool:
        """Remove ``handle`` from the registry if it is still registered."""
        with self._lock:
            if self._runs.get(handle.script_id) is handle:
                del self._runs[handle.script_id]
                return True
            return False

    def _fail_before_spawn(self, handle: RunHandle, message: str) -> None:
        handle.state = RunState.ERROR
        handle.error_reported = True
        self._forget(handle)
        handle.channel.publish(OutputEvent.error(handle.script_id, message), final=True)

    def _report_error(self, handle: RunHandle, message: str) -> None:
        if handle.error_reported:
            return
        handle.error_reported = True
        handle.channel.publish(OutputEvent.error(handle.script_id, message))

    async def _pump(
        self, handle: RunHandle, stream: asyncio.StreamReader | None, kind: EventKind
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder(self._encoding)(errors="replace")
        try:
            while True:
                chunk = await stream.read(self._chunk_size)
                if not chunk:
                    break
                text = decoder.decode(chunk)
                if text:
                    handle.channel.publish(OutputEvent(kind, handle.script_id, message=text))
            tail = decoder.decode(b"", final=True)
            if tail:
                handle.channel.publish(OutputEvent(kind, handle.script_id, message=tail))
        except OSError as e:
            log.warning("Reading %s of %s failed: %s", kind.value, handle.script_id, e)
            self._report_error(handle, f"Error reading {kind.value}: {e}")

    async def _supervise(self, handle: RunHandle) -> None:
        process = handle.process
        assert process is not None

        readers = [
            asyncio.create_task(self._pump(handle, process.stdout, EventKind.STDOUT)),
            asyncio.create_task(self._pump(handle, process.stderr, EventKind.STDERR)),
        ]
        try:
            returncode = await process.wait()
            # Orphaned grandchildren can keep the pipes open after the shell exits
            _, pending = await asyncio.wait(readers, timeout=DRAIN_TIMEOUT)
            if pending:
                log.debug("Output of %s still open after exit, closing", handle.script_id)
            for reader in pending:
                reader.cancel()
            for result in await asyncio.gather(*readers, return_exceptions=True):
                if isinstance(result, Exception):
                    log.error("Output reader for %s failed: %s", handle.script_id, result)
                    self._report_error(handle, f"Run failed: {result}")
        except asyncio.CancelledError:
            for reader in readers:
                reader.cancel()
            self._terminate(handle)
            self._finish(handle, None)
            raise

        self._finish(handle, returncode)

    def _finish(self, handle: RunHandle, returncode: int | None) -> None:
        code = returncode
        signal_name = None
        if returncode is not None and returncode < 0 and not self._windows:
            signal_name = _signal_name(returncode)
            code = None

        if handle.stop_requested or signal_name:
            handle.state = RunState.KILLED
        elif handle.error_reported:
            handle.state = RunState.ERROR
        else:
            handle.state = RunState.EXITED

        self._forget(handle)
        log.info(
            "Finished %s: state=%s code=%s signal=%s",
            handle.script_id,
            handle.state.value,
            code,
            signal_name,
        )
        handle.channel.publish(
            OutputEvent.end(handle.script_id, code, signal_name), final=True
        )

"""Script execution: shell resolution, process supervision, output streaming.

Example:
    controller = ExecutionController(store)
    handle = await controller.run(script_id)
    async for event in handle.channel:
        print(event.kind, event.message)
"""

from scriptdeck.execution.controller import ExecutionController
from scriptdeck.execution.events import EventKind, Listener, OutputChannel, OutputEvent
from scriptdeck.execution.protocol import ScriptRecord, ScriptSource
from scriptdeck.execution.shells import (
    BashCandidate,
    PathScanProbe,
    ShellKind,
    ShellPlan,
    ShellResolver,
    WellKnownPathProbe,
    default_bash_probes,
    default_shell,
    quote_for_bash,
)
from scriptdeck.execution.supervisor import ProcessSupervisor, RunHandle, RunState

__all__ = [
    "BashCandidate",
    "EventKind",
    "ExecutionController",
    "Listener",
    "OutputChannel",
    "OutputEvent",
    "PathScanProbe",
    "ProcessSupervisor",
    "RunHandle",
    "RunState",
    "ScriptRecord",
    "ScriptSource",
    "ShellKind",
    "ShellPlan",
    "ShellResolver",
    "WellKnownPathProbe",
    "default_bash_probes",
    "default_shell",
    "quote_for_bash",
]

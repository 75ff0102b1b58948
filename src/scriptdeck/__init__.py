"""scriptdeck - Save shell scripts and run them with live output.

Scripts are stored as YAML records and run under the shell they were
written for. On Windows, bash scripts run through WSL, Git Bash or any
bash.exe on PATH.
"""

from scriptdeck.errors import (
    AlreadyRunningError,
    NameConflictError,
    NotFoundError,
    ScriptDeckError,
    UnresolvedShellError,
)
from scriptdeck.execution import (
    ExecutionController,
    OutputEvent,
    ProcessSupervisor,
    RunHandle,
    RunState,
    ScriptRecord,
    ShellKind,
    ShellPlan,
    ShellResolver,
)
from scriptdeck.storage import ScriptStore

__all__ = [
    "AlreadyRunningError",
    "ExecutionController",
    "NameConflictError",
    "NotFoundError",
    "OutputEvent",
    "ProcessSupervisor",
    "RunHandle",
    "RunState",
    "ScriptDeckError",
    "ScriptRecord",
    "ScriptStore",
    "ShellKind",
    "ShellPlan",
    "ShellResolver",
    "UnresolvedShellError",
]

__version__ = "0.1.0"

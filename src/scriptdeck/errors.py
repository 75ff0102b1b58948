"""Exception types raised by scriptdeck.

Failures that happen before a run exists (unknown script, duplicate run,
no usable shell) are raised synchronously. Failures that happen once a run
is underway (spawn refused, stream read fault) are reported as ``error``
output events instead; see ``scriptdeck.execution.events``.
"""

from __future__ import annotations


class ScriptDeckError(Exception):
    """Base class for all scriptdeck errors."""


class NotFoundError(ScriptDeckError, KeyError):
    """No script record exists for the requested id."""

    def __init__(self, script_id: str) -> None:
        super().__init__(script_id)
        self.script_id = script_id

    def __str__(self) -> str:
        return f"Script not found: {self.script_id}"


class AlreadyRunningError(ScriptDeckError):
    """A run for this script id is already in progress."""

    def __init__(self, script_id: str) -> None:
        super().__init__(f"Script is already running: {script_id}")
        self.script_id = script_id


class UnresolvedShellError(ScriptDeckError):
    """No interpreter could be found for the requested shell kind.

    Attributes:
        shell: The requested shell kind (as a string).
        platform: The platform resolution was attempted on.
    """

    def __init__(self, message: str, *, shell: str, platform: str) -> None:
        super().__init__(message)
        self.shell = shell
        self.platform = platform


class NameConflictError(ScriptDeckError):
    """Renaming a script onto a name another script already uses."""

    code = "NAME_CONFLICT"

    def __init__(self, name: str) -> None:
        super().__init__("A script with that name already exists.")
        self.name = name

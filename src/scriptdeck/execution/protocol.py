"""Record types and the persistence contract consumed by the execution core."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from scriptdeck.execution.shells import ShellKind


@dataclass(frozen=True)
class ScriptRecord:
    """A saved script.

    The execution core only reads ``id``, ``shell`` and ``content``, and
    treats the record as immutable for the duration of a run.
    """

    id: str
    name: str
    shell: ShellKind
    content: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


@runtime_checkable
class ScriptSource(Protocol):
    """Where the execution core loads scripts from.

    Implementations:
    - ScriptStore: YAML files in the scripts directory
    """

    def get(self, script_id: str) -> ScriptRecord:
        """Load a script by id.

        Raises:
            NotFoundError: No script has this id.
        """
        ...

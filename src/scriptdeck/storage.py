"""Script record persistence.

Each script is stored as its own YAML file in the scripts directory:
  <scripts dir>/<script-id>.yaml

Record files contain:
- id: Unique identifier
- name: Human-readable name, unique (case-insensitive) across scripts
- shell: powershell, cmd, bash or sh
- content: The script text
- created_at / updated_at: ISO timestamps
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from filelock import FileLock

from scriptdeck.config.paths import get_default_scripts_dir
from scriptdeck.errors import NameConflictError, NotFoundError
from scriptdeck.execution.protocol import ScriptRecord
from scriptdeck.execution.shells import ShellKind, default_shell
from scriptdeck.logging import get_logger

if TYPE_CHECKING:
    from scriptdeck.config.schema import ScriptsConfig

log = get_logger("store")

DEFAULT_NAME = "Untitled"
LOCK_FILENAME = ".store.lock"

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_COPY_SUFFIX = re.compile(r" \(\d+\)$")


@dataclass
class ScriptSummary:
    """Lightweight script metadata for listing."""

    id: str
    name: str
    shell: ShellKind
    updated_at: datetime


class _RecordDumper(yaml.SafeDumper):
    """Writes multi-line script content as a literal block."""


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_RecordDumper.add_representer(str, _represent_str)


def generate_id() -> str:
    """Generate a new script id."""
    return uuid.uuid4().hex[:12]


def _parse_time(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


class ScriptStore:
    """YAML-file store for script records.

    Implements the ScriptSource protocol consumed by ExecutionController,
    plus the list/save/delete operations used by the CLI.
    """

    def __init__(self, directory: str | Path, *, default_shell: ShellKind | str | None = None) -> None:
        """Initialize the store.

        Args:
            directory: Directory holding the record files (created on first save).
            default_shell: Shell for new scripts that do not name one.
        """
        self._directory = Path(directory).expanduser()
        self._default_shell = ShellKind.parse(default_shell) if default_shell else None
        self._lock_path = self._directory / LOCK_FILENAME

    @classmethod
    def from_config(cls, config: ScriptsConfig) -> ScriptStore:
        directory = config.directory or get_default_scripts_dir()
        return cls(directory, default_shell=config.default_shell)

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def default_shell(self) -> ShellKind:
        return self._default_shell or default_shell()

    def path_for(self, script_id: str) -> Path:
        """Get the record file path for a script id.

        Raises:
            ValueError: The id contains characters not allowed in ids.
        """
        if not _ID_PATTERN.match(script_id):
            raise ValueError(f"invalid script id: {script_id!r}")
        return self._directory / f"{script_id}.yaml"

    def exists(self, script_id: str) -> bool:
        try:
            return self.path_for(script_id).exists()
        except ValueError:
            return False

    def _lock(self) -> FileLock:
        """Lock serializing writers across processes sharing the directory."""
        self._directory.mkdir(parents=True, exist_ok=True)
        return FileLock(self._lock_path, timeout=10)

    def _read(self, path: Path) -> ScriptRecord:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict) or not data.get("id"):
            raise ValueError(f"not a script record: {path}")

        shell_value = data.get("shell")
        try:
            shell = ShellKind.parse(shell_value) if shell_value else self.default_shell
        except ValueError:
            log.warning("Unknown shell %r in %s, using %s", shell_value, path, self.default_shell.value)
            shell = self.default_shell

        return ScriptRecord(
            id=str(data["id"]),
            name=str(data.get("name") or DEFAULT_NAME),
            shell=shell,
            content=str(data.get("content") or ""),
            created_at=_parse_time(data.get("created_at")),
            updated_at=_parse_time(data.get("updated_at")),
        )

    def get(self, script_id: str) -> ScriptRecord:
        """Load a script by id.

        Raises:
            NotFoundError: No readable record exists for this id.
        """
        if not self.exists(script_id):
            raise NotFoundError(script_id)
        path = self.path_for(script_id)
        try:
            return self._read(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            log.warning("Failed to load script %s from %s: %s", script_id, path, e)
            raise NotFoundError(script_id) from e

    def list(self) -> list[ScriptSummary]:
        """List all scripts, most recently updated first.

        Unreadable record files are skipped.
        """
        if not self._directory.exists():
            return []

        summaries: list[ScriptSummary] = []
        for path in self._directory.glob("*.yaml"):
            try:
                record = self._read(path)
            except (OSError, ValueError, yaml.YAMLError) as e:
                log.warning("Skipping unreadable script file %s: %s", path, e)
                continue
            summaries.append(
                ScriptSummary(
                    id=record.id,
                    name=record.name,
                    shell=record.shell,
                    updated_at=record.updated_at or datetime.fromtimestamp(0),
                )
            )

        summaries.sort(key=lambda s: s.updated_at, reverse=True)
        return summaries

    def find_by_name(self, name: str) -> ScriptSummary | None:
        """Find a script by name (case-insensitive)."""
        wanted = name.strip().lower()
        for summary in self.list():
            if summary.name.lower() == wanted:
                return summary
        return None

    def _unique_name(self, desired: str, taken: set[str]) -> str:
        if desired.lower() not in taken:
            return desired
        base = _COPY_SUFFIX.sub("", desired)
        n = 2
        while f"{base} ({n})".lower() in taken:
            n += 1
        return f"{base} ({n})"

    def save(
        self,
        *,
        script_id: str | None = None,
        name: str | None = None,
        shell: ShellKind | str | None = None,
        content: str | None = None,
    ) -> ScriptRecord:
        """Create or update a script.

        A new script whose name is already taken gets a " (2)", " (3)", ...
        suffix. Renaming an existing script onto another script's name fails.
        Fields left as None keep their stored value (or the default for new
        scripts).

        Performs atomic write by writing to a temp file first.

        Raises:
            NameConflictError: An existing script was renamed onto a taken name.
            ValueError: Invalid id or shell.
            filelock.Timeout: Another process held the store lock too long.
        """
        script_id = script_id or generate_id()
        path = self.path_for(script_id)
        with self._lock():
            return self._save(path, script_id, name, shell, content)

    def _save(
        self,
        path: Path,
        script_id: str,
        name: str | None,
        shell: ShellKind | str | None,
        content: str | None,
    ) -> ScriptRecord:
        existing: ScriptRecord | None = None
        if path.exists():
            try:
                existing = self._read(path)
            except (OSError, ValueError, yaml.YAMLError) as e:
                log.warning("Overwriting unreadable script file %s: %s", path, e)

        if name is None and existing is not None:
            desired = existing.name
        else:
            desired = (name or "").strip() or DEFAULT_NAME

        taken = {s.name.lower() for s in self.list() if s.id != script_id}
        if existing is None:
            desired = self._unique_name(desired, taken)
        elif desired.lower() in taken:
            raise NameConflictError(desired)

        if shell is not None:
            shell_kind = ShellKind.parse(shell)
        elif existing is not None:
            shell_kind = existing.shell
        else:
            shell_kind = self.default_shell

        if content is None:
            content = existing.content if existing is not None else ""

        now = datetime.now()
        record = ScriptRecord(
            id=script_id,
            name=desired,
            shell=shell_kind,
            content=content,
            created_at=(existing.created_at if existing and existing.created_at else now),
            updated_at=now,
        )
        self._write(path, record)
        log.debug("Saved script %s (%s) to %s", record.id, record.name, path)
        return record

    def _write(self, path: Path, record: ScriptRecord) -> None:
        temp_path = path.with_name(path.name + ".tmp")
        data = {
            "id": record.id,
            "name": record.name,
            "shell": record.shell.value,
            "content": record.content,
            "created_at": record.created_at.isoformat() if record.created_at else None,
            "updated_at": record.updated_at.isoformat() if record.updated_at else None,
        }
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                yaml.dump(
                    data,
                    f,
                    Dumper=_RecordDumper,
                    default_flow_style=False,
                    allow_unicode=True,
                    sort_keys=False,
                )
            temp_path.replace(path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def delete(self, script_id: str) -> bool:
        """Delete a script.

        Returns:
            True if deleted, False if no such script existed.
        """
        if not self.exists(script_id):
            return False
        with self._lock():
            try:
                self.path_for(script_id).unlink()
            except FileNotFoundError:
                return False
        log.debug("Deleted script %s", script_id)
        return True

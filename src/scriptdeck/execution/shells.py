"""Shell resolution: map a script's shell kind to a concrete command line.

On POSIX hosts ``bash`` and ``sh`` are invoked directly. On Windows ``cmd``
and ``powershell`` are invoked directly, while ``bash``/``sh`` scripts need
a bash interpreter that Windows does not ship. It is discovered by running
an ordered list of probes, first hit wins:

1. the WSL launcher at its system path
2. Git for Windows at its conventional install paths
3. any ``bash.exe`` on PATH

Resolution only checks for file existence; it never spawns anything.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from string import Template
from typing import TYPE_CHECKING, ClassVar, Protocol

from scriptdeck.config.schema import DEFAULT_GIT_BASH_PATHS
from scriptdeck.errors import UnresolvedShellError
from scriptdeck.logging import get_logger

if TYPE_CHECKING:
    from scriptdeck.config.schema import ExecutionConfig

log = get_logger("execution.shells")

NO_BASH_GUIDANCE = (
    "No Bash environment detected. Install WSL "
    "(https://learn.microsoft.com/windows/wsl/install) or Git for Windows "
    "to enable bash scripts."
)

_WINDOWS_ENV_DEFAULTS = {"SYSTEMROOT": "C:\\Windows"}


class ShellKind(str, Enum):
    """Command interpreter a script is written for."""

    POWERSHELL = "powershell"
    CMD = "cmd"
    BASH = "bash"
    SH = "sh"

    @classmethod
    def parse(cls, value: str | ShellKind) -> ShellKind:
        if isinstance(value, ShellKind):
            return value
        text = str(value).strip().lower()
        for kind in cls:
            if kind.value == text:
                return kind
        choices = ", ".join(k.value for k in cls)
        raise ValueError(f"invalid shell: {value!r} (expected one of: {choices})")


def is_windows(platform: str | None = None) -> bool:
    return (platform or sys.platform) == "win32"


def default_shell(platform: str | None = None) -> ShellKind:
    """Shell assigned to new scripts that do not name one."""
    return ShellKind.POWERSHELL if is_windows(platform) else ShellKind.BASH


def quote_for_bash(content: str) -> str:
    """Wrap content in single quotes for a ``bash -lc`` argument.

    Embedded single quotes become ``'\\''``. This is best-effort: null bytes
    and launchers that re-split the command line are not handled.
    """
    return "'" + content.replace("'", "'\\''") + "'"


@dataclass(frozen=True)
class ShellPlan:
    """Resolved executable and arguments for one run.

    Attributes:
        executable: Program to spawn (a bare command or absolute path).
        argv: Arguments passed after the executable.
        platform_note: Optional diagnostic, e.g. which bash was discovered.
    """

    executable: str
    argv: tuple[str, ...]
    platform_note: str | None = None

    @property
    def command(self) -> list[str]:
        return [self.executable, *self.argv]

    @property
    def command_line(self) -> str:
        return " ".join(self.command)


@dataclass(frozen=True)
class BashCandidate:
    """A bash interpreter found by a probe."""

    source: str  # "wsl", "git-bash", "path-bash"
    executable: str
    location: str
    args_prefix: tuple[str, ...]


class BashProbe(Protocol):
    """A strategy for locating bash on Windows."""

    kind: ClassVar[str]
    source: str

    def find(self, env: Mapping[str, str]) -> BashCandidate | None: ...


def _normalize_env(env: Mapping[str, str]) -> dict[str, str]:
    # Windows variable names are case-insensitive
    normalized = dict(_WINDOWS_ENV_DEFAULTS)
    normalized.update({k.upper(): v for k, v in env.items() if v})
    return normalized


@dataclass(frozen=True)
class WellKnownPathProbe:
    """Look for an interpreter at fixed install locations.

    Paths may reference environment variables as ``${NAME}``.
    ``launcher`` replaces the found path as the executable, for programs
    like ``wsl.exe`` that are found on disk but invoked by name.
    """

    kind: ClassVar[str] = "well-known-path"

    source: str
    paths: tuple[str, ...]
    args_prefix: tuple[str, ...] = ("-lc",)
    launcher: str | None = None

    def find(self, env: Mapping[str, str]) -> BashCandidate | None:
        variables = _normalize_env(env)
        for template in self.paths:
            location = Template(template).safe_substitute(variables)
            if Path(location).is_file():
                return BashCandidate(
                    source=self.source,
                    executable=self.launcher or location,
                    location=location,
                    args_prefix=self.args_prefix,
                )
        return None


@dataclass(frozen=True)
class PathScanProbe:
    """Scan each PATH directory, in listed order, for a bash executable."""

    kind: ClassVar[str] = "path-scan"

    source: str = "path-bash"
    names: tuple[str, ...] = ("bash.exe",)
    separator: str = ";"
    args_prefix: tuple[str, ...] = ("-lc",)

    def find(self, env: Mapping[str, str]) -> BashCandidate | None:
        search_path = _normalize_env(env).get("PATH", "")
        for entry in search_path.split(self.separator):
            directory = entry.strip().strip('"')
            if not directory:
                continue
            for name in self.names:
                candidate = Path(directory) / name
                if candidate.is_file():
                    return BashCandidate(
                        source=self.source,
                        executable=str(candidate),
                        location=str(candidate),
                        args_prefix=self.args_prefix,
                    )
        return None


def default_bash_probes(git_bash_paths: Sequence[str] | None = None) -> list[BashProbe]:
    """Build the Windows bash discovery chain in priority order."""
    git_paths = tuple(git_bash_paths if git_bash_paths is not None else DEFAULT_GIT_BASH_PATHS)
    return [
        WellKnownPathProbe(
            source="wsl",
            paths=("${SYSTEMROOT}/System32/wsl.exe",),
            args_prefix=("bash", "-lc"),
            launcher="wsl.exe",
        ),
        WellKnownPathProbe(source="git-bash", paths=git_paths),
        PathScanProbe(),
    ]


class ShellResolver:
    """Resolve shell kinds to ShellPlans for one host.

    Args:
        platform: ``sys.platform`` style name. Defaults to the host's.
        env: Environment consulted by bash discovery. Defaults to os.environ.
        probes: Windows bash discovery chain. Defaults to default_bash_probes().
    """

    def __init__(
        self,
        *,
        platform: str | None = None,
        env: Mapping[str, str] | None = None,
        probes: Sequence[BashProbe] | None = None,
    ) -> None:
        self._platform = platform or sys.platform
        self._env = env if env is not None else os.environ
        self._probes = list(probes) if probes is not None else default_bash_probes()

    @classmethod
    def from_config(
        cls,
        config: ExecutionConfig,
        *,
        platform: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ShellResolver:
        return cls(platform=platform, env=env, probes=default_bash_probes(config.git_bash_paths))

    @property
    def platform(self) -> str:
        return self._platform

    @property
    def probes(self) -> list[BashProbe]:
        return list(self._probes)

    def find_bash(self) -> BashCandidate | None:
        """Run the discovery probes in order and return the first hit."""
        for probe in self._probes:
            candidate = probe.find(self._env)
            if candidate is not None:
                log.debug("Found bash via %s probe: %s", probe.kind, candidate.location)
                return candidate
        return None

    def resolve(self, shell: ShellKind | str, content: str) -> ShellPlan:
        """Build the plan for running ``content`` under ``shell``.

        Raises:
            UnresolvedShellError: No interpreter is available, or the shell
                kind is not supported on this platform.
            ValueError: ``shell`` is not a known shell kind.
        """
        kind = ShellKind.parse(shell)

        if not is_windows(self._platform):
            if kind in (ShellKind.BASH, ShellKind.SH):
                return ShellPlan(kind.value, ("-c", content))
            raise UnresolvedShellError(
                f"{kind.value} scripts can only run on Windows "
                f"(this host is {self._platform}); use bash or sh instead.",
                shell=kind.value,
                platform=self._platform,
            )

        if kind is ShellKind.CMD:
            return ShellPlan("cmd.exe", ("/d", "/c", content))
        if kind is ShellKind.POWERSHELL:
            return ShellPlan(
                "powershell.exe",
                ("-NoLogo", "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", content),
            )

        candidate = self.find_bash()
        if candidate is None:
            log.warning("No bash interpreter found for %s script", kind.value)
            raise UnresolvedShellError(
                NO_BASH_GUIDANCE, shell=kind.value, platform=self._platform
            )
        return ShellPlan(
            candidate.executable,
            (*candidate.args_prefix, quote_for_bash(content)),
            platform_note=f"{kind.value} via {candidate.source} ({candidate.location})",
        )

"""Tests for shell resolution and Windows bash discovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from scriptdeck.config.schema import ExecutionConfig
from scriptdeck.errors import UnresolvedShellError
from scriptdeck.execution.shells import (
    PathScanProbe,
    ShellKind,
    ShellPlan,
    ShellResolver,
    WellKnownPathProbe,
    default_bash_probes,
    default_shell,
    quote_for_bash,
)


def make_file(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    return path


class TestShellKind:
    def test_parse_is_case_insensitive(self) -> None:
        assert ShellKind.parse("Bash") is ShellKind.BASH
        assert ShellKind.parse(" powershell ") is ShellKind.POWERSHELL

    def test_parse_passes_through_kinds(self) -> None:
        assert ShellKind.parse(ShellKind.CMD) is ShellKind.CMD

    def test_parse_rejects_unknown(self) -> None:
        with pytest.raises(ValueError, match="invalid shell"):
            ShellKind.parse("zsh")

    def test_default_shell_per_platform(self) -> None:
        assert default_shell("win32") is ShellKind.POWERSHELL
        assert default_shell("linux") is ShellKind.BASH
        assert default_shell("darwin") is ShellKind.BASH


class TestQuoteForBash:
    def test_plain_content(self) -> None:
        assert quote_for_bash("echo hi") == "'echo hi'"

    def test_embedded_single_quotes(self) -> None:
        assert quote_for_bash("echo 'hi'") == "'echo '\\''hi'\\'''"

    def test_empty_content(self) -> None:
        assert quote_for_bash("") == "''"


class TestShellPlan:
    def test_command_line(self) -> None:
        plan = ShellPlan("bash", ("-c", "echo hi"))
        assert plan.command == ["bash", "-c", "echo hi"]
        assert plan.command_line == "bash -c echo hi"


class TestPosixResolution:
    """bash and sh run directly; Windows shells are rejected."""

    @pytest.fixture
    def resolver(self) -> ShellResolver:
        return ShellResolver(platform="linux", env={})

    @pytest.mark.parametrize("kind", ["bash", "sh"])
    def test_direct_invocation(self, resolver: ShellResolver, kind: str) -> None:
        plan = resolver.resolve(kind, "echo 'hi'")
        assert plan.executable == kind
        assert plan.argv == ("-c", "echo 'hi'")
        assert plan.platform_note is None

    @pytest.mark.parametrize("kind", ["powershell", "cmd"])
    def test_windows_shells_rejected(self, resolver: ShellResolver, kind: str) -> None:
        with pytest.raises(UnresolvedShellError) as exc_info:
            resolver.resolve(kind, "dir")
        assert exc_info.value.shell == kind
        assert exc_info.value.platform == "linux"

    def test_posix_never_probes(self, tmp_path: Path) -> None:
        """Discovery probes are only consulted on Windows."""
        bash = make_file(tmp_path / "bin" / "bash.exe")
        resolver = ShellResolver(platform="darwin", env={"PATH": str(bash.parent)})
        assert resolver.resolve("bash", "true").executable == "bash"


class TestWindowsResolution:
    """Windows resolution against a simulated filesystem layout."""

    @pytest.fixture
    def system_root(self, tmp_path: Path) -> Path:
        root = tmp_path / "Windows"
        (root / "System32").mkdir(parents=True)
        return root

    def resolver_for(
        self, env: dict[str, str], git_bash_paths: list[str] | None = None
    ) -> ShellResolver:
        return ShellResolver(
            platform="win32",
            env=env,
            probes=default_bash_probes(git_bash_paths or []),
        )

    def test_cmd(self) -> None:
        plan = self.resolver_for({}).resolve("cmd", "dir")
        assert plan.executable == "cmd.exe"
        assert plan.argv == ("/d", "/c", "dir")

    def test_powershell(self) -> None:
        plan = self.resolver_for({}).resolve(ShellKind.POWERSHELL, "Get-Date")
        assert plan.executable == "powershell.exe"
        assert plan.argv == (
            "-NoLogo", "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", "Get-Date",
        )

    def test_wsl_preferred(self, tmp_path: Path, system_root: Path) -> None:
        make_file(system_root / "System32" / "wsl.exe")
        git_bash = make_file(tmp_path / "Git" / "bin" / "bash.exe")
        resolver = self.resolver_for(
            {"SYSTEMROOT": str(system_root)}, git_bash_paths=[str(git_bash)]
        )

        plan = resolver.resolve("bash", "echo 'hi'")
        assert plan.executable == "wsl.exe"
        assert plan.argv == ("bash", "-lc", "'echo '\\''hi'\\'''")
        assert plan.platform_note is not None
        assert "wsl" in plan.platform_note

    def test_git_bash_when_no_wsl(self, tmp_path: Path, system_root: Path) -> None:
        git_bash = make_file(tmp_path / "Git" / "bin" / "bash.exe")
        resolver = self.resolver_for(
            {"SYSTEMROOT": str(system_root)},
            git_bash_paths=[str(tmp_path / "missing" / "bash.exe"), str(git_bash)],
        )

        plan = resolver.resolve("sh", "ls")
        assert plan.executable == str(git_bash)
        assert plan.argv == ("-lc", "'ls'")
        assert "git-bash" in (plan.platform_note or "")

    def test_path_scan_first_entry_wins(self, tmp_path: Path, system_root: Path) -> None:
        first = make_file(tmp_path / "first" / "bash.exe")
        make_file(tmp_path / "second" / "bash.exe")
        search_path = ";".join(
            ["", str(tmp_path / "empty"), f'"{first.parent}"', str(tmp_path / "second")]
        )
        resolver = self.resolver_for({"SYSTEMROOT": str(system_root), "PATH": search_path})

        plan = resolver.resolve("bash", "true")
        assert plan.executable == str(first)
        assert "path-bash" in (plan.platform_note or "")

    def test_env_names_are_case_insensitive(self, tmp_path: Path, system_root: Path) -> None:
        bash = make_file(tmp_path / "bin" / "bash.exe")
        resolver = self.resolver_for({"SystemRoot": str(system_root), "Path": str(bash.parent)})
        assert resolver.resolve("bash", "true").executable == str(bash)

    def test_no_bash_found(self, system_root: Path) -> None:
        resolver = self.resolver_for({"SYSTEMROOT": str(system_root), "PATH": ""})
        with pytest.raises(UnresolvedShellError) as exc_info:
            resolver.resolve("bash", "echo hi")
        message = str(exc_info.value)
        assert "WSL" in message
        assert "Git for Windows" in message
        assert exc_info.value.shell == "bash"

    def test_find_bash_returns_candidate(self, system_root: Path) -> None:
        make_file(system_root / "System32" / "wsl.exe")
        candidate = self.resolver_for({"SYSTEMROOT": str(system_root)}).find_bash()
        assert candidate is not None
        assert candidate.source == "wsl"
        assert candidate.location.endswith("wsl.exe")


class TestProbes:
    def test_default_chain_order(self) -> None:
        probes = default_bash_probes()
        assert [p.source for p in probes] == ["wsl", "git-bash", "path-bash"]
        assert [p.kind for p in probes] == ["well-known-path", "well-known-path", "path-scan"]

    def test_well_known_path_expands_variables(self, tmp_path: Path) -> None:
        bash = make_file(tmp_path / "tools" / "bash.exe")
        probe = WellKnownPathProbe(source="custom", paths=("${TOOLS}/bash.exe",))
        candidate = probe.find({"TOOLS": str(tmp_path / "tools")})
        assert candidate is not None
        assert candidate.executable == str(bash)

    def test_well_known_path_miss(self, tmp_path: Path) -> None:
        probe = WellKnownPathProbe(source="custom", paths=(str(tmp_path / "nope.exe"),))
        assert probe.find({}) is None

    def test_path_scan_custom_names(self, tmp_path: Path) -> None:
        make_file(tmp_path / "bin" / "bash")
        probe = PathScanProbe(names=("bash.exe", "bash"))
        candidate = probe.find({"PATH": str(tmp_path / "bin")})
        assert candidate is not None
        assert candidate.executable == str(tmp_path / "bin" / "bash")

    def test_resolver_from_config(self, tmp_path: Path) -> None:
        git_bash = make_file(tmp_path / "Git" / "bash.exe")
        config = ExecutionConfig(git_bash_paths=[str(git_bash)])
        resolver = ShellResolver.from_config(
            config, platform="win32", env={"SYSTEMROOT": str(tmp_path)}
        )
        assert resolver.resolve("bash", "true").executable == str(git_bash)

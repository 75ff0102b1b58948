"""Root pytest configuration for all tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from scriptdeck.config import reset_config
from scriptdeck.storage import ScriptStore

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep tests away from the real user config, data dir and log file."""
    monkeypatch.delenv("SCRIPTDECK_LOG", raising=False)
    monkeypatch.delenv("SCRIPTDECK_HOME", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    reset_config()
    yield
    reset_config()


@pytest.fixture
def store(tmp_path: Path) -> ScriptStore:
    """A script store in a fresh directory, defaulting new scripts to sh."""
    return ScriptStore(tmp_path / "scripts", default_shell="sh")

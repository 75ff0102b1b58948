"""Tests for YAML script record storage."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from scriptdeck.config.schema import ScriptsConfig
from scriptdeck.errors import NameConflictError, NotFoundError
from scriptdeck.execution.protocol import ScriptSource
from scriptdeck.execution.shells import ShellKind
from scriptdeck.storage import DEFAULT_NAME, ScriptStore, generate_id


class TestScriptStore:
    def test_implements_script_source(self, store: ScriptStore) -> None:
        assert isinstance(store, ScriptSource)

    def test_empty_store(self, store: ScriptStore) -> None:
        assert store.list() == []
        assert not store.directory.exists()

    def test_save_and_get(self, store: ScriptStore) -> None:
        record = store.save(name="Disk usage", shell="bash", content="df -h\ndu -sh .\n")

        loaded = store.get(record.id)
        assert loaded.name == "Disk usage"
        assert loaded.shell is ShellKind.BASH
        assert loaded.content == "df -h\ndu -sh .\n"
        assert loaded.created_at is not None
        assert (store.directory / f"{record.id}.yaml").exists()

    def test_multiline_content_written_as_block(self, store: ScriptStore) -> None:
        record = store.save(name="Multi", content="echo one\necho two\n")
        text = (store.directory / f"{record.id}.yaml").read_text(encoding="utf-8")
        assert "content: |" in text

    def test_defaults_for_new_script(self, store: ScriptStore) -> None:
        record = store.save(name="   ")
        assert record.name == DEFAULT_NAME
        assert record.shell is ShellKind.SH
        assert record.content == ""

    def test_get_missing(self, store: ScriptStore) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            store.get("missing")
        assert exc_info.value.script_id == "missing"
        assert str(exc_info.value) == "Script not found: missing"

    def test_get_rejects_path_like_ids(self, store: ScriptStore) -> None:
        with pytest.raises(NotFoundError):
            store.get("../escape")
        with pytest.raises(ValueError):
            store.path_for("../escape")

    def test_update_keeps_unspecified_fields(self, store: ScriptStore) -> None:
        record = store.save(name="Backup", shell="sh", content="tar czf b.tgz .")
        updated = store.save(script_id=record.id, content="rsync -a . /backup")

        assert updated.name == "Backup"
        assert updated.shell is ShellKind.SH
        assert updated.content == "rsync -a . /backup"
        assert updated.created_at == record.created_at
        assert updated.updated_at is not None
        assert record.updated_at is not None
        assert updated.updated_at >= record.updated_at

    def test_new_name_conflict_gets_suffix(self, store: ScriptStore) -> None:
        store.save(name="Deploy")
        second = store.save(name="deploy")
        third = store.save(name="Deploy (2)")
        assert second.name == "deploy (2)"
        assert third.name == "Deploy (3)"

    def test_rename_onto_taken_name_fails(self, store: ScriptStore) -> None:
        store.save(name="Build")
        other = store.save(name="Test")

        with pytest.raises(NameConflictError) as exc_info:
            store.save(script_id=other.id, name="BUILD")
        assert exc_info.value.code == "NAME_CONFLICT"
        assert str(exc_info.value) == "A script with that name already exists."
        assert store.get(other.id).name == "Test"

    def test_rename_to_own_name_allowed(self, store: ScriptStore) -> None:
        record = store.save(name="Build")
        assert store.save(script_id=record.id, name="build").name == "build"

    def test_list_newest_first(self, store: ScriptStore) -> None:
        first = store.save(name="First")
        second = store.save(name="Second")
        store.save(script_id=first.id, content="echo again")

        assert [s.id for s in store.list()] == [first.id, second.id]

    def test_list_skips_unreadable_files(self, store: ScriptStore) -> None:
        good = store.save(name="Good")
        (store.directory / "broken.yaml").write_text("{not: [valid", encoding="utf-8")
        (store.directory / "empty.yaml").write_text("", encoding="utf-8")

        assert [s.id for s in store.list()] == [good.id]

    def test_unknown_shell_falls_back_to_default(self, store: ScriptStore) -> None:
        store.directory.mkdir(parents=True)
        (store.directory / "legacy.yaml").write_text(
            yaml.safe_dump({"id": "legacy", "name": "Old", "shell": "zsh", "content": "ls"}),
            encoding="utf-8",
        )
        assert store.get("legacy").shell is ShellKind.SH

    def test_invalid_shell_rejected_on_save(self, store: ScriptStore) -> None:
        with pytest.raises(ValueError):
            store.save(name="Bad", shell="fish")

    def test_find_by_name(self, store: ScriptStore) -> None:
        record = store.save(name="Clean Temp")
        found = store.find_by_name("clean temp")
        assert found is not None
        assert found.id == record.id
        assert store.find_by_name("nope") is None

    def test_delete(self, store: ScriptStore) -> None:
        record = store.save(name="Gone")
        assert store.delete(record.id) is True
        assert store.delete(record.id) is False
        assert not store.exists(record.id)

    def test_no_temp_files_left(self, store: ScriptStore) -> None:
        store.save(name="Atomic", content="echo hi")
        assert not list(store.directory.glob("*.tmp"))
        assert len(list(store.directory.glob("*.yaml"))) == 1

    def test_from_config(self, tmp_path: Path) -> None:
        config = ScriptsConfig(directory=str(tmp_path / "custom"), default_shell="cmd")
        store = ScriptStore.from_config(config)
        assert store.directory == tmp_path / "custom"
        assert store.default_shell is ShellKind.CMD

    def test_from_config_default_directory(self, tmp_path: Path) -> None:
        store = ScriptStore.from_config(ScriptsConfig())
        assert store.directory.parts[-2:] == ("scriptdeck", "scripts")


def test_generate_id_is_unique() -> None:
    ids = {generate_id() for _ in range(100)}
    assert len(ids) == 100
    assert all(len(i) == 12 for i in ids)

"""
Tests for backups

Tests cover:
- Snapshot file naming and content
- Schema validation of snapshots
- Restore
"""
import json
from datetime import datetime

import pytest

from cptwiki.engine import Backuper, Wiki, validate_snapshot
from cptwiki.engine.backup import backup_filename
from cptwiki.exceptions import BackupError

from tests.conftest import make_note


class FixedNow:
    """datetime.now replacement returning queued moments."""

    def __init__(self, *moments):
        self.moments = list(moments)

    def __call__(self):
        if len(self.moments) > 1:
            return self.moments.pop(0)
        return self.moments[0]


@pytest.fixture
def populated(note_wiki):
    note_wiki.submit("note", make_note("First", tags=["a"]), actor=1)
    note_wiki.submit("note", make_note("Second"), actor=2, item_id=1)
    note_wiki.submit("note", make_note("Other"), actor=2)
    note_wiki.delete_item(2, 3, reason_text="duplicate")
    return note_wiki


# =============================================================================
# Writing
# =============================================================================

class TestBackup:
    """Tests for Backuper.backup."""

    def test_filename(self):
        assert backup_filename(datetime(2024, 3, 9, 7, 5, 1)) == "backup_2024_03_09_07_05_01.json"

    def test_writes_valid_snapshot(self, populated, store, tmp_path):
        backuper = Backuper(store, tmp_path / "out", now=FixedNow(datetime(2024, 3, 9, 7, 5, 1)))

        path = backuper.backup()

        assert path == tmp_path / "out" / "backup_2024_03_09_07_05_01.json"
        assert backuper.last_backup == path
        snapshot = json.loads(path.read_text(encoding="utf-8"))
        assert validate_snapshot(snapshot) == []
        assert snapshot["format_version"] == "1.0.0"
        assert snapshot["tables"] == store.dump()

    def test_list_and_latest(self, store, tmp_path):
        backuper = Backuper(store, tmp_path, now=FixedNow(
            datetime(2024, 1, 1, 0, 0, 0),
            datetime(2024, 1, 2, 0, 0, 0),
        ))
        assert backuper.list_backups() == []
        assert backuper.latest_backup() is None
        first = backuper.backup()
        second = backuper.backup()
        assert backuper.list_backups() == [first, second]
        assert backuper.latest_backup() == second

    def test_same_second_backups_are_kept(self, populated, store, tmp_path):
        backuper = Backuper(store, tmp_path, now=FixedNow(datetime(2024, 1, 1, 0, 0, 0)))
        first = backuper.backup()
        first_tables = store.dump()
        populated.submit("note", make_note("Later"), actor=1)

        second = backuper.backup()

        assert first.name == "backup_2024_01_01_00_00_00.json"
        assert second.name == "backup_2024_01_01_00_00_00_1.json"
        assert backuper.last_backup == second
        assert json.loads(first.read_text(encoding="utf-8"))["tables"] == first_tables
        assert backuper.list_backups() == [first, second]
        assert backuper.latest_backup() == second

    def test_is_today_backed_up(self, store, tmp_path):
        backuper = Backuper(store, tmp_path, now=FixedNow(datetime(2024, 5, 1, 12, 0, 0)))
        assert not backuper.is_today_backed_up()
        backuper.backup()
        assert backuper.is_today_backed_up()

    def test_missing_directory_for_listing(self, store, tmp_path):
        assert Backuper(store, tmp_path / "absent").list_backups() == []

    def test_unwritable_location(self, store, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(BackupError):
            Backuper(store, blocker / "sub").backup()

    def test_wiki_without_backup_dir(self, note_registry, store):
        with pytest.raises(BackupError, match="No backup directory"):
            Wiki(note_registry, store).backup()


# =============================================================================
# Validation & Restore
# =============================================================================

class TestRestore:
    """Tests for reading and restoring snapshots."""

    def test_restore_replaces_every_table(self, populated, store, tmp_path):
        path = Backuper(store, tmp_path).backup()
        expected = store.dump()

        populated.submit("note", make_note("Later"), actor=1)
        populated.undelete_item(2, 3)

        Backuper(store, tmp_path).restore(path)

        assert store.dump() == expected
        assert populated.get_item(1).data["title"] == "Second"
        assert populated.items.is_deleted(2)

    def test_invalid_json(self, store, tmp_path):
        path = tmp_path / "backup_broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(BackupError, match="Cannot read"):
            Backuper(store, tmp_path).read(path)

    def test_schema_errors_block_restore(self, populated, store, tmp_path):
        path = Backuper(store, tmp_path).backup()
        snapshot = json.loads(path.read_text(encoding="utf-8"))
        snapshot["tables"]["revisions"][0]["tags"] = "rolled back"
        del snapshot["tables"]["deletion_log"]
        path.write_text(json.dumps(snapshot), encoding="utf-8")
        before = store.dump()

        with pytest.raises(BackupError) as exc_info:
            Backuper(store, tmp_path).restore(path)

        assert len(exc_info.value.details["errors"]) == 2
        assert store.dump() == before

    def test_validate_snapshot_messages(self):
        errors = validate_snapshot({"format_version": "one", "created_at": "now", "tables": {}})
        assert any(e.startswith("format_version:") for e in errors)
        assert any("'items' is a required property" in e for e in errors)

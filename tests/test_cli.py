"""
Tests for the cptwiki CLI

Tests cover:
- compile / default / validate against packs and the built-in catalog
- history, rollback, backup and migrate on a SQLite database
- Exit codes
"""
import json
import logging

import pytest

from cptwiki.cli import ExitCode, main
from cptwiki.engine import Wiki
from cptwiki.schema import build_registry, load_schema_pack
from cptwiki.store import SqliteRowStore


PACK_YAML = """
schema_version: "1.0.0"
shapes:
  NAME:
    code: name TEXTSHORT QUERY;
dynamic:
  song:
    name: Song
    code: |
      names {NAME}[];
      link TEXTSHORT;
    rules:
      - rule: any_non_empty
        params: {fields: [names]}
        message: A song must have a name
  album:
    name: Album
    code: title TEXTSHORT QUERY;
static:
  main_page:
    name: Main Page
    code: text TEXTLONG *;
predefined:
  - class: album
    id: 1
    data: {title: Unsorted}
"""


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    """Keep CLI log handlers from leaking between tests."""
    monkeypatch.setenv("CPTWIKI_LOG_LEVEL", "WARNING")
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_cptwiki", False):
            root.removeHandler(handler)


@pytest.fixture
def pack_path(tmp_path):
    path = tmp_path / "wiki.yaml"
    path.write_text(PACK_YAML, encoding="utf-8")
    return path


@pytest.fixture
def database(tmp_path, pack_path, monkeypatch):
    """SQLite wiki with the album 'Drafts' (id 3) created by actor 5."""
    db_path = tmp_path / "wiki.sqlite3"
    monkeypatch.setenv("CPTWIKI_DB_PATH", str(db_path))
    monkeypatch.setenv("CPTWIKI_SCHEMA_PACK", str(pack_path))
    monkeypatch.setenv("CPTWIKI_BACKUP_DIR", str(tmp_path / "backups"))

    wiki = Wiki(build_registry(load_schema_pack(pack_path)), SqliteRowStore(db_path))
    wiki.initialize()
    wiki.submit("album", {"title": "Drafts"}, actor=5)
    wiki.submit("album", {"title": "Drafts II"}, actor=5, item_id=3)
    wiki.close()
    return db_path


def reopen(db_path, pack_path):
    return Wiki(build_registry(load_schema_pack(pack_path)), SqliteRowStore(db_path))


def write_json(tmp_path, data, name="record.json"):
    path = tmp_path / name
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


# =============================================================================
# Schema Commands
# =============================================================================

class TestSchemaCommands:
    """Tests for compile, default and validate."""

    def test_no_command(self, capsys):
        assert main([]) == ExitCode.INPUT_INVALID

    def test_compile_pack(self, pack_path, capsys):
        assert main(["compile", "--pack", str(pack_path)]) == ExitCode.OK
        out = capsys.readouterr().out
        assert "Schema compiled" in out
        assert "album, song" in out
        assert "main_page" in out

    def test_compile_catalog(self, capsys):
        assert main(["compile"]) == ExitCode.OK
        assert "song" in capsys.readouterr().out

    def test_compile_broken_pack(self, tmp_path, capsys):
        path = tmp_path / "broken.yaml"
        path.write_text("dynamic: {song: {code: 'names {MISSING}[];'}}\n", encoding="utf-8")
        assert main(["compile", "--pack", str(path)]) == ExitCode.PACK_ERROR
        assert "Schema error" in capsys.readouterr().err

    def test_default(self, pack_path, capsys):
        assert main(["default", "album", "--pack", str(pack_path)]) == ExitCode.OK
        assert json.loads(capsys.readouterr().out) == {"title": None}

    def test_default_unknown_class(self, pack_path, capsys):
        assert main(["default", "poster", "--pack", str(pack_path)]) == ExitCode.INPUT_INVALID

    def test_validate_invalid_record(self, pack_path, tmp_path, capsys):
        record = write_json(tmp_path, {"names": [], "link": None})
        code = main(["validate", "song", "--data", record, "--pack", str(pack_path)])
        assert code == ExitCode.VALIDATION_FAILED
        assert "A song must have a name" in capsys.readouterr().out

    def test_validate_valid_record(self, pack_path, tmp_path, capsys):
        record = write_json(tmp_path, {"names": [{"id": "n0", "value": {"name": "Theme"}}], "link": None})
        assert main(["validate", "song", "--data", record, "--pack", str(pack_path)]) == ExitCode.OK

    def test_validate_missing_file(self, pack_path, tmp_path, capsys):
        code = main(["validate", "song", "--data", str(tmp_path / "absent.json"), "--pack", str(pack_path)])
        assert code == ExitCode.INPUT_INVALID

    def test_validate_bad_json(self, pack_path, tmp_path, capsys):
        path = tmp_path / "record.json"
        path.write_text("{", encoding="utf-8")
        code = main(["validate", "song", "--data", str(path), "--pack", str(pack_path)])
        assert code == ExitCode.INPUT_INVALID

    def test_bad_environment(self, monkeypatch, capsys):
        monkeypatch.setenv("CPTWIKI_LOG_LEVEL", "LOUD")
        assert main(["compile"]) == ExitCode.INPUT_INVALID
        assert "CPTWIKI_LOG_LEVEL" in capsys.readouterr().err


# =============================================================================
# Database Commands
# =============================================================================

class TestDatabaseCommands:
    """Tests for history, rollback, backup and migrate."""

    def test_history(self, database, capsys):
        assert main(["history", "3"]) == ExitCode.OK
        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 2
        assert "actor=5" in lines[0]
        assert "created" in lines[0]

    def test_history_of_static_item(self, database, capsys):
        assert main(["history", "2"]) == ExitCode.OK
        assert "has no revisions" in capsys.readouterr().out

    def test_rollback_deletes_created_item(self, database, pack_path, capsys):
        assert main(["rollback", "3", "--actor", "9"]) == ExitCode.OK
        assert "deleted by rollback" in capsys.readouterr().out
        wiki = reopen(database, pack_path)
        assert wiki.items.is_deleted(3)
        wiki.close()

    def test_rollback_missing_item(self, database, capsys):
        assert main(["rollback", "999", "--actor", "9"]) == ExitCode.REJECTED
        assert "CW_ITEM_NOT_FOUND" in capsys.readouterr().err

    def test_backup(self, database, tmp_path, capsys):
        target = tmp_path / "elsewhere"
        assert main(["backup", "--backup-dir", str(target)]) == ExitCode.OK
        assert len(list(target.glob("backup_*.json"))) == 1

    def test_migrate_item(self, database, tmp_path, pack_path, capsys):
        code = main(["migrate", "--item", "3", "--transform", "identity"])
        assert code == ExitCode.OK
        assert "Item 3 migrated" in capsys.readouterr().out
        assert list((tmp_path / "backups").glob("backup_*.json"))
        wiki = reopen(database, pack_path)
        assert wiki.get_item(3).data == {"title": "Drafts II"}
        wiki.close()

    def test_migrate_all(self, database, capsys):
        assert main(["migrate", "--all", "--transform", "wrap_array_elements"]) == ExitCode.OK
        assert "Migrated" in capsys.readouterr().out

    def test_migrate_unknown_transform(self, database, capsys):
        assert main(["migrate", "--all", "--transform", "nope"]) == ExitCode.INPUT_INVALID

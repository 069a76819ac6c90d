"""
Tests for retro-migration

Tests cover:
- Backup requirement
- Identity migration leaves the store untouched
- Custom transforms rewrite every version
- wrap_array_elements on legacy bare arrays
- Consistency checks (nothing written on failure)
- Batch migration reports
"""
import pytest

from cptwiki.engine import Wiki
from cptwiki.engine.migration import MigrationStep, identity, wrap_array_elements
from cptwiki.exceptions import BackupRequiredError, ConsistencyViolation
from cptwiki.models import ITEMS_TABLE

from tests.conftest import make_note, make_record, make_registry


ALICE = 1
BOB = 2


def upper_title(step: MigrationStep):
    data = step.current
    if data.get("title"):
        data["title"] = data["title"].upper()
    return data


@pytest.fixture
def history(note_wiki):
    note_wiki.submit("note", make_note("one", tags=["a"]), actor=ALICE)
    note_wiki.submit("note", make_note("two", tags=["a", "b"]), actor=BOB, item_id=1)
    note_wiki.submit("note", make_note("other"), actor=BOB)
    return note_wiki


# =============================================================================
# Single Item
# =============================================================================

class TestMigrate:
    """Tests for RetroMigration.migrate."""

    def test_requires_backup(self, history):
        with pytest.raises(BackupRequiredError):
            history.migrate(1, identity)

    def test_identity_is_a_no_op(self, history, store):
        history.backup()
        before = store.dump()
        versions = history.migrate(1, identity)
        assert store.dump() == before
        assert versions[-1] == history.get_item(1).data

    def test_versions_start_at_default(self, history, note_registry):
        versions = history.migration.all_versions(1)
        assert versions == [
            note_registry.get_default("note"),
            make_note("one", tags=["a"]),
            make_note("two", tags=["a", "b"]),
        ]

    def test_transform_rewrites_every_version(self, history):
        history.backup()
        history.migrate(1, upper_title)
        assert history.get_item(1).data["title"] == "TWO"
        assert history.get_item(1).search_text == "TWO"
        assert history.reconstruct_at(1)["title"] == "ONE"
        assert history.revisions.get_revision(2).patch["title"] == ["ONE", "TWO"]
        assert history.get_item(2).data["title"] == "other"

    def test_transform_receives_previous_versions(self, history):
        seen = []

        def record(step):
            seen.append((step.previous_unmodified["title"], step.previous_modified["title"], step.class_name))
            return upper_title(step)

        history.backup()
        history.migrate(1, record)
        assert seen == [(None, None, "note"), ("one", "ONE", "note")]

    def test_deleted_items_are_migrated(self, history):
        history.delete_item(1, BOB)
        history.backup()
        history.migrate(1, upper_title)
        assert history.items.find_deleted_row(1).data["title"] == "TWO"

    def test_mismatched_history_writes_nothing(self, history, store):
        store.update_by_id(ITEMS_TABLE, 1, {"data": make_note("tampered", tags=["a", "b"])})
        history.backup()
        before = store.dump()
        with pytest.raises(ConsistencyViolation) as exc_info:
            history.migrate(1, upper_title)
        assert exc_info.value.item_id == 1
        assert store.dump() == before

    def test_override_count_mismatch(self, history, note_registry):
        with pytest.raises(ConsistencyViolation, match="cannot describe"):
            history.migration.override(1, [note_registry.get_default("note")])


# =============================================================================
# Wrapping Legacy Arrays
# =============================================================================

class TestWrapArrayElements:
    """Tests for the wrap_array_elements transform."""

    @pytest.fixture
    def legacy(self, note_wiki):
        commit = note_wiki.commit_change
        commit(make_record("note", {"title": "T", "body": None, "tags": ["a"]}), ALICE)
        commit(make_record("note", {"title": "T", "body": None, "tags": ["a", "b"]}, item_id=1), ALICE)
        commit(make_record("note", {"title": "T", "body": None, "tags": ["a", "c"]}, item_id=1), BOB)
        note_wiki.backup()
        return note_wiki

    def test_current_data_becomes_valid(self, legacy):
        assert legacy.validate("note", legacy.get_item(1).data) == [
            "note.tags[0] must be an array element with an id and a value",
            "note.tags[1] must be an array element with an id and a value",
        ]
        legacy.migrate(1, wrap_array_elements)
        data = legacy.get_item(1).data
        assert legacy.validate("note", data) == []
        assert [element["value"] for element in data["tags"]] == ["a", "c"]

    def test_ids_carry_forward_by_index(self, legacy):
        versions = legacy.migrate(1, wrap_array_elements)
        first_id = versions[1]["tags"][0]["id"]
        assert versions[2]["tags"][0]["id"] == first_id
        assert versions[3]["tags"][0]["id"] == first_id
        assert versions[3]["tags"][1]["id"] == versions[2]["tags"][1]["id"]
        assert legacy.reconstruct_at(2) == versions[2]

    def test_value_changes_stay_in_place(self, legacy):
        legacy.migrate(1, wrap_array_elements)
        assert legacy.revisions.get_revision(3).patch == {
            "tags": {"_t": "a", "1": {"value": ["b", "c"]}},
        }

    def test_already_wrapped_elements_are_kept(self, note_wiki):
        note_wiki.submit("note", make_note("T", tags=["x"]), actor=ALICE)
        note_wiki.backup()
        before = note_wiki.get_item(1).data
        note_wiki.migrate(1, wrap_array_elements)
        assert note_wiki.get_item(1).data == before

    def test_nested_matrix(self, store, tmp_path):
        registry = make_registry(
            classes={"board": "rows {CELL}[][];"},
            shapes={"CELL": "labels TEXT[];"},
        )
        wiki = Wiki(registry, store, backup_dir=tmp_path / "backups")
        wiki.commit_change(make_record("board", {"rows": [[{"labels": ["x", "y"]}]]}), ALICE)
        wiki.backup()

        wiki.migrate(1, wrap_array_elements)

        data = wiki.get_item(1).data
        assert wiki.validate("board", data) == []
        cell = data["rows"][0]["value"][0]["value"]
        assert [label["value"] for label in cell["labels"]] == ["x", "y"]


# =============================================================================
# Batch
# =============================================================================

class TestMigrateAll:
    """Tests for migrate_all."""

    def test_backs_up_and_migrates_everything(self, history):
        report = history.migrate_all(upper_title)
        assert report.ok
        assert report.migrated == [1, 2]
        assert report.backup.exists()
        assert history.get_item(2).data["title"] == "OTHER"

    def test_failed_item_is_skipped(self, history, store):
        store.update_by_id(ITEMS_TABLE, 1, {"data": make_note("tampered")})
        report = history.migrate_all(upper_title)
        assert not report.ok
        assert report.migrated == [2]
        assert set(report.failed) == {1}
        assert history.get_item(1).data["title"] == "tampered"

    def test_class_filter(self, song_wiki):
        song_wiki.submit("author", {"name": "chris", "bio": None}, actor=ALICE)
        report = song_wiki.migrate_all(identity, class_names=["main_page"])
        assert report.migrated == [song_wiki.get_static_item("main_page").id]

    def test_without_backup_dir(self, note_registry, store):
        wiki = Wiki(note_registry, store)
        with pytest.raises(BackupRequiredError):
            wiki.migrate_all(identity)

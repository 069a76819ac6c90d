"""
Tests for the item store

Tests cover:
- Soft deletion and undeletion
- Referential integrity
- Static items
- Name search
"""
import pytest

from cptwiki.exceptions import ItemNotFoundError, ReferencedItemError, StaticItemError
from cptwiki.models import DeletionReason

from tests.conftest import make_song


ALICE = 1
MOD = 9


@pytest.fixture
def authored(song_wiki):
    """Author 'Chris' (referenced by one song) and an unreferenced author."""
    chris = song_wiki.submit("author", {"name": "Chris Brown", "bio": None}, actor=ALICE).item_id
    other = song_wiki.submit("author", {"name": "Jeff", "bio": None}, actor=ALICE).item_id
    song = song_wiki.submit("song", make_song("Main Theme", authors=[chris]), actor=ALICE).item_id
    return song_wiki, chris, other, song


# =============================================================================
# Initialization
# =============================================================================

class TestInitialize:
    """Tests for seeding predefined and static items."""

    def test_predefined_item_keeps_its_id(self, song_wiki):
        row = song_wiki.get_item(1)
        assert row.cls == "author"
        assert row.predefined is True
        assert row.data == {"name": "Unknown", "bio": None}
        assert song_wiki.list_revisions(1)[0].is_creation

    def test_static_row_seeded(self, song_wiki):
        row = song_wiki.get_static_item("main_page")
        assert row.data == {"text": None}
        assert row.search_text is None
        assert song_wiki.list_revisions(row.id) == []

    def test_initialize_is_idempotent(self, song_wiki, store):
        assert song_wiki.initialize() == []
        assert len(store.select_all("items")) == 2

    def test_deleted_predefined_item_is_not_recreated(self, song_wiki):
        song_wiki.delete_item(1, MOD)
        assert song_wiki.initialize() == []
        assert song_wiki.items.is_deleted(1)


# =============================================================================
# Deletion
# =============================================================================

class TestDeletion:
    """Tests for delete_item and undelete_item."""

    def test_delete_moves_row(self, authored):
        wiki, _, other, _ = authored
        before = wiki.get_item(other)

        entry = wiki.delete_item(other, MOD, DeletionReason.VANDALISM, "bad")

        assert entry.is_deletion
        assert entry.reason_code == DeletionReason.VANDALISM
        assert entry.cls == "author"
        assert wiki.items.find_row(other) is None
        assert wiki.items.find_deleted_row(other) == before

    def test_delete_keeps_revisions(self, authored):
        wiki, _, other, _ = authored
        revisions = wiki.list_revisions(other)
        wiki.delete_item(other, MOD)
        assert wiki.list_revisions(other) == revisions

    def test_delete_twice(self, authored):
        wiki, _, other, _ = authored
        wiki.delete_item(other, MOD)
        with pytest.raises(ItemNotFoundError):
            wiki.delete_item(other, MOD)

    def test_referenced_item_cannot_be_deleted(self, authored):
        wiki, chris, _, song = authored
        with pytest.raises(ReferencedItemError) as exc_info:
            wiki.delete_item(chris, MOD)
        assert exc_info.value.details["references"] == [
            {"class": "song", "name": "Main Theme", "item_id": song},
        ]
        assert wiki.get_item(chris)

    def test_deleting_the_referrer_frees_the_target(self, authored):
        wiki, chris, _, song = authored
        wiki.delete_item(song, MOD)
        wiki.delete_item(chris, MOD)
        assert wiki.items.is_deleted(chris)

    def test_static_item_cannot_be_deleted(self, song_wiki):
        static_id = song_wiki.get_static_item("main_page").id
        with pytest.raises(StaticItemError):
            song_wiki.delete_item(static_id, MOD)

    def test_undelete(self, authored):
        wiki, _, other, _ = authored
        wiki.delete_item(other, MOD)

        entry = wiki.undelete_item(other, MOD, "mistake")

        assert not entry.is_deletion
        assert entry.reason_text == "mistake"
        assert wiki.get_item(other).data["name"] == "Jeff"
        assert not wiki.items.is_deleted(other)

    def test_undelete_live_item(self, authored):
        wiki, _, other, _ = authored
        with pytest.raises(ItemNotFoundError, match="is not deleted"):
            wiki.undelete_item(other, MOD)

    def test_deleted_ids_are_not_reused(self, authored):
        wiki, _, other, song = authored
        wiki.delete_item(other, MOD)
        new_id = wiki.submit("author", {"name": "New", "bio": None}, actor=ALICE).item_id
        assert new_id == song + 1

    def test_deletion_log(self, authored):
        wiki, _, other, _ = authored
        wiki.delete_item(other, MOD)
        wiki.undelete_item(other, MOD)
        log = wiki.items.deletion_log(other)
        assert [entry.is_deletion for entry in log] == [True, False]
        assert len(wiki.items.deletion_log()) == 2


# =============================================================================
# References
# =============================================================================

class TestReferences:
    """Tests for find_referencing_items."""

    def test_referencing_items(self, authored):
        wiki, chris, other, song = authored
        references = wiki.find_referencing_items(chris)
        assert len(references) == 1
        assert references[0].class_name == "song"
        assert references[0].display_name == "Main Theme"
        assert references[0].item_id == song
        assert wiki.find_referencing_items(other) == []

    def test_display_name_falls_back_to_unofficial_name(self, song_wiki):
        chris = song_wiki.submit("author", {"name": "Chris", "bio": None}, actor=ALICE).item_id
        song = song_wiki.submit(
            "song", make_song(unofficial=["Tune"], authors=[chris]), actor=ALICE,
        ).item_id
        assert song_wiki.find_referencing_items(chris)[0].display_name == "Tune"
        song_wiki.delete_item(song, MOD)
        assert song_wiki.find_referencing_items(chris) == []

    def test_missing_item(self, song_wiki):
        with pytest.raises(ItemNotFoundError):
            song_wiki.find_referencing_items(999)


# =============================================================================
# Search
# =============================================================================

class TestSearch:
    """Tests for name search."""

    def test_case_insensitive_substring(self, authored):
        wiki, chris, _, _ = authored
        matches = wiki.search_by_name("author", "brown")
        assert [(m.item_id, m.name) for m in matches] == [(chris, "Chris Brown")]

    def test_first_matching_word(self, song_wiki):
        song = song_wiki.submit("song", make_song("Main Theme", "Theme Remix"), actor=ALICE).item_id
        matches = song_wiki.search_by_name("song", "remix")
        assert [(m.item_id, m.name) for m in matches] == [(song, "Theme Remix")]

    def test_deleted_items_on_request(self, authored):
        wiki, _, other, _ = authored
        wiki.delete_item(other, MOD)
        assert wiki.search_by_name("author", "jeff") == []
        matches = wiki.search_by_name("author", "jeff", include_deleted=True)
        assert [(m.item_id, m.deleted) for m in matches] == [(other, True)]

    def test_get_name(self, authored):
        wiki, chris, _, song = authored
        assert wiki.items.get_name(chris) == "Chris Brown"
        assert wiki.items.get_name(song) == "Main Theme"

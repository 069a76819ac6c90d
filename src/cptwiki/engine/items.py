"""
cptwiki Item Store

Item rows on top of the row store: lookups, name search, referential
integrity and soft deletion.

Deleting an item moves its row, under the same id, from ``items`` to
``deleted_items`` and appends a deletion-log entry; undeleting moves it back.
Revisions are untouched by either.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..exceptions import ItemNotFoundError, ReferencedItemError, StaticItemError
from ..models import (
    DELETED_ITEMS_TABLE,
    DELETION_LOG_TABLE,
    ITEMS_TABLE,
    DeletionLogRow,
    DeletionReason,
    ItemRow,
    now_ms,
)
from ..schema.paths import travel
from ..schema.registry import SchemaRegistry, split_search_text
from ..store import RowStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemReference:
    """An item that holds a reference to another item."""
    class_name: str
    display_name: str
    item_id: int


@dataclass(frozen=True)
class NameMatch:
    """Result of a name search."""
    item_id: int
    name: str
    deleted: bool = False


class ItemStore:
    """
    Item rows and their deletion lifecycle.

    Usage:
        items = ItemStore(store, registry)
        row = items.get_row(42)
        items.delete_item(42, actor=7, reason_code=DeletionReason.SPAM)
    """

    def __init__(
        self,
        store: RowStore,
        registry: SchemaRegistry,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.registry = registry
        self.clock = clock

    # =========================================================================
    # Reads
    # =========================================================================

    def find_row(self, item_id: int) -> Optional[ItemRow]:
        row = self.store.select_by_id(ITEMS_TABLE, item_id)
        return ItemRow.from_row(row) if row is not None else None

    def find_deleted_row(self, item_id: int) -> Optional[ItemRow]:
        row = self.store.select_by_id(DELETED_ITEMS_TABLE, item_id)
        return ItemRow.from_row(row) if row is not None else None

    def get_row(self, item_id: int) -> ItemRow:
        """
        Raises:
            ItemNotFoundError: If the item does not exist or is deleted
        """
        row = self.find_row(item_id)
        if row is None:
            raise ItemNotFoundError(
                message=f"Item {item_id} not found",
                details={"item_id": item_id, "deleted": self.is_deleted(item_id)},
            )
        return row

    def get_any_row(self, item_id: int) -> ItemRow:
        """Row of an item whether or not it is deleted."""
        row = self.find_row(item_id) or self.find_deleted_row(item_id)
        if row is None:
            raise ItemNotFoundError(
                message=f"Item {item_id} not found",
                details={"item_id": item_id},
            )
        return row

    def is_deleted(self, item_id: int) -> bool:
        return self.store.select_by_id(DELETED_ITEMS_TABLE, item_id) is not None

    def get_static_row(self, class_name: str) -> ItemRow:
        """Row holding the single instance of a static class."""
        self.registry.get_class(class_name)
        rows = self.store.select_by_predicate(ITEMS_TABLE, cls=class_name)
        if not rows:
            raise ItemNotFoundError(
                message=f"Static item '{class_name}' has not been initialized",
                details={"class": class_name},
            )
        return ItemRow.from_row(rows[0])

    def list_items(self, class_name: str) -> list[ItemRow]:
        self.registry.get_class(class_name)
        return [ItemRow.from_row(row) for row in self.store.select_by_predicate(ITEMS_TABLE, cls=class_name)]

    def get_name(self, item_id: int) -> Optional[str]:
        """First query word of an item (deleted items included)."""
        row = self.get_any_row(item_id)
        words = split_search_text(row.search_text)
        return words[0] if words else None

    def search_by_name(
        self,
        class_name: str,
        keyword: str,
        include_deleted: bool = False,
    ) -> list[NameMatch]:
        """
        Items of a class with a query word containing ``keyword``
        (case-insensitive), each with the first word that matched.
        """
        self.registry.get_class(class_name)
        needle = keyword.casefold()
        tables = [(ITEMS_TABLE, False)]
        if include_deleted:
            tables.append((DELETED_ITEMS_TABLE, True))

        matches = []
        for table, deleted in tables:
            for row in self.store.select_by_predicate(table, cls=class_name):
                for word in split_search_text(row.get("search_text")):
                    if needle in word.casefold():
                        matches.append(NameMatch(item_id=row["id"], name=word, deleted=deleted))
                        break
        return sorted(matches, key=lambda m: m.item_id)

    # =========================================================================
    # Writes
    # =========================================================================

    def next_item_id(self) -> int:
        """Smallest id above every live and deleted item."""
        return max(self.store.max_id(ITEMS_TABLE), self.store.max_id(DELETED_ITEMS_TABLE)) + 1

    def insert(
        self,
        class_name: str,
        data: dict[str, Any],
        item_id: Optional[int] = None,
        predefined: bool = False,
    ) -> ItemRow:
        row = ItemRow(
            id=item_id if item_id is not None else self.next_item_id(),
            cls=class_name,
            data=data,
            search_text=self.registry.search_text(class_name, data),
            predefined=predefined,
        )
        self.store.create_row(ITEMS_TABLE, row.to_row())
        return row

    def update_data(self, item_id: int, data: dict[str, Any]) -> ItemRow:
        """Replace an item's data and search text (deleted items included)."""
        row = self.get_any_row(item_id)
        row.data = data
        row.search_text = self.registry.search_text(row.cls, data)
        table = DELETED_ITEMS_TABLE if self.is_deleted(item_id) else ITEMS_TABLE
        self.store.update_by_id(table, item_id, {"data": row.data, "search_text": row.search_text})
        return row

    def seed_static_items(self) -> list[ItemRow]:
        """Create the row of every static class that has none yet."""
        created = []
        for key in self.registry.static_classes:
            if self.store.select_by_predicate(ITEMS_TABLE, cls=key):
                continue
            created.append(self.insert(key, self.registry.get_default(key)))
            logger.info("Seeded static item %s", key, extra={"class_name": key})
        return created

    # =========================================================================
    # Referential Integrity
    # =========================================================================

    def find_referencing_items(self, item_id: int) -> list[ItemReference]:
        """Live items other than ``item_id`` whose Reference fields hold its id."""
        target = self.get_any_row(item_id)
        references = []
        for source_class, paths in self.registry.reference_paths(target.cls).items():
            source = self.registry.get_class(source_class)
            for row in self.store.select_by_predicate(ITEMS_TABLE, cls=source_class):
                if row["id"] == item_id:
                    continue
                if any(item_id in travel(path, row["data"]) for path in paths):
                    words = split_search_text(row.get("search_text"))
                    references.append(ItemReference(
                        class_name=source_class,
                        display_name=words[0] if words else f"{source.name} #{row['id']}",
                        item_id=row["id"],
                    ))
        return references

    # =========================================================================
    # Deletion
    # =========================================================================

    def delete_item(
        self,
        item_id: int,
        actor: Optional[int],
        reason_code: DeletionReason = DeletionReason.OTHER,
        reason_text: Optional[str] = None,
    ) -> DeletionLogRow:
        """
        Move an item to the deleted-items table.

        Raises:
            ItemNotFoundError: If the item does not exist or is deleted
            ReferencedItemError: If other items still reference it
        """
        row = self.get_row(item_id)
        if self.registry.is_static(row.cls):
            raise StaticItemError(
                message=f"Static item '{row.cls}' cannot be deleted",
                details={"class": row.cls, "item_id": item_id},
            )

        references = self.find_referencing_items(item_id)
        if references:
            raise ReferencedItemError(
                message=f"Item {item_id} is referenced by {len(references)} item(s)",
                details={
                    "item_id": item_id,
                    "references": [
                        {"class": r.class_name, "name": r.display_name, "item_id": r.item_id}
                        for r in references
                    ],
                },
            )

        self.store.create_row(DELETED_ITEMS_TABLE, row.to_row())
        self.store.delete_by_id(ITEMS_TABLE, item_id)
        entry = self._log(row.cls, item_id, actor, reason_code, reason_text, is_deletion=True)
        logger.info(
            "Deleted item %d (%s)", item_id, row.cls,
            extra={"item_id": item_id, "class_name": row.cls, "actor": actor},
        )
        return entry

    def undelete_item(
        self,
        item_id: int,
        actor: Optional[int],
        reason_text: Optional[str] = None,
    ) -> DeletionLogRow:
        """
        Move a deleted item back.

        Raises:
            ItemNotFoundError: If the item is not in the deleted-items table
        """
        row = self.find_deleted_row(item_id)
        if row is None:
            raise ItemNotFoundError(
                message=f"Item {item_id} is not deleted",
                details={"item_id": item_id},
            )
        self.store.create_row(ITEMS_TABLE, row.to_row())
        self.store.delete_by_id(DELETED_ITEMS_TABLE, item_id)
        entry = self._log(row.cls, item_id, actor, DeletionReason.OTHER, reason_text, is_deletion=False)
        logger.info(
            "Undeleted item %d (%s)", item_id, row.cls,
            extra={"item_id": item_id, "class_name": row.cls, "actor": actor},
        )
        return entry

    def deletion_log(self, item_id: Optional[int] = None) -> list[DeletionLogRow]:
        if item_id is None:
            rows = self.store.select_all(DELETION_LOG_TABLE)
        else:
            rows = self.store.select_by_predicate(DELETION_LOG_TABLE, item_id=item_id)
        return [DeletionLogRow.from_row(row) for row in rows]

    def _log(
        self,
        class_name: str,
        item_id: int,
        actor: Optional[int],
        reason_code: DeletionReason,
        reason_text: Optional[str],
        is_deletion: bool,
    ) -> DeletionLogRow:
        entry = DeletionLogRow(
            id=None,
            cls=class_name,
            item_id=item_id,
            actor=actor,
            timestamp=self.clock(),
            reason_code=reason_code,
            reason_text=reason_text,
            is_deletion=is_deletion,
        )
        entry.id = self.store.create_row(DELETION_LOG_TABLE, entry.to_row())
        return entry

"""
cptwiki Revision Engine

Append-only history of every item. Each accepted write stores the delta
between the previous record (or the class default, for a creation) and the
new one; the item row always holds the forward application of its whole
delta chain.

Past versions are rebuilt backwards: start from the current record and
unpatch every later revision, newest first.

Writes to one item run under that item's lock. Creations take a separate
lock while they allocate an id.
"""
from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from ..canon import canonical_json_bytes, json_equal
from ..exceptions import (
    ConsistencyViolation,
    ItemNotFoundError,
    RevisionNotFoundError,
    RollbackError,
    StaticItemError,
)
from ..models import (
    REVISIONS_TABLE,
    DeletionReason,
    ItemRow,
    RevisionRow,
    RevisionTag,
    encode_tags,
    now_ms,
)
from ..schema.registry import SchemaRegistry
from ..store import RowStore
from .diffpatch import Delta, DeltaError, diff, unpatch
from .items import ItemStore
from .locks import ItemLocks

logger = logging.getLogger(__name__)


ROLLBACK_REASON = "Rollback"


@dataclass(frozen=True)
class CommitResult:
    """Outcome of a commit. ``revision_id`` is None when nothing changed."""
    item_id: int
    revision_id: Optional[int]
    created: bool = False


@dataclass(frozen=True)
class RollbackResult:
    """Outcome of a rollback."""
    item_id: int
    reverted: tuple[int, ...]
    revision_id: Optional[int] = None
    deleted: bool = False


@dataclass(frozen=True)
class ChangeEntry:
    """One line of the recent-changes list."""
    kind: str  # "revision", "deletion" or "undeletion"
    item_id: int
    class_name: str
    name: Optional[str]
    actor: Optional[int]
    timestamp: int
    revision_id: Optional[int] = None
    is_minor: bool = False
    is_creation: bool = False
    size_delta: Optional[int] = None
    tags: tuple[RevisionTag, ...] = field(default_factory=tuple)
    reason_text: Optional[str] = None


class RevisionEngine:
    """
    Commits, reconstruction, tags and rollback.

    Usage:
        engine = RevisionEngine(store, registry, ItemStore(store, registry))
        result = engine.commit_change(ItemRow(None, "song", data), actor=7)
        engine.reconstruct_at(result.revision_id)
        engine.rollback(result.item_id, actor=1)
    """

    def __init__(
        self,
        store: RowStore,
        registry: SchemaRegistry,
        items: ItemStore,
        locks: Optional[ItemLocks] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.registry = registry
        self.items = items
        self.locks = locks or ItemLocks()
        self.clock = clock
        self._creation_lock = threading.Lock()

    # =========================================================================
    # Reads
    # =========================================================================

    def get_revision(self, revision_id: int) -> RevisionRow:
        row = self.store.select_by_id(REVISIONS_TABLE, revision_id)
        if row is None:
            raise RevisionNotFoundError(
                message=f"Revision {revision_id} not found",
                details={"revision_id": revision_id},
            )
        return RevisionRow.from_row(row)

    def list_revisions(self, item_id: int) -> list[RevisionRow]:
        """Revisions of an item, oldest first."""
        rows = self.store.select_by_predicate(REVISIONS_TABLE, item_id=item_id)
        return sorted((RevisionRow.from_row(row) for row in rows), key=lambda r: r.id)

    def next_revision(self, revision_id: int) -> Optional[int]:
        """Id of the item's revision right after ``revision_id``."""
        revision = self.get_revision(revision_id)
        later = [r.id for r in self.list_revisions(revision.item_id) if r.id > revision_id]
        return min(later) if later else None

    def previous_revision(self, revision_id: int) -> Optional[int]:
        revision = self.get_revision(revision_id)
        earlier = [r.id for r in self.list_revisions(revision.item_id) if r.id < revision_id]
        return max(earlier) if earlier else None

    # =========================================================================
    # Commit
    # =========================================================================

    def commit_change(
        self,
        record: ItemRow,
        actor: Optional[int],
        is_minor: bool = False,
        tags: Iterable[RevisionTag] = (),
    ) -> CommitResult:
        """
        Store ``record.data`` as the item's new state.

        ``record.id`` of None creates a new item (static classes resolve to
        their single row instead). An id that is neither live nor deleted
        creates the item under that id. The record is expected to have been
        validated already.

        Raises:
            ItemNotFoundError: The id belongs to a deleted item or to an
                item of another class
            StaticItemError: Creation of a static item was requested
        """
        class_name = record.cls
        self.registry.get_class(class_name)
        item_id = record.id
        if item_id is None and self.registry.is_static(class_name):
            item_id = self.items.get_static_row(class_name).id

        if item_id is None:
            with self._creation_lock:
                item_id = self.items.next_item_id()
                with self.locks.hold(item_id):
                    return self._create(record, item_id, actor, is_minor, tags)

        with self.locks.hold(item_id):
            current = self.items.find_row(item_id)
            if current is None:
                if self.items.is_deleted(item_id):
                    raise ItemNotFoundError(
                        message=f"Item {item_id} is deleted",
                        details={"item_id": item_id, "deleted": True},
                    )
                return self._create(record, item_id, actor, is_minor, tags)
            if current.cls != class_name:
                raise ItemNotFoundError(
                    message=f"Item {item_id} is not a {class_name}",
                    details={"item_id": item_id, "class": current.cls},
                )
            return self._update(current, record.data, actor, is_minor, tags)

    def _create(
        self,
        record: ItemRow,
        item_id: int,
        actor: Optional[int],
        is_minor: bool,
        tags: Iterable[RevisionTag],
    ) -> CommitResult:
        if self.registry.is_static(record.cls):
            raise StaticItemError(
                message=f"Static item '{record.cls}' cannot be created",
                details={"class": record.cls},
            )
        data = copy.deepcopy(record.data)
        delta = diff(self.registry.get_default(record.cls), data)
        self.items.insert(record.cls, data, item_id=item_id, predefined=record.predefined)
        revision = self._append(item_id, actor, delta, is_minor, True, tags)
        logger.info(
            "Created %s item %d (revision %d)", record.cls, item_id, revision.id,
            extra={"item_id": item_id, "revision_id": revision.id,
                   "class_name": record.cls, "actor": actor},
        )
        return CommitResult(item_id=item_id, revision_id=revision.id, created=True)

    def _update(
        self,
        current: ItemRow,
        data: dict[str, Any],
        actor: Optional[int],
        is_minor: bool,
        tags: Iterable[RevisionTag],
    ) -> CommitResult:
        delta = diff(current.data, data)
        if delta is None:
            logger.debug(
                "Unchanged submission for item %d", current.id,
                extra={"item_id": current.id, "class_name": current.cls, "actor": actor},
            )
            return CommitResult(item_id=current.id, revision_id=None)

        self.items.update_data(current.id, copy.deepcopy(data))
        revision = self._append(current.id, actor, delta, is_minor, False, tags)
        logger.info(
            "Committed revision %d of %s item %d", revision.id, current.cls, current.id,
            extra={"item_id": current.id, "revision_id": revision.id,
                   "class_name": current.cls, "actor": actor},
        )
        return CommitResult(item_id=current.id, revision_id=revision.id)

    def _append(
        self,
        item_id: int,
        actor: Optional[int],
        delta: Optional[Delta],
        is_minor: bool,
        is_creation: bool,
        tags: Iterable[RevisionTag],
    ) -> RevisionRow:
        revision = RevisionRow(
            id=None,
            item_id=item_id,
            actor=actor,
            timestamp=self.clock(),
            patch=delta,
            is_minor=is_minor,
            is_creation=is_creation,
            tags=tuple(tags),
        )
        revision.id = self.store.create_row(REVISIONS_TABLE, revision.to_row())
        return revision

    # =========================================================================
    # Reconstruction
    # =========================================================================

    def reconstruct_at(self, revision_id: int) -> dict[str, Any]:
        """Record as it stood right after ``revision_id``."""
        revision = self.get_revision(revision_id)
        with self.locks.hold(revision.item_id):
            return self._rewind(revision.item_id, lambda r: r.id > revision_id)

    def state_before(self, revision_id: int) -> dict[str, Any]:
        """Record as it stood right before ``revision_id`` (the default for a creation)."""
        revision = self.get_revision(revision_id)
        with self.locks.hold(revision.item_id):
            return self._rewind(revision.item_id, lambda r: r.id >= revision_id)

    def _rewind(self, item_id: int, undo: Callable[[RevisionRow], bool]) -> dict[str, Any]:
        row = self.items.get_any_row(item_id)
        data = copy.deepcopy(row.data)
        for revision in reversed(self.list_revisions(item_id)):
            if undo(revision):
                data = self._undo(data, revision)
        return data

    def _undo(self, data: Any, revision: RevisionRow) -> Any:
        try:
            return unpatch(data, revision.patch)
        except DeltaError as e:
            violation = ConsistencyViolation(
                message=f"Revision {revision.id} does not undo cleanly: {e}",
                details={"item_id": revision.item_id, "revision_id": revision.id},
                item_id=revision.item_id,
                revision_id=revision.id,
            )
            logger.error(
                "Consistency violation on item %d at revision %d: %s",
                revision.item_id, revision.id, e,
                extra={"item_id": revision.item_id, "revision_id": revision.id},
            )
            raise violation from e

    # =========================================================================
    # Sizes & Recent Changes
    # =========================================================================

    def revision_size(self, revision_id: int) -> int:
        """Bytes of canonical JSON of the record right after the revision."""
        return len(canonical_json_bytes(self.reconstruct_at(revision_id)))

    def size_delta(self, revision_id: int) -> int:
        """Change in record size introduced by the revision."""
        before = len(canonical_json_bytes(self.state_before(revision_id)))
        return self.revision_size(revision_id) - before

    def recent_changes(self, since: int = 0, limit: Optional[int] = 50) -> list[ChangeEntry]:
        """Revisions and deletion-log entries at or after ``since``, newest first."""
        entries: list[ChangeEntry] = []
        revisions = self.store.select_by_predicate(
            REVISIONS_TABLE, lambda row: row["timestamp"] >= since,
        )
        for row in revisions:
            revision = RevisionRow.from_row(row)
            item = self.items.get_any_row(revision.item_id)
            entries.append(ChangeEntry(
                kind="revision",
                item_id=revision.item_id,
                class_name=item.cls,
                name=self.items.get_name(revision.item_id),
                actor=revision.actor,
                timestamp=revision.timestamp,
                revision_id=revision.id,
                is_minor=revision.is_minor,
                is_creation=revision.is_creation,
                size_delta=self.size_delta(revision.id),
                tags=revision.tags,
            ))
        for entry in self.items.deletion_log():
            if entry.timestamp < since:
                continue
            entries.append(ChangeEntry(
                kind="deletion" if entry.is_deletion else "undeletion",
                item_id=entry.item_id,
                class_name=entry.cls,
                name=self.items.get_name(entry.item_id),
                actor=entry.actor,
                timestamp=entry.timestamp,
                reason_text=entry.reason_text,
            ))

        entries.sort(key=lambda e: (e.timestamp, e.revision_id or 0), reverse=True)
        return entries if limit is None else entries[:limit]

    # =========================================================================
    # Tags
    # =========================================================================

    def tags_of(self, revision_id: int) -> tuple[RevisionTag, ...]:
        return self.get_revision(revision_id).tags

    def add_tag(self, revision_id: int, tag: RevisionTag) -> tuple[RevisionTag, ...]:
        tags = set(self.tags_of(revision_id)) | {tag}
        return self._write_tags(revision_id, tags)

    def remove_tag(self, revision_id: int, tag: RevisionTag) -> tuple[RevisionTag, ...]:
        tags = set(self.tags_of(revision_id)) - {tag}
        return self._write_tags(revision_id, tags)

    def _write_tags(self, revision_id: int, tags: set[RevisionTag]) -> tuple[RevisionTag, ...]:
        encoded = encode_tags(tags)
        self.store.update_by_id(REVISIONS_TABLE, revision_id, {"tags": encoded})
        return tuple(sorted(tags))

    # =========================================================================
    # Rollback
    # =========================================================================

    def rollback_run(self, item_id: int) -> list[RevisionRow]:
        """
        Revisions a rollback would undo, newest first.

        This is the run of latest revisions by the latest revision's actor,
        or only the latest revision when it is itself a rollback.
        """
        revisions = self.list_revisions(item_id)
        if not revisions:
            raise RollbackError(
                message=f"Item {item_id} has no revisions",
                details={"item_id": item_id},
            )
        latest = revisions[-1]
        if latest.has_tag(RevisionTag.ROLLBACK):
            return [latest]

        run = []
        for revision in reversed(revisions):
            if revision.actor != latest.actor:
                break
            run.append(revision)
        return run

    def rollback(self, item_id: int, actor: Optional[int]) -> RollbackResult:
        """
        Undo the latest run of same-actor revisions of an item.

        A run that reaches the creation deletes the item instead. Otherwise
        the state before the run is committed as a minor revision tagged
        ROLLBACK. Every revision of the run is tagged REVERTED.

        Raises:
            ItemNotFoundError: If the item does not exist or is deleted
            ReferencedItemError: If deleting the item is blocked by references
            RollbackError: If there is nothing to undo
            ConsistencyViolation: If the history does not undo cleanly
        """
        with self.locks.hold(item_id):
            current = self.items.get_row(item_id)
            run = self.rollback_run(item_id)
            reverted = tuple(r.id for r in run)

            if run[-1].is_creation:
                self.items.delete_item(item_id, actor, DeletionReason.OTHER, ROLLBACK_REASON)
                self._tag_reverted(run)
                logger.info(
                    "Rolled back item %d by deletion (%d revisions)", item_id, len(run),
                    extra={"item_id": item_id, "class_name": current.cls, "actor": actor},
                )
                return RollbackResult(item_id=item_id, reverted=reverted, deleted=True)

            data = copy.deepcopy(current.data)
            for revision in run:
                data = self._undo(data, revision)
            if json_equal(data, current.data):
                raise RollbackError(
                    message=f"Rollback of item {item_id} changes nothing",
                    details={"item_id": item_id, "revisions": list(reverted)},
                )

            result = self._update(current, data, actor, True, (RevisionTag.ROLLBACK,))
            self._tag_reverted(run)
            logger.info(
                "Rolled back %d revisions of item %d as revision %d",
                len(run), item_id, result.revision_id,
                extra={"item_id": item_id, "revision_id": result.revision_id,
                       "class_name": current.cls, "actor": actor},
            )
            return RollbackResult(item_id=item_id, reverted=reverted, revision_id=result.revision_id)

    def _tag_reverted(self, run: list[RevisionRow]) -> None:
        for revision in run:
            self.add_tag(revision.id, RevisionTag.REVERTED)

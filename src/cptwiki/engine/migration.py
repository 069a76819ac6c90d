"""
cptwiki Retro-Migration

Rewrites an item's whole history so that a transform applies to every
version it ever had.

    versions      default, v1, v2, ... vN        (forward replay of the deltas)
    transformed   default, t(v1), t(v2), ... t(vN)
    stored        diff(t(v[i-1]), t(v[i])) into revision i, t(vN) into the item

The transform sees the untouched version and the previous transformed one,
so ids minted for an earlier version can be carried forward.

Nothing is written until every version has been transformed and checked.
A migration refuses to run unless the same ``Backuper`` has written a
snapshot first.
"""
from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from ..canon import canonical_json, is_element, json_equal, make_element
from ..exceptions import BackupRequiredError, ConsistencyViolation
from ..models import DELETED_ITEMS_TABLE, ITEMS_TABLE, REVISIONS_TABLE, ObjectStructure, PropertyDescriptor
from ..schema.registry import SchemaRegistry
from ..store import RowStore
from .backup import Backuper
from .diffpatch import DeltaError, diff, patch
from .items import ItemStore
from .revisions import RevisionEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationStep:
    """Arguments handed to a transform for one version."""
    current: Any
    previous_modified: Any
    previous_unmodified: Any
    class_name: str
    structure: ObjectStructure


Transform = Callable[[MigrationStep], Any]


@dataclass
class MigrationReport:
    """Outcome of a batch migration."""
    backup: Optional[Path] = None
    migrated: list[int] = field(default_factory=list)
    failed: dict[int, ConsistencyViolation] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def identity(step: MigrationStep) -> Any:
    return step.current


class RetroMigration:
    """
    Retro-migration of item histories.

    Usage:
        backuper.backup()
        migration = RetroMigration(store, registry, items, revisions, backuper)
        migration.migrate(42, wrap_array_elements)
    """

    def __init__(
        self,
        store: RowStore,
        registry: SchemaRegistry,
        items: ItemStore,
        revisions: RevisionEngine,
        backuper: Optional[Backuper] = None,
    ):
        self.store = store
        self.registry = registry
        self.items = items
        self.revisions = revisions
        self.backuper = backuper

    # =========================================================================
    # Versions
    # =========================================================================

    def all_versions(self, item_id: int) -> list[Any]:
        """
        Every version of an item, from the class default to the current data.

        Raises:
            ConsistencyViolation: If a delta does not replay
        """
        row = self.items.get_any_row(item_id)
        versions = [self.registry.get_default(row.cls)]
        for revision in self.revisions.list_revisions(item_id):
            try:
                versions.append(patch(copy.deepcopy(versions[-1]), revision.patch))
            except DeltaError as e:
                raise self._violation(
                    f"Revision {revision.id} does not replay: {e}",
                    item_id, revision_id=revision.id,
                ) from e
        return versions

    @staticmethod
    def transform_versions(
        versions: list[Any],
        transform: Transform,
        class_name: str,
        structure: ObjectStructure,
    ) -> list[Any]:
        """Apply ``transform`` to every version after the default."""
        transformed = [copy.deepcopy(versions[0])]
        for index in range(1, len(versions)):
            step = MigrationStep(
                current=copy.deepcopy(versions[index]),
                previous_modified=copy.deepcopy(transformed[-1]),
                previous_unmodified=copy.deepcopy(versions[index - 1]),
                class_name=class_name,
                structure=structure,
            )
            transformed.append(transform(step))
        return transformed

    # =========================================================================
    # Migration
    # =========================================================================

    def migrate(self, item_id: int, transform: Transform) -> list[Any]:
        """
        Rewrite the history of one item. Returns the transformed versions.

        Raises:
            BackupRequiredError: If no backup was taken first
            ItemNotFoundError: If the item does not exist
            ConsistencyViolation: If the stored history does not describe the
                current data; nothing is written
        """
        self._require_backup()
        started = time.perf_counter()
        with self.revisions.locks.hold(item_id):
            row = self.items.get_any_row(item_id)
            versions = self.all_versions(item_id)
            if not json_equal(versions[-1], row.data):
                raise self._violation(
                    "Replayed history does not match the current data",
                    item_id,
                    expected=canonical_json(row.data),
                    actual=canonical_json(versions[-1]),
                )

            descriptor = self.registry.get_class(row.cls)
            transformed = self.transform_versions(versions, transform, row.cls, descriptor.structure)
            self.override(item_id, transformed)

        logger.info(
            "Migrated item %d (%d versions)", item_id, len(transformed),
            extra={"item_id": item_id, "class_name": row.cls,
                   "duration_ms": round((time.perf_counter() - started) * 1000, 3)},
        )
        return transformed

    def override(self, item_id: int, versions: list[Any]) -> None:
        """
        Store ``versions`` as the item's history.

        Raises:
            ConsistencyViolation: If the versions cannot describe the
                item's revisions
        """
        revisions = self.revisions.list_revisions(item_id)
        if len(versions) - 1 != len(revisions):
            raise self._violation(
                "Versions given cannot describe the revisions to override",
                item_id,
                expected=len(revisions) + 1,
                actual=len(versions),
            )

        deltas = [diff(versions[i], versions[i + 1]) for i in range(len(revisions))]
        for revision, delta in zip(revisions, deltas):
            self.store.update_by_id(REVISIONS_TABLE, revision.id, {"patch": delta})
        self.items.update_data(item_id, copy.deepcopy(versions[-1]))

    def migrate_all(
        self,
        transform: Transform,
        class_names: Optional[Iterable[str]] = None,
        include_deleted: bool = True,
    ) -> MigrationReport:
        """
        Back up the store, then migrate every item (optionally only some
        classes). A consistency violation skips that item only.
        """
        if self.backuper is None:
            raise BackupRequiredError(message="Batch migration needs a backuper")
        report = MigrationReport(backup=self.backuper.backup())

        wanted = set(class_names) if class_names is not None else None
        tables = [ITEMS_TABLE, DELETED_ITEMS_TABLE] if include_deleted else [ITEMS_TABLE]
        item_ids = sorted(
            row["id"]
            for table in tables
            for row in self.store.select_all(table)
            if wanted is None or row["cls"] in wanted
        )
        for item_id in item_ids:
            try:
                self.migrate(item_id, transform)
            except ConsistencyViolation as e:
                report.failed[item_id] = e
                continue
            report.migrated.append(item_id)

        logger.info(
            "Migration finished: %d migrated, %d failed",
            len(report.migrated), len(report.failed),
        )
        return report

    def _require_backup(self) -> None:
        if self.backuper is None or self.backuper.last_backup is None:
            raise BackupRequiredError(
                message="Retro-migration requires a backup first",
            )

    def _violation(
        self,
        message: str,
        item_id: int,
        revision_id: Optional[int] = None,
        expected: Any = None,
        actual: Any = None,
    ) -> ConsistencyViolation:
        logger.error(
            "Consistency violation on item %d: %s", item_id, message,
            extra={"item_id": item_id, "revision_id": revision_id,
                   "expected": expected, "actual": actual},
        )
        return ConsistencyViolation(
            message=message,
            details={"item_id": item_id},
            item_id=item_id,
            revision_id=revision_id,
            expected=expected,
            actual=actual,
        )


# =============================================================================
# Built-in Transforms
# =============================================================================

def wrap_array_elements(step: MigrationStep) -> Any:
    """
    Wrap bare array values into ``{"id", "value"}`` elements.

    An element at an index that already existed in the previous transformed
    version reuses that element's id; new indices get a fresh id. Elements
    that are already wrapped are kept as they are.
    """
    modified = copy.deepcopy(step.current)
    _wrap_object(step.structure, modified, step.previous_modified)
    return modified


def _wrap_object(structure: ObjectStructure, value: Any, previous: Any) -> None:
    if not isinstance(value, dict):
        return
    previous = previous if isinstance(previous, dict) else {}
    for prop in structure:
        if prop.name not in value:
            continue
        if prop.is_array:
            value[prop.name] = _wrap_array(prop, value[prop.name], previous.get(prop.name), prop.array_depth)
        elif prop.is_object:
            _wrap_object(prop.structure, value[prop.name], previous.get(prop.name))


def _wrap_array(prop: PropertyDescriptor, array: Any, previous: Any, depth: int) -> Any:
    if not isinstance(array, list):
        return array
    previous = previous if isinstance(previous, list) else []

    wrapped = []
    for index, element in enumerate(array):
        before = previous[index] if index < len(previous) else None
        before_value = before["value"] if is_element(before) else None
        if is_element(element):
            value, element_id = element["value"], element["id"]
        else:
            value = element
            element_id = before["id"] if is_element(before) else None

        if depth > 1:
            value = _wrap_array(prop, value, before_value, depth - 1)
        elif prop.is_object:
            _wrap_object(prop.structure, value, before_value)
        wrapped.append(make_element(value, element_id))
    return wrapped


TRANSFORMS: dict[str, Transform] = {
    "identity": identity,
    "wrap_array_elements": wrap_array_elements,
}

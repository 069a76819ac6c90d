"""
cptwiki Facade

Wires the registry, row store and engines together and exposes the
operations the surrounding application calls.

    wiki = Wiki(catalog_registry(), MemoryRowStore(), backup_dir="backups")
    wiki.initialize()
    result = wiki.submit("song", data, actor=7)
    wiki.rollback(result.item_id, actor=1)

Submissions go through the permission filter, then the validator, then the
revision engine.
"""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

from ..catalog import catalog_registry
from ..config import WikiConfig
from ..exceptions import BackupError
from ..models import (
    DeletionLogRow,
    DeletionReason,
    ItemRow,
    RejectionCode,
    RevisionRow,
    RevisionTag,
    now_ms,
)
from ..schema.packs import load_schema_pack
from ..schema.registry import SchemaRegistry, build_registry
from ..store import MemoryRowStore, RowStore, SqliteRowStore
from .backup import Backuper
from .items import ItemReference, ItemStore, NameMatch
from .locks import ItemLocks
from .migration import MigrationReport, RetroMigration, Transform
from .permissions import PermissionFilter, filter_by_permission
from .revisions import ChangeEntry, CommitResult, RevisionEngine, RollbackResult
from .validator import Validator

logger = logging.getLogger(__name__)


class Wiki:
    """
    Versioned item store for one schema registry.

    Usage:
        wiki = Wiki(registry)
        wiki.initialize()
        errors = wiki.validate("song", data)
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        store: Optional[RowStore] = None,
        backup_dir: Optional[Union[str, Path]] = None,
        system_actor: Optional[int] = 0,
        clock: Callable[[], int] = now_ms,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.registry = registry
        self.store = store if store is not None else MemoryRowStore()
        self.system_actor = system_actor
        self.locks = ItemLocks()
        self.items = ItemStore(self.store, registry, clock)
        self.revisions = RevisionEngine(self.store, registry, self.items, self.locks, clock)
        self.validator = Validator(registry)
        self.permissions = PermissionFilter(registry)
        self.backuper = Backuper(self.store, backup_dir, now) if backup_dir is not None else None
        self.migration = RetroMigration(self.store, registry, self.items, self.revisions, self.backuper)

    @classmethod
    def from_config(cls, config: WikiConfig) -> Wiki:
        """Wiki on the SQLite database and schema pack named by a ``WikiConfig``."""
        if config.schema_pack is not None:
            registry = build_registry(load_schema_pack(config.schema_pack))
        else:
            registry = catalog_registry()
        return cls(
            registry,
            SqliteRowStore(config.db_path),
            backup_dir=config.backup_dir,
            system_actor=config.system_actor,
        )

    def initialize(self) -> list[int]:
        """
        Seed predefined items and static items that do not exist yet.
        Returns the ids of the created rows.

        Predefined items go first so their fixed ids are never taken by a
        static row.
        """
        created = []
        for item in self.registry.predefined:
            if self.items.find_row(item.item_id) or self.items.is_deleted(item.item_id):
                continue
            data = self.registry.get_default(item.class_name)
            data.update(item.data)
            self.validator.ensure_valid(item.class_name, data)
            record = ItemRow(id=item.item_id, cls=item.class_name, data=data, predefined=True)
            self.revisions.commit_change(record, self.system_actor)
            created.append(item.item_id)
        created.extend(row.id for row in self.items.seed_static_items())
        logger.info("Initialized wiki (%d rows created)", len(created))
        return created

    # =========================================================================
    # Schema
    # =========================================================================

    def get_default(self, class_name: str) -> dict[str, Any]:
        return self.registry.get_default(class_name)

    def validate(self, class_name: str, data: Any) -> list[str]:
        return self.validator.validate(class_name, data)

    def filter_by_permission(
        self,
        class_name: str,
        submitted: Any,
        existing: Optional[dict[str, Any]],
        is_privileged: bool,
    ) -> Union[Any, RejectionCode]:
        return filter_by_permission(self.registry, class_name, submitted, existing, is_privileged)

    # =========================================================================
    # Writes
    # =========================================================================

    def submit(
        self,
        class_name: str,
        data: Any,
        actor: Optional[int],
        item_id: Optional[int] = None,
        is_privileged: bool = True,
        is_minor: bool = False,
    ) -> CommitResult:
        """
        Filter, validate and commit a submission.

        Raises:
            PermissionRejection: If a restricted actor's submission is refused
            ValidationFailure: If the merged record is invalid
            ItemNotFoundError: If ``item_id`` names no live item
        """
        if item_id is not None:
            existing = self.items.get_row(item_id)
        elif self.registry.is_static(class_name):
            existing = self.items.get_static_row(class_name)
        else:
            existing = None

        merged = self.permissions.merge(
            class_name,
            data,
            existing.data if existing is not None else None,
            is_privileged,
        )
        self.validator.ensure_valid(class_name, merged)
        record = ItemRow(id=existing.id if existing is not None else None, cls=class_name, data=merged)
        return self.revisions.commit_change(record, actor, is_minor)

    def commit_change(
        self,
        record: ItemRow,
        actor: Optional[int],
        is_minor: bool = False,
        tags: Iterable[RevisionTag] = (),
    ) -> CommitResult:
        return self.revisions.commit_change(record, actor, is_minor, tags)

    def rollback(self, item_id: int, actor: Optional[int]) -> RollbackResult:
        return self.revisions.rollback(item_id, actor)

    def delete_item(
        self,
        item_id: int,
        actor: Optional[int],
        reason_code: DeletionReason = DeletionReason.OTHER,
        reason_text: Optional[str] = None,
    ) -> DeletionLogRow:
        with self.locks.hold(item_id):
            return self.items.delete_item(item_id, actor, reason_code, reason_text)

    def undelete_item(self, item_id: int, actor: Optional[int], reason_text: Optional[str] = None) -> DeletionLogRow:
        with self.locks.hold(item_id):
            return self.items.undelete_item(item_id, actor, reason_text)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_item(self, item_id: int) -> ItemRow:
        return self.items.get_row(item_id)

    def get_static_item(self, class_name: str) -> ItemRow:
        return self.items.get_static_row(class_name)

    def search_by_name(self, class_name: str, keyword: str, include_deleted: bool = False) -> list[NameMatch]:
        return self.items.search_by_name(class_name, keyword, include_deleted)

    def find_referencing_items(self, item_id: int) -> list[ItemReference]:
        return self.items.find_referencing_items(item_id)

    def list_revisions(self, item_id: int) -> list[RevisionRow]:
        return self.revisions.list_revisions(item_id)

    def reconstruct_at(self, revision_id: int) -> dict[str, Any]:
        return self.revisions.reconstruct_at(revision_id)

    def recent_changes(self, since: int = 0, limit: Optional[int] = 50) -> list[ChangeEntry]:
        return self.revisions.recent_changes(since, limit)

    # =========================================================================
    # Maintenance
    # =========================================================================

    def backup(self) -> Path:
        if self.backuper is None:
            raise BackupError(message="No backup directory configured")
        return self.backuper.backup()

    def migrate(self, item_id: int, transform: Transform) -> list[Any]:
        return self.migration.migrate(item_id, transform)

    def migrate_all(self, transform: Transform, class_names: Optional[Iterable[str]] = None) -> MigrationReport:
        return self.migration.migrate_all(transform, class_names)

    def close(self) -> None:
        self.store.close()

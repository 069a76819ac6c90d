"""
cptwiki Engine

Validation, permission filtering, structural deltas, revisions, items,
retro-migration and backups, wired together by ``Wiki``.
"""
from __future__ import annotations

from .diffpatch import DeltaError, apply_all, diff, patch, unpatch
from .validator import Validator, validate
from .permissions import PermissionFilter, filter_by_permission
from .locks import ItemLocks
from .items import ItemReference, ItemStore, NameMatch
from .revisions import ChangeEntry, CommitResult, RevisionEngine, RollbackResult
from .backup import Backuper, validate_snapshot
from .migration import (
    TRANSFORMS,
    MigrationReport,
    MigrationStep,
    RetroMigration,
    identity,
    wrap_array_elements,
)
from .wiki import Wiki

__all__ = [
    # Deltas
    "DeltaError",
    "apply_all",
    "diff",
    "patch",
    "unpatch",
    # Validation
    "Validator",
    "validate",
    "PermissionFilter",
    "filter_by_permission",
    # Items & revisions
    "ItemLocks",
    "ItemReference",
    "ItemStore",
    "NameMatch",
    "ChangeEntry",
    "CommitResult",
    "RevisionEngine",
    "RollbackResult",
    # Maintenance
    "Backuper",
    "validate_snapshot",
    "TRANSFORMS",
    "MigrationReport",
    "MigrationStep",
    "RetroMigration",
    "identity",
    "wrap_array_elements",
    # Facade
    "Wiki",
]

"""
cptwiki - Schema-compiled versioned records for a music wiki

Item classes are declared in CPT, a small schema language, compiled into a
registry, and stored as records whose every change is kept as a structural
delta.

    from cptwiki import Wiki, catalog_registry

    wiki = Wiki(catalog_registry())
    wiki.initialize()
    result = wiki.submit("author", {"name": "Chris Brown"}, actor=7)
"""
from __future__ import annotations

__version__ = "0.1.0"

from .exceptions import (
    BackupError,
    BackupRequiredError,
    CompileError,
    ConfigError,
    ConsistencyViolation,
    CptWikiError,
    CreationNotAllowedError,
    ItemNotFoundError,
    MalformedSubmissionError,
    PathNotFoundError,
    PermissionRejection,
    ReferencedItemError,
    RevisionNotFoundError,
    RollbackError,
    SchemaPackError,
    StaticItemError,
    UnknownClassError,
    ValidationFailure,
)
from .models import (
    ClassDescriptor,
    DeletionReason,
    ItemRow,
    ObjectStructure,
    PrimitiveKind,
    PropertyDescriptor,
    RejectionCode,
    RevisionTag,
)
from .schema import (
    SchemaRegistry,
    build_registry,
    compile_schema,
    load_schema_pack,
)
from .catalog import catalog_registry, load_catalog
from .store import MemoryRowStore, RowStore, SqliteRowStore
from .engine import (
    Backuper,
    RetroMigration,
    RevisionEngine,
    Validator,
    Wiki,
    filter_by_permission,
    validate,
    wrap_array_elements,
)
from .config import WikiConfig, load_config
from .logging_config import configure_logging

__all__ = [
    "__version__",
    # Errors
    "BackupError",
    "BackupRequiredError",
    "CompileError",
    "ConfigError",
    "ConsistencyViolation",
    "CptWikiError",
    "CreationNotAllowedError",
    "ItemNotFoundError",
    "MalformedSubmissionError",
    "PathNotFoundError",
    "PermissionRejection",
    "ReferencedItemError",
    "RevisionNotFoundError",
    "RollbackError",
    "SchemaPackError",
    "StaticItemError",
    "UnknownClassError",
    "ValidationFailure",
    # Models
    "ClassDescriptor",
    "DeletionReason",
    "ItemRow",
    "ObjectStructure",
    "PrimitiveKind",
    "PropertyDescriptor",
    "RejectionCode",
    "RevisionTag",
    # Schema
    "SchemaRegistry",
    "build_registry",
    "compile_schema",
    "load_schema_pack",
    "catalog_registry",
    "load_catalog",
    # Stores
    "MemoryRowStore",
    "RowStore",
    "SqliteRowStore",
    # Engine
    "Backuper",
    "RetroMigration",
    "RevisionEngine",
    "Validator",
    "Wiki",
    "filter_by_permission",
    "validate",
    "wrap_array_elements",
    # Config
    "WikiConfig",
    "load_config",
    "configure_logging",
]

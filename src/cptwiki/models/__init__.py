"""
cptwiki Models

Compiled schema tree, schema definitions, persisted rows and enums.
"""
from __future__ import annotations

from .enums import (
    DeletionReason,
    PrimitiveKind,
    RejectionCode,
    RevisionTag,
)
from .structure import (
    ChoiceOption,
    ClassDescriptor,
    Content,
    ObjectStructure,
    PropertyDescriptor,
    Rule,
)
from .definitions import (
    ClassDefinition,
    PredefinedItem,
    SchemaDefinitions,
    ShapeDefinition,
)
from .rows import (
    ALL_TABLES,
    DELETED_ITEMS_TABLE,
    DELETION_LOG_TABLE,
    ITEMS_TABLE,
    REVISIONS_TABLE,
    TAG_DELIMITER,
    DeletionLogRow,
    ItemRow,
    RevisionRow,
    decode_tags,
    encode_tags,
    now_ms,
)

__all__ = [
    # Enums
    "DeletionReason",
    "PrimitiveKind",
    "RejectionCode",
    "RevisionTag",
    # Structure
    "ChoiceOption",
    "ClassDescriptor",
    "Content",
    "ObjectStructure",
    "PropertyDescriptor",
    "Rule",
    # Definitions
    "ClassDefinition",
    "PredefinedItem",
    "SchemaDefinitions",
    "ShapeDefinition",
    # Rows
    "ALL_TABLES",
    "DELETED_ITEMS_TABLE",
    "DELETION_LOG_TABLE",
    "ITEMS_TABLE",
    "REVISIONS_TABLE",
    "TAG_DELIMITER",
    "DeletionLogRow",
    "ItemRow",
    "RevisionRow",
    "decode_tags",
    "encode_tags",
    "now_ms",
]

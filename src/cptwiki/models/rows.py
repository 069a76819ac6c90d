"""
cptwiki Persisted Rows

Typed views over the flat rows kept by the row store. Each dataclass converts
to and from the plain dict the store persists; structured values (record
data, deltas) stay JSON-like.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from .enums import DeletionReason, RevisionTag


# =============================================================================
# Table Names
# =============================================================================

ITEMS_TABLE = "items"
DELETED_ITEMS_TABLE = "deleted_items"
REVISIONS_TABLE = "revisions"
DELETION_LOG_TABLE = "deletion_log"

ALL_TABLES = (ITEMS_TABLE, DELETED_ITEMS_TABLE, REVISIONS_TABLE, DELETION_LOG_TABLE)

TAG_DELIMITER = "%"


def encode_tags(tags: Iterable[RevisionTag]) -> str:
    """Join tag codes into the persisted ``%``-delimited form."""
    unique = sorted({int(tag) for tag in tags})
    return TAG_DELIMITER.join(str(code) for code in unique)


def decode_tags(text: Optional[str]) -> tuple[RevisionTag, ...]:
    """Parse a persisted tag list. Unknown codes are ignored."""
    if not text:
        return ()
    tags = []
    for part in str(text).split(TAG_DELIMITER):
        part = part.strip()
        if not part:
            continue
        try:
            tags.append(RevisionTag(int(part)))
        except ValueError:
            continue
    return tuple(tags)


# =============================================================================
# Items
# =============================================================================

@dataclass
class ItemRow:
    """A stored item (also the shape of a deleted-items row)."""
    id: Optional[int]
    cls: str
    data: dict[str, Any]
    search_text: Optional[str] = None
    predefined: bool = False

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ItemRow:
        return cls(
            id=row.get("id"),
            cls=row["cls"],
            data=row["data"],
            search_text=row.get("search_text"),
            predefined=bool(row.get("predefined", False)),
        )

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "cls": self.cls,
            "data": self.data,
            "search_text": self.search_text,
            "predefined": self.predefined,
        }
        if self.id is not None:
            row["id"] = self.id
        return row


# =============================================================================
# Revisions
# =============================================================================

@dataclass
class RevisionRow:
    """One committed delta of an item's history."""
    id: Optional[int]
    item_id: int
    actor: Optional[int]
    timestamp: int
    patch: Any
    is_minor: bool = False
    is_creation: bool = False
    tags: tuple[RevisionTag, ...] = field(default_factory=tuple)

    def has_tag(self, tag: RevisionTag) -> bool:
        return tag in self.tags

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> RevisionRow:
        return cls(
            id=row.get("id"),
            item_id=row["item_id"],
            actor=row.get("actor"),
            timestamp=row["timestamp"],
            patch=row.get("patch"),
            is_minor=bool(row.get("is_minor", False)),
            is_creation=bool(row.get("is_creation", False)),
            tags=decode_tags(row.get("tags")),
        )

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "item_id": self.item_id,
            "actor": self.actor,
            "timestamp": self.timestamp,
            "patch": self.patch,
            "is_minor": self.is_minor,
            "is_creation": self.is_creation,
            "tags": encode_tags(self.tags),
        }
        if self.id is not None:
            row["id"] = self.id
        return row


# =============================================================================
# Deletion Log
# =============================================================================

@dataclass
class DeletionLogRow:
    """A deletion or undeletion of an item."""
    id: Optional[int]
    cls: str
    item_id: int
    actor: Optional[int]
    timestamp: int
    reason_code: DeletionReason = DeletionReason.OTHER
    reason_text: Optional[str] = None
    is_deletion: bool = True

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> DeletionLogRow:
        return cls(
            id=row.get("id"),
            cls=row["cls"],
            item_id=row["item_id"],
            actor=row.get("actor"),
            timestamp=row["timestamp"],
            reason_code=DeletionReason(row.get("reason_code") or 0),
            reason_text=row.get("reason_text"),
            is_deletion=bool(row.get("is_deletion", True)),
        )

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "cls": self.cls,
            "item_id": self.item_id,
            "actor": self.actor,
            "timestamp": self.timestamp,
            "reason_code": int(self.reason_code),
            "reason_text": self.reason_text,
            "is_deletion": self.is_deletion,
        }
        if self.id is not None:
            row["id"] = self.id
        return row


def now_ms() -> int:
    """Current time as epoch milliseconds, the unit of every row timestamp."""
    return int(time.time() * 1000)

"""
Canonical JSON Serialization

Deterministic JSON for storing deltas, comparing record versions and writing
backups:
- Sorted keys (lexicographic)
- No whitespace
- UTF-8 output

Two values are considered the same version of a record exactly when their
canonical JSON is identical, which keeps ``True`` apart from ``1`` and
``1.0`` apart from ``1`` the way the stored JSON does.
"""
from __future__ import annotations

import copy
import hashlib
import json
from enum import Enum
from typing import Any
from uuid import uuid4


def _default_serializer(obj: Any) -> Any:
    """Serialize enums and sets found inside records or rows."""
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    if isinstance(obj, tuple):
        return list(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonical_json(obj: Any) -> str:
    """
    Serialize object to canonical JSON string.

    Example:
        >>> canonical_json({"b": 1, "a": 2})
        '{"a":2,"b":1}'
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        default=_default_serializer,
        ensure_ascii=False,
    )


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON as UTF-8 bytes."""
    return canonical_json(obj).encode("utf-8")


def content_hash(obj: Any) -> str:
    """SHA-256 hex digest of the canonical JSON representation."""
    return hashlib.sha256(canonical_json_bytes(obj)).hexdigest()


def json_equal(left: Any, right: Any) -> bool:
    """True when both values serialize to the same canonical JSON."""
    if left is right:
        return True
    return canonical_json(left) == canonical_json(right)


def deepcopy_json(obj: Any) -> Any:
    """Deep copy of a JSON-like value."""
    return copy.deepcopy(obj)


# =============================================================================
# Array Elements
# =============================================================================

def new_element_id() -> str:
    """Generate a stable id for a new array element."""
    return uuid4().hex


def make_element(value: Any, element_id: str | None = None) -> dict[str, Any]:
    """Wrap a value as an array element: ``{"id": ..., "value": ...}``."""
    return {"id": element_id or new_element_id(), "value": value}


def is_element(obj: Any) -> bool:
    """True for an ``{"id", "value"}`` array element wrapper."""
    return isinstance(obj, dict) and "id" in obj and "value" in obj

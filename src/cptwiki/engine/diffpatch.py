"""
cptwiki Structural Deltas

Tree-shaped deltas between two versions of a record, in the jsondiffpatch
delta format:

    [new]                added value
    [old, new]           replaced value
    [old, 0, 0]          deleted value
    {"field": delta}     changed object fields
    {"_t": "a", ...}     changed array:
        "3": delta         element at new index 3 changed (or [new] if added)
        "_1": [old, 0, 0]  element at old index 1 removed
        "_1": ["", 3, 3]   element at old index 1 moved to new index 3

Array elements are matched by their ``id`` (see ``canon.make_element``), so
reordering produces moves instead of wholesale replacement. Elements without
an id are matched by position.

``patch`` applies a delta forward and ``unpatch`` undoes it. Both check that
the values they replace are the ones the delta recorded, and raise
``DeltaError`` when history and data disagree.
"""
from __future__ import annotations

import copy
from typing import Any, Optional

from ..canon import json_equal

ARRAY_TYPE_KEY = "_t"
ARRAY_TYPE = "a"
DELETED = 0
MOVED = 3

Delta = Any


class DeltaError(Exception):
    """A delta does not apply to the value it was given."""


# =============================================================================
# Diff
# =============================================================================

def diff(left: Any, right: Any) -> Optional[Delta]:
    """Delta turning ``left`` into ``right``, or None when they are equal."""
    if json_equal(left, right):
        return None
    if isinstance(left, dict) and isinstance(right, dict):
        return _diff_objects(left, right)
    if isinstance(left, list) and isinstance(right, list):
        return _diff_arrays(left, right)
    return [copy.deepcopy(left), copy.deepcopy(right)]


def _diff_objects(left: dict, right: dict) -> Optional[dict]:
    delta: dict[str, Any] = {}
    for key, old in left.items():
        if key in right:
            sub = diff(old, right[key])
            if sub is not None:
                delta[key] = sub
        else:
            delta[key] = [copy.deepcopy(old), DELETED, DELETED]
    for key, new in right.items():
        if key not in left:
            delta[key] = [copy.deepcopy(new)]
    return delta or None


def _element_hash(array: list, index: int) -> Any:
    item = array[index]
    if isinstance(item, dict) and isinstance(item.get("id"), (str, int)) and not isinstance(item.get("id"), bool):
        return ("id", item["id"])
    return ("position", index)


def _lcs(left: list, right: list) -> list[tuple[int, int]]:
    """Index pairs of a longest common subsequence of two hash lists."""
    n, m = len(left), len(right)
    lengths = [[0] * (m + 1) for _ in range(n + 1)]
    for i in range(n - 1, -1, -1):
        for j in range(m - 1, -1, -1):
            if left[i] == right[j]:
                lengths[i][j] = lengths[i + 1][j + 1] + 1
            else:
                lengths[i][j] = max(lengths[i + 1][j], lengths[i][j + 1])
    pairs = []
    i = j = 0
    while i < n and j < m:
        if left[i] == right[j]:
            pairs.append((i, j))
            i += 1
            j += 1
        elif lengths[i + 1][j] >= lengths[i][j + 1]:
            i += 1
        else:
            j += 1
    return pairs


def _diff_arrays(left: list, right: list) -> Optional[dict]:
    delta: dict[str, Any] = {}
    n, m = len(left), len(right)

    def changed(old_index: int, new_index: int) -> None:
        sub = diff(left[old_index], right[new_index])
        if sub is not None:
            delta[str(new_index)] = sub

    head = 0
    while head < n and head < m and _element_hash(left, head) == _element_hash(right, head):
        changed(head, head)
        head += 1

    tail = 0
    while (
        tail < n - head and tail < m - head
        and _element_hash(left, n - 1 - tail) == _element_hash(right, m - 1 - tail)
    ):
        changed(n - 1 - tail, m - 1 - tail)
        tail += 1

    old_middle = list(range(head, n - tail))
    new_middle = list(range(head, m - tail))
    matches = _lcs(
        [_element_hash(left, i) for i in old_middle],
        [_element_hash(right, j) for j in new_middle],
    )
    matched_old = set()
    matched_new = set()
    for a, b in matches:
        old_index, new_index = old_middle[a], new_middle[b]
        matched_old.add(old_index)
        matched_new.add(new_index)
        changed(old_index, new_index)

    added = [j for j in new_middle if j not in matched_new]
    for old_index in old_middle:
        if old_index in matched_old:
            continue
        old_hash = _element_hash(left, old_index)
        target = None
        if old_hash[0] == "id":
            for new_index in added:
                if _element_hash(right, new_index) == old_hash:
                    target = new_index
                    break
        if target is None:
            delta[f"_{old_index}"] = [copy.deepcopy(left[old_index]), DELETED, DELETED]
        else:
            added.remove(target)
            delta[f"_{old_index}"] = ["", target, MOVED]
            changed(old_index, target)

    for new_index in added:
        delta[str(new_index)] = [copy.deepcopy(right[new_index])]

    if not delta:
        return None
    delta[ARRAY_TYPE_KEY] = ARRAY_TYPE
    return delta


# =============================================================================
# Delta Shapes
# =============================================================================

def _is_added(delta: Any) -> bool:
    return isinstance(delta, list) and len(delta) == 1


def _is_replaced(delta: Any) -> bool:
    return isinstance(delta, list) and len(delta) == 2


def _is_deleted(delta: Any) -> bool:
    return isinstance(delta, list) and len(delta) == 3 and delta[1] == DELETED and delta[2] == DELETED


def _is_moved(delta: Any) -> bool:
    return isinstance(delta, list) and len(delta) == 3 and delta[2] == MOVED


def _is_array_delta(delta: Any) -> bool:
    return isinstance(delta, dict) and delta.get(ARRAY_TYPE_KEY) == ARRAY_TYPE


def _index(key: str) -> int:
    try:
        return int(key)
    except ValueError:
        raise DeltaError(f"Invalid array delta key '{key}'") from None


def _array_entries(delta: dict) -> tuple[dict[int, Any], dict[int, Any]]:
    """Split an array delta into (old-index entries, new-index entries)."""
    removed: dict[int, Any] = {}
    at_new: dict[int, Any] = {}
    for key, sub in delta.items():
        if key == ARRAY_TYPE_KEY:
            continue
        if key.startswith("_"):
            if not (_is_deleted(sub) or _is_moved(sub)):
                raise DeltaError(f"Only removals and moves may use old index '{key}'")
            removed[_index(key[1:])] = sub
        else:
            at_new[_index(key)] = sub
    return removed, at_new


# =============================================================================
# Patch
# =============================================================================

def patch(value: Any, delta: Optional[Delta]) -> Any:
    """
    Apply ``delta`` to ``value`` and return the result.

    Containers are modified in place; callers pass a copy when the original
    must survive.

    Raises:
        DeltaError: If the delta does not match ``value``
    """
    if delta is None:
        return value
    if isinstance(delta, list):
        if _is_replaced(delta):
            if not json_equal(value, delta[0]):
                raise DeltaError(f"Expected {delta[0]!r} before replacement, found {value!r}")
            return copy.deepcopy(delta[1])
        if _is_added(delta):
            return copy.deepcopy(delta[0])
        raise DeltaError(f"Cannot apply value delta {delta!r} in place")
    if _is_array_delta(delta):
        return _patch_array(value, delta)
    if isinstance(delta, dict):
        return _patch_object(value, delta)
    raise DeltaError(f"Unrecognized delta {delta!r}")


def _patch_object(value: Any, delta: dict) -> dict:
    if not isinstance(value, dict):
        raise DeltaError(f"Expected an object, found {type(value).__name__}")
    for key, sub in delta.items():
        if _is_deleted(sub):
            if key not in value or not json_equal(value[key], sub[0]):
                raise DeltaError(f"Field '{key}' does not hold the deleted value")
            del value[key]
        elif _is_added(sub):
            if key in value:
                raise DeltaError(f"Field '{key}' already exists")
            value[key] = copy.deepcopy(sub[0])
        else:
            if key not in value:
                raise DeltaError(f"Field '{key}' is missing")
            value[key] = patch(value[key], sub)
    return value


def _patch_array(value: Any, delta: dict) -> list:
    if not isinstance(value, list):
        raise DeltaError(f"Expected an array, found {type(value).__name__}")
    removed, at_new = _array_entries(delta)

    moved_values: dict[int, Any] = {}
    for old_index in sorted(removed, reverse=True):
        if old_index >= len(value):
            raise DeltaError(f"Old index {old_index} out of range")
        sub = removed[old_index]
        item = value.pop(old_index)
        if _is_moved(sub):
            moved_values[sub[1]] = item
        elif not json_equal(item, sub[0]):
            raise DeltaError(f"Element {old_index} does not hold the deleted value")

    inserts = {index: sub[0] for index, sub in at_new.items() if _is_added(sub)}
    for new_index, item in moved_values.items():
        if new_index in inserts:
            raise DeltaError(f"Index {new_index} is both added and a move target")
        inserts[new_index] = item
    for new_index in sorted(inserts):
        if new_index > len(value):
            raise DeltaError(f"New index {new_index} out of range")
        value.insert(new_index, copy.deepcopy(inserts[new_index]))

    for new_index, sub in sorted(at_new.items()):
        if _is_added(sub):
            continue
        if new_index >= len(value):
            raise DeltaError(f"New index {new_index} out of range")
        value[new_index] = patch(value[new_index], sub)
    return value


# =============================================================================
# Unpatch
# =============================================================================

def unpatch(value: Any, delta: Optional[Delta]) -> Any:
    """
    Undo ``delta`` on ``value`` and return the previous version.

    Containers are modified in place.

    Raises:
        DeltaError: If ``value`` is not the state the delta produced
    """
    if delta is None:
        return value
    if isinstance(delta, list):
        if _is_replaced(delta):
            if not json_equal(value, delta[1]):
                raise DeltaError(f"Expected {delta[1]!r} to undo, found {value!r}")
            return copy.deepcopy(delta[0])
        raise DeltaError(f"Cannot undo value delta {delta!r} in place")
    if _is_array_delta(delta):
        return _unpatch_array(value, delta)
    if isinstance(delta, dict):
        return _unpatch_object(value, delta)
    raise DeltaError(f"Unrecognized delta {delta!r}")


def _unpatch_object(value: Any, delta: dict) -> dict:
    if not isinstance(value, dict):
        raise DeltaError(f"Expected an object, found {type(value).__name__}")
    for key, sub in delta.items():
        if _is_deleted(sub):
            if key in value:
                raise DeltaError(f"Deleted field '{key}' is present")
            value[key] = copy.deepcopy(sub[0])
        elif _is_added(sub):
            if key not in value or not json_equal(value[key], sub[0]):
                raise DeltaError(f"Field '{key}' does not hold the added value")
            del value[key]
        else:
            if key not in value:
                raise DeltaError(f"Field '{key}' is missing")
            value[key] = unpatch(value[key], sub)
    return value


def _unpatch_array(value: Any, delta: dict) -> list:
    if not isinstance(value, list):
        raise DeltaError(f"Expected an array, found {type(value).__name__}")
    removed, at_new = _array_entries(delta)

    for new_index, sub in sorted(at_new.items()):
        if _is_added(sub):
            continue
        if new_index >= len(value):
            raise DeltaError(f"New index {new_index} out of range")
        value[new_index] = unpatch(value[new_index], sub)

    move_sources = {sub[1]: old_index for old_index, sub in removed.items() if _is_moved(sub)}
    inserted = sorted(set(index for index, sub in at_new.items() if _is_added(sub)) | set(move_sources))
    moved_values: dict[int, Any] = {}
    for new_index in reversed(inserted):
        if new_index >= len(value):
            raise DeltaError(f"New index {new_index} out of range")
        item = value.pop(new_index)
        if new_index in move_sources:
            moved_values[move_sources[new_index]] = item
        elif not json_equal(item, at_new[new_index][0]):
            raise DeltaError(f"Element {new_index} does not hold the added value")

    for old_index in sorted(removed):
        if old_index > len(value):
            raise DeltaError(f"Old index {old_index} out of range")
        sub = removed[old_index]
        item = moved_values[old_index] if _is_moved(sub) else copy.deepcopy(sub[0])
        value.insert(old_index, item)
    return value


def apply_all(value: Any, deltas: list[Optional[Delta]]) -> Any:
    """Apply deltas in order to a copy of ``value``."""
    current = copy.deepcopy(value)
    for delta in deltas:
        current = patch(current, delta)
    return current

"""
cptwiki Path Algebra

Generic addressing over nested records.

A property path is a tuple of field names and ``ARRAY_MARKER`` steps. It fans
out over every element of an array wherever a marker appears. Array elements
are ``{"id", "value"}`` wrappers, so a resolved value path steps through the
index and then ``"value"``:

    property path  ("names", "[]", "name")
    value paths    ("names", 0, "value", "name"), ("names", 1, "value", "name")

``expand``, ``read``, ``write`` and ``find_paths`` are the only code in the
package that walks records or structures.
"""
from __future__ import annotations

from typing import Any, Callable, Iterator, Union

from ..exceptions import PathNotFoundError
from ..models import ObjectStructure, PropertyDescriptor


ARRAY_MARKER = "[]"
ELEMENT_VALUE = "value"

PropertyPath = tuple[str, ...]
ValuePath = tuple[Union[str, int], ...]


class _Missing:
    """Sentinel for a value path that does not resolve."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


# =============================================================================
# Expansion
# =============================================================================

def expand(property_path: PropertyPath, value: Any) -> list[ValuePath]:
    """
    Resolve every array marker of a property path against a record.

    Indices are produced in ascending order at each array level. A marker
    over something that is not a list contributes nothing; a missing field
    still yields its path so callers can detect it with ``read``.
    """
    return list(_expand(tuple(property_path), value, ()))


def _expand(steps: PropertyPath, current: Any, prefix: ValuePath) -> Iterator[ValuePath]:
    if not steps:
        yield prefix
        return

    step, rest = steps[0], steps[1:]
    if step == ARRAY_MARKER:
        if not isinstance(current, list):
            return
        for index, element in enumerate(current):
            inner = element.get(ELEMENT_VALUE, MISSING) if isinstance(element, dict) else MISSING
            yield from _expand(rest, inner, prefix + (index, ELEMENT_VALUE))
    else:
        if isinstance(current, dict):
            yield from _expand(rest, current.get(step, MISSING), prefix + (step,))
        elif current is MISSING and not rest:
            yield prefix + (step,)


# =============================================================================
# Read / Write
# =============================================================================

def read(value: Any, value_path: ValuePath) -> Any:
    """
    Value at ``value_path``, or ``MISSING`` if any step is absent.

    A present ``None`` is returned as ``None``.
    """
    current = value
    for step in value_path:
        if isinstance(step, int) and not isinstance(step, bool):
            if not isinstance(current, list) or not 0 <= step < len(current):
                return MISSING
            current = current[step]
        else:
            if not isinstance(current, dict) or step not in current:
                return MISSING
            current = current[step]
    return current


def write(value: Any, value_path: ValuePath, new_value: Any) -> Any:
    """
    Set ``new_value`` at ``value_path`` in place and return ``value``.

    Every container on the way must already exist; only the final field of
    an object may be absent.

    Raises:
        PathNotFoundError: If an intermediate step does not resolve
    """
    if not value_path:
        return new_value

    container = read(value, value_path[:-1])
    last = value_path[-1]
    if isinstance(last, int) and not isinstance(last, bool):
        if not isinstance(container, list) or not 0 <= last < len(container):
            raise PathNotFoundError(
                message=f"Cannot write index {last} at {format_value_path(value_path[:-1])}",
                details={"path": list(value_path)},
            )
    elif not isinstance(container, dict):
        raise PathNotFoundError(
            message=f"Cannot write field '{last}' at {format_value_path(value_path[:-1])}",
            details={"path": list(value_path)},
        )
    container[last] = new_value
    return value


# =============================================================================
# Structure Search
# =============================================================================

def find_paths(
    structure: ObjectStructure,
    predicate: Callable[[PropertyDescriptor], bool],
) -> list[PropertyPath]:
    """
    Property paths of every descriptor matching ``predicate``.

    Nested shapes are only searched below properties that do not match, so a
    matching object field is reported once and its children are not.
    """
    found: list[PropertyPath] = []
    _find_paths(structure, predicate, (), found)
    return found


def _find_paths(
    structure: ObjectStructure,
    predicate: Callable[[PropertyDescriptor], bool],
    prefix: PropertyPath,
    found: list[PropertyPath],
) -> None:
    for prop in structure:
        path = prefix + (prop.name,) + (ARRAY_MARKER,) * prop.array_depth
        if predicate(prop):
            found.append(path)
        elif prop.is_object:
            _find_paths(prop.structure, predicate, path, found)


def travel(property_path: PropertyPath, value: Any) -> list[Any]:
    """Every present value addressed by a property path."""
    values = []
    for value_path in expand(property_path, value):
        found = read(value, value_path)
        if found is not MISSING:
            values.append(found)
    return values


def format_value_path(value_path: ValuePath, root: str = "") -> str:
    """
    Human-readable path: ``song.names[0].name``.

    Element ``value`` steps following an index are folded into the index.
    """
    text = root
    previous_was_index = False
    for step in value_path:
        if isinstance(step, int) and not isinstance(step, bool):
            text += f"[{step}]"
            previous_was_index = True
            continue
        if previous_was_index and step == ELEMENT_VALUE:
            previous_was_index = False
            continue
        previous_was_index = False
        text = f"{text}.{step}" if text else str(step)
    return text

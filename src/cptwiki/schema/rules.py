"""
cptwiki Rule Library

Named rule factories that schema packs refer to. Each factory takes the
parameters written in the pack and returns a ``Rule``.

Example (YAML):
    rules:
      - rule: any_non_empty
        params: {fields: [names, unofficialNames]}
        message: A song must have at least one name or one unofficial name
"""
from __future__ import annotations

import re
from typing import Any, Callable

from ..canon import is_element
from ..models import Rule


def _unwrap(value: Any) -> Any:
    return value["value"] if is_element(value) else value


def any_non_empty(fields: list[str]) -> Callable[[dict[str, Any]], bool]:
    """At least one of the array fields has an element."""
    def check(data: dict[str, Any]) -> bool:
        return any(len(data.get(name) or []) > 0 for name in fields)
    return check


def null_or_contains(field: str, any_of: list[str]) -> Callable[[dict[str, Any]], bool]:
    """Text field is empty or contains one of the substrings."""
    def check(data: dict[str, Any]) -> bool:
        value = data.get(field)
        if not value:
            return True
        return any(part in value for part in any_of)
    return check


def required_with(field: str, when_any: list[str]) -> Callable[[dict[str, Any]], bool]:
    """``field`` must be set whenever one of ``when_any`` is set."""
    def check(data: dict[str, Any]) -> bool:
        if any(data.get(name) not in (None, "", []) for name in when_any):
            return data.get(field) not in (None, "")
        return True
    return check


def pattern(field: str, regex: str) -> Callable[[dict[str, Any]], bool]:
    """Text field is empty or fully matches ``regex``."""
    compiled = re.compile(regex)

    def check(data: dict[str, Any]) -> bool:
        value = data.get(field)
        if value in (None, ""):
            return True
        return compiled.fullmatch(value) is not None
    return check


def distinct_values(field: str) -> Callable[[dict[str, Any]], bool]:
    """Elements of an array field hold pairwise different values."""
    def check(data: dict[str, Any]) -> bool:
        values = [repr(_unwrap(element)) for element in data.get(field) or []]
        return len(values) == len(set(values))
    return check


RULE_FACTORIES: dict[str, Callable[..., Callable[[dict[str, Any]], bool]]] = {
    "any_non_empty": any_non_empty,
    "null_or_contains": null_or_contains,
    "required_with": required_with,
    "pattern": pattern,
    "distinct_values": distinct_values,
}


def make_rule(name: str, message: str, params: dict[str, Any] | None = None) -> Rule:
    """
    Build a rule from the library.

    Raises:
        KeyError: Unknown rule name
        TypeError: Parameters do not fit the factory
        re.error: Invalid ``pattern`` regex
    """
    factory = RULE_FACTORIES[name]
    return Rule(check=factory(**(params or {})), message=message, name=name)

"""
cptwiki Record Validator

Walks a record against its class descriptor and collects every violation.

At each object level the attached rules run against the local sub-record
first; a rule that raises is reported as a violation. Then each field is
checked:
- arrays: must be lists of ``{"id", "value"}`` elements, checked per element
- shapes: recurse into the nested structure
- primitives: None is accepted unless the field is queryable; otherwise the
  value must match its kind

Paths in messages read like ``song.names[0].name``.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Optional

from ..canon import is_element
from ..exceptions import ValidationFailure
from ..models import ClassDescriptor, ObjectStructure, PrimitiveKind, PropertyDescriptor
from ..schema.registry import SEARCH_TEXT_DELIMITER, SchemaRegistry

logger = logging.getLogger(__name__)


DATE_PATTERN = re.compile(r"^\d+-\d{2}-\d{2}$")

KIND_DESCRIPTIONS: dict[PrimitiveKind, str] = {
    PrimitiveKind.SHORT_TEXT: "a text string",
    PrimitiveKind.LONG_TEXT: "a text string",
    PrimitiveKind.INTEGER: "an integer number",
    PrimitiveKind.REFERENCE: "an integer number",
    PrimitiveKind.FILE_REF: "an integer number",
    PrimitiveKind.BOOLEAN: "a boolean value",
    PrimitiveKind.DATE: "a valid date string (YYYY-MM-DD)",
}


def _is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def matches_kind(prop: PropertyDescriptor, value: Any) -> bool:
    """True when a non-null value fits the primitive kind of ``prop``."""
    kind = prop.kind
    if kind in (PrimitiveKind.SHORT_TEXT, PrimitiveKind.LONG_TEXT):
        return isinstance(value, str)
    if kind in (PrimitiveKind.INTEGER, PrimitiveKind.REFERENCE, PrimitiveKind.FILE_REF):
        return _is_integer(value)
    if kind == PrimitiveKind.BOOLEAN:
        return isinstance(value, bool)
    if kind == PrimitiveKind.DATE:
        return isinstance(value, str) and DATE_PATTERN.match(value) is not None
    if kind == PrimitiveKind.CHOICE:
        return isinstance(value, str) and value in prop.arguments
    return False


def describe_kind(prop: PropertyDescriptor) -> str:
    if prop.kind == PrimitiveKind.CHOICE:
        return f"one of: {', '.join(prop.arguments)}"
    return KIND_DESCRIPTIONS[prop.kind]


class Validator:
    """
    Validates records against compiled classes.

    Usage:
        validator = Validator(registry)
        errors = validator.validate("song", data)
        validator.ensure_valid("song", data)   # raises ValidationFailure
    """

    def __init__(self, registry: Optional[SchemaRegistry] = None):
        self.registry = registry

    def validate(self, class_name: str, data: Any) -> list[str]:
        """Violations of ``data`` against the registered class."""
        if self.registry is None:
            raise ValueError("Validator has no registry; use validate_class")
        return self.validate_class(self.registry.get_class(class_name), data)

    def validate_class(self, descriptor: ClassDescriptor, data: Any) -> list[str]:
        """Violations of ``data`` against a class descriptor."""
        errors: list[str] = []
        self._check_object(descriptor.structure, data, descriptor.key, errors)
        return errors

    def ensure_valid(self, class_name: str, data: Any) -> None:
        """
        Raises:
            ValidationFailure: If any violation is found
        """
        errors = self.validate(class_name, data)
        if errors:
            raise ValidationFailure(
                message=f"{len(errors)} validation error(s) in {class_name}",
                details={"class": class_name},
                violations=errors,
            )

    def _check_object(
        self,
        structure: ObjectStructure,
        value: Any,
        path: str,
        errors: list[str],
    ) -> None:
        if not isinstance(value, dict):
            errors.append(f"{path} must be a valid object")
            return

        for rule in structure.rules:
            try:
                if not rule.holds(value):
                    errors.append(rule.message)
            except Exception as e:
                logger.debug("Rule %s raised at %s: %r", rule.name, path, e)
                errors.append(f"Validation exception at {path}: {e}")

        for prop in structure:
            self._check_property(prop, value.get(prop.name), f"{path}.{prop.name}", prop.array_depth, errors)

        declared = set(structure.names())
        for key in value:
            if key not in declared:
                errors.append(f"{path}.{key} is not a declared field")

    def _check_property(
        self,
        prop: PropertyDescriptor,
        value: Any,
        path: str,
        depth: int,
        errors: list[str],
    ) -> None:
        if depth > 0:
            if not isinstance(value, list):
                errors.append(f"{path} is not an array")
                return
            for index, element in enumerate(value):
                element_path = f"{path}[{index}]"
                if not is_element(element):
                    errors.append(f"{element_path} must be an array element with an id and a value")
                    continue
                self._check_property(prop, element["value"], element_path, depth - 1, errors)
            return

        if prop.is_object:
            self._check_object(prop.structure, value, path, errors)
            return

        if prop.is_queryable and (value is None or value == ""):
            errors.append(f"Must give a name (error at {path})")
            return
        if value is None:
            return
        if not matches_kind(prop, value):
            errors.append(f"{path} must be {describe_kind(prop)}")
        elif prop.is_queryable and isinstance(value, str) and SEARCH_TEXT_DELIMITER in value:
            errors.append(f"{path} must not contain '{SEARCH_TEXT_DELIMITER}'")


def validate(descriptor: ClassDescriptor, data: Any) -> list[str]:
    """Violations of ``data`` against ``descriptor``."""
    return Validator().validate_class(descriptor, data)

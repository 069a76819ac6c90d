"""
cptwiki Compiled Schema Models

The immutable tree produced by the CPT compiler:
- PropertyDescriptor: one declared field
- ObjectStructure: ordered fields of a shape or class, plus its rules
- ClassDescriptor: an item class (dynamic or static)
- Rule: a semantic check attached to an object level

A property's content is exactly one of a PrimitiveKind or an ObjectStructure.
Structures are shared between every property that embeds the same shape.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, Union

from .enums import PrimitiveKind


# =============================================================================
# Rules
# =============================================================================

@dataclass(frozen=True)
class Rule:
    """
    Semantic check run against the local object of a record.

    ``check`` returns True when the object is acceptable; ``message`` is
    reported otherwise. Exceptions raised by ``check`` are the validator's
    concern, not the rule's.
    """
    check: Callable[[dict[str, Any]], bool]
    message: str
    name: str = "rule"

    def holds(self, data: dict[str, Any]) -> bool:
        return bool(self.check(data))


# =============================================================================
# Choice Options
# =============================================================================

@dataclass(frozen=True)
class ChoiceOption:
    """One ``[id "Text"]`` entry of a SELECT field."""
    id: str
    text: str


# =============================================================================
# Structures
# =============================================================================

@dataclass(frozen=True)
class ObjectStructure:
    """Ordered property list of a reusable shape or a class root."""
    properties: tuple[PropertyDescriptor, ...] = ()
    rules: tuple[Rule, ...] = ()
    name: Optional[str] = None

    def __iter__(self) -> Iterator[PropertyDescriptor]:
        return iter(self.properties)

    def __len__(self) -> int:
        return len(self.properties)

    def get(self, name: str) -> Optional[PropertyDescriptor]:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def names(self) -> list[str]:
        return [prop.name for prop in self.properties]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "rules": [rule.message for rule in self.rules],
            "properties": [prop.to_dict() for prop in self.properties],
        }


Content = Union[PrimitiveKind, ObjectStructure]


@dataclass(frozen=True)
class PropertyDescriptor:
    """
    Compiled declaration of a single field.

    Attributes:
        name: Field name, unique within its structure
        content: Primitive kind, or the nested structure of a shape
        array_depth: 0 scalar, 1 list, 2 matrix
        arguments: Raw parenthesized arguments of the kind
        options: Parsed option set of a Choice field
        is_queryable: Field contributes to the item's search text
        is_openly_editable: Any actor may edit the field
        display_name: Header shown to readers
        description: Help text shown to editors
    """
    name: str
    content: Content
    array_depth: int = 0
    arguments: tuple[str, ...] = ()
    options: tuple[ChoiceOption, ...] = ()
    is_queryable: bool = False
    is_openly_editable: bool = False
    display_name: str = ""
    description: Optional[str] = None

    @property
    def is_array(self) -> bool:
        return self.array_depth > 0

    @property
    def is_object(self) -> bool:
        return isinstance(self.content, ObjectStructure)

    @property
    def kind(self) -> Optional[PrimitiveKind]:
        return None if self.is_object else self.content  # type: ignore[return-value]

    @property
    def structure(self) -> Optional[ObjectStructure]:
        return self.content if self.is_object else None  # type: ignore[return-value]

    @property
    def validators(self) -> tuple[Rule, ...]:
        return self.content.rules if self.is_object else ()  # type: ignore[union-attr]

    @property
    def referenced_class(self) -> Optional[str]:
        if self.content == PrimitiveKind.REFERENCE and self.arguments:
            return self.arguments[0]
        return None

    def element(self) -> PropertyDescriptor:
        """Descriptor for one element of this array field."""
        if not self.is_array:
            raise ValueError(f"Property '{self.name}' is not an array")
        return PropertyDescriptor(
            name=self.name,
            content=self.content,
            array_depth=self.array_depth - 1,
            arguments=self.arguments,
            options=self.options,
            is_queryable=self.is_queryable,
            is_openly_editable=self.is_openly_editable,
            display_name=self.display_name,
            description=self.description,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "array_depth": self.array_depth,
            "display_name": self.display_name,
        }
        if self.is_object:
            result["content"] = self.content.to_dict()  # type: ignore[union-attr]
        else:
            result["content"] = self.content.value  # type: ignore[union-attr]
        if self.arguments:
            result["arguments"] = list(self.arguments)
        if self.options:
            result["options"] = [{"id": o.id, "text": o.text} for o in self.options]
        if self.is_queryable:
            result["queryable"] = True
        if self.is_openly_editable:
            result["openly_editable"] = True
        if self.description:
            result["description"] = self.description
        return result


# =============================================================================
# Classes
# =============================================================================

@dataclass(frozen=True)
class ClassDescriptor:
    """
    Compiled item class.

    Attributes:
        key: Class identifier used in item rows (e.g. "song")
        name: Human-readable name (e.g. "Song")
        structure: Top-level fields and root rules
        is_static: Singleton class keyed by name instead of id
    """
    key: str
    name: str
    structure: ObjectStructure = field(default_factory=ObjectStructure)
    is_static: bool = False

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self.structure.rules

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "static": self.is_static,
            "structure": self.structure.to_dict(),
        }

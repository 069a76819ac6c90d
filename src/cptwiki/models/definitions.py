"""
cptwiki Schema Definitions

Uncompiled input to the compiler and registry: CPT source text for each
reusable shape and each item class, plus the predefined items a wiki ships
with. Built by hand, by the built-in catalog, or by the schema pack loader.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .structure import Rule


@dataclass(frozen=True)
class ShapeDefinition:
    """A reusable object shape, referenced in CPT as ``{NAME}``."""
    name: str
    code: str
    rules: tuple[Rule, ...] = ()


@dataclass(frozen=True)
class ClassDefinition:
    """An item class declared in CPT."""
    key: str
    name: str
    code: str
    rules: tuple[Rule, ...] = ()
    is_static: bool = False


@dataclass(frozen=True)
class PredefinedItem:
    """An item that must exist with a fixed id once the wiki is initialized."""
    class_name: str
    item_id: int
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class SchemaDefinitions:
    """Everything needed to build a registry."""
    shapes: dict[str, ShapeDefinition] = field(default_factory=dict)
    classes: dict[str, ClassDefinition] = field(default_factory=dict)
    predefined: list[PredefinedItem] = field(default_factory=list)
    version: Optional[str] = None

    def add_shape(self, shape: ShapeDefinition) -> None:
        self.shapes[shape.name] = shape

    def add_class(self, cls: ClassDefinition) -> None:
        self.classes[cls.key] = cls

    @property
    def dynamic(self) -> dict[str, ClassDefinition]:
        return {k: c for k, c in self.classes.items() if not c.is_static}

    @property
    def static(self) -> dict[str, ClassDefinition]:
        return {k: c for k, c in self.classes.items() if c.is_static}

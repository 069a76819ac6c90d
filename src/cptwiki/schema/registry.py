"""
cptwiki Schema Registry

Read-only aggregate of every compiled class, built once by ``build_registry``
and passed explicitly to the engine components.

Derived once at build time:
- default trees per class (arrays empty, shapes expanded, Boolean False,
  other primitives None)
- query paths (search text), openly editable paths (permission filter)
- reference paths per (target class, source class) pair
"""
from __future__ import annotations

import copy
import logging
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Sequence

from ..exceptions import CompileError, UnknownClassError
from ..models import (
    ClassDescriptor,
    ObjectStructure,
    PredefinedItem,
    PrimitiveKind,
    PropertyDescriptor,
    SchemaDefinitions,
)
from .cpt import CPTCompiler
from .paths import PropertyPath, find_paths, travel

logger = logging.getLogger(__name__)


SEARCH_TEXT_DELIMITER = "&&"


def is_queryable(prop: PropertyDescriptor) -> bool:
    return prop.is_queryable


def is_openly_editable(prop: PropertyDescriptor) -> bool:
    return prop.is_openly_editable


def references_class(target: str) -> Callable[[PropertyDescriptor], bool]:
    """Predicate matching Reference fields pointing at ``target``."""
    def predicate(prop: PropertyDescriptor) -> bool:
        return prop.content == PrimitiveKind.REFERENCE and prop.referenced_class == target
    return predicate


class SchemaRegistry:
    """
    Compiled classes and everything derived from them.

    Usage:
        registry = build_registry(definitions)
        default = registry.get_default("song")
        text = registry.search_text("song", data)
    """

    def __init__(
        self,
        classes: Mapping[str, ClassDescriptor],
        shapes: Optional[Mapping[str, ObjectStructure]] = None,
        predefined: Sequence[PredefinedItem] = (),
    ):
        self._classes = MappingProxyType(dict(classes))
        self._shapes = MappingProxyType(dict(shapes or {}))
        self._predefined = tuple(predefined)
        self._structure_defaults: dict[int, dict[str, Any]] = {}

        self._check_references()

        # Shapes first so embedded defaults exist before any class needs them
        for shape in self._shapes.values():
            self.build_default(shape)
        self._defaults = MappingProxyType({
            key: self.build_default(cls.structure) for key, cls in self._classes.items()
        })

        self._query_paths = MappingProxyType({
            key: tuple(find_paths(cls.structure, is_queryable))
            for key, cls in self._classes.items()
        })
        self._editable_paths = MappingProxyType({
            key: tuple(find_paths(cls.structure, is_openly_editable))
            for key, cls in self._classes.items()
        })

        reference_paths: dict[str, dict[str, tuple[PropertyPath, ...]]] = {}
        for target in self._classes:
            predicate = references_class(target)
            by_source = {}
            for source, cls in self._classes.items():
                paths = find_paths(cls.structure, predicate)
                if paths:
                    by_source[source] = tuple(paths)
            reference_paths[target] = by_source
        self._reference_paths = MappingProxyType(reference_paths)

    def _check_references(self) -> None:
        for key, cls in self._classes.items():
            for path in find_paths(cls.structure, lambda p: p.content == PrimitiveKind.REFERENCE):
                prop = self._descriptor_at(cls.structure, path)
                if prop is not None and prop.referenced_class not in self._classes:
                    raise CompileError(
                        message=f"Class '{key}' references unknown class '{prop.referenced_class}'",
                        details={"class": key, "path": list(path)},
                    )

    @staticmethod
    def _descriptor_at(structure: ObjectStructure, path: PropertyPath) -> Optional[PropertyDescriptor]:
        prop = None
        current: Optional[ObjectStructure] = structure
        for step in path:
            if step == "[]":
                continue
            if current is None:
                return None
            prop = current.get(step)
            if prop is None:
                return None
            current = prop.structure
        return prop

    # =========================================================================
    # Classes
    # =========================================================================

    @property
    def classes(self) -> Mapping[str, ClassDescriptor]:
        return self._classes

    @property
    def dynamic_classes(self) -> dict[str, ClassDescriptor]:
        return {k: c for k, c in self._classes.items() if not c.is_static}

    @property
    def static_classes(self) -> dict[str, ClassDescriptor]:
        return {k: c for k, c in self._classes.items() if c.is_static}

    @property
    def shapes(self) -> Mapping[str, ObjectStructure]:
        return self._shapes

    @property
    def predefined(self) -> tuple[PredefinedItem, ...]:
        return self._predefined

    def has_class(self, name: str) -> bool:
        return name in self._classes

    def get_class(self, name: str) -> ClassDescriptor:
        """
        Raises:
            UnknownClassError: If no class is registered under ``name``
        """
        try:
            return self._classes[name]
        except KeyError:
            raise UnknownClassError(
                message=f"Unknown class '{name}'",
                details={"class": name},
            ) from None

    def is_static(self, name: str) -> bool:
        return self.get_class(name).is_static

    def display_name(self, name: str) -> str:
        return self.get_class(name).name

    # =========================================================================
    # Defaults
    # =========================================================================

    def build_default(self, structure: ObjectStructure) -> dict[str, Any]:
        """Default tree of a structure (fresh copy)."""
        cached = self._structure_defaults.get(id(structure))
        if cached is None:
            cached = {}
            for prop in structure:
                if prop.is_array:
                    cached[prop.name] = []
                elif prop.is_object:
                    cached[prop.name] = self.build_default(prop.structure)
                else:
                    cached[prop.name] = None
            self._structure_defaults[id(structure)] = cached
        return copy.deepcopy(cached)

    def get_default(self, name: str) -> dict[str, Any]:
        """Default record of a class (fresh copy)."""
        self.get_class(name)
        return copy.deepcopy(self._defaults[name])

    # =========================================================================
    # Paths
    # =========================================================================

    def query_paths(self, name: str) -> tuple[PropertyPath, ...]:
        self.get_class(name)
        return self._query_paths[name]

    def editable_paths(self, name: str) -> tuple[PropertyPath, ...]:
        self.get_class(name)
        return self._editable_paths[name]

    def reference_paths(self, target: str) -> Mapping[str, tuple[PropertyPath, ...]]:
        """Source class -> paths of its Reference fields pointing at ``target``."""
        self.get_class(target)
        return MappingProxyType(self._reference_paths[target])

    def find_paths(self, predicate: Callable[[PropertyDescriptor], bool]) -> dict[str, list[PropertyPath]]:
        """``find_paths`` over every class."""
        return {key: find_paths(cls.structure, predicate) for key, cls in self._classes.items()}

    # =========================================================================
    # Search Text
    # =========================================================================

    def query_values(self, name: str, data: Any) -> list[str]:
        """Present values of every query field, in declaration order."""
        values = []
        for path in self.query_paths(name):
            for value in travel(path, data):
                if value is not None:
                    values.append(str(value))
        return values

    def search_text(self, name: str, data: Any) -> Optional[str]:
        """Search text stored with an item; static classes have none."""
        if self.is_static(name):
            return None
        return SEARCH_TEXT_DELIMITER.join(self.query_values(name, data))


def split_search_text(search_text: Optional[str]) -> list[str]:
    """Query words stored in an item's search text."""
    if not search_text:
        return []
    return search_text.split(SEARCH_TEXT_DELIMITER)


def build_registry(definitions: SchemaDefinitions) -> SchemaRegistry:
    """
    Compile every shape and class and derive the registry.

    Raises:
        CompileError: On any compile failure, unknown referenced class or
            predefined item of an unknown class
    """
    compiler = CPTCompiler(definitions.shapes)
    shapes = compiler.compile_all_shapes()
    classes = {key: compiler.compile_class(d) for key, d in definitions.classes.items()}

    for item in definitions.predefined:
        cls = classes.get(item.class_name)
        if cls is None or cls.is_static:
            raise CompileError(
                message=f"Predefined item {item.item_id} has no dynamic class '{item.class_name}'",
                details={"class": item.class_name, "item_id": item.item_id},
            )

    registry = SchemaRegistry(classes, shapes, definitions.predefined)
    logger.info(
        "Built schema registry: %d dynamic classes, %d static classes, %d shapes",
        len(registry.dynamic_classes), len(registry.static_classes), len(shapes),
    )
    return registry

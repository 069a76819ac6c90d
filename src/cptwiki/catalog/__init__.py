"""
Built-in wiki catalog.

The shapes, classes and predefined items of the Club Penguin music wiki,
shipped as a schema pack next to this module.
"""
from __future__ import annotations

from pathlib import Path

from ..models import SchemaDefinitions
from ..schema.packs import SchemaPackLoader
from ..schema.registry import SchemaRegistry, build_registry

CATALOG_PATH = Path(__file__).parent / "wiki.yaml"


def load_catalog() -> SchemaDefinitions:
    """Definitions of the built-in catalog."""
    return SchemaPackLoader().load(CATALOG_PATH)


def catalog_registry() -> SchemaRegistry:
    """Registry compiled from the built-in catalog."""
    return build_registry(load_catalog())

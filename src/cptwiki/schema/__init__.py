"""
cptwiki Schema Layer

CPT compiler, path algebra, registry and schema pack loading.
"""
from __future__ import annotations

from .paths import (
    ARRAY_MARKER,
    MISSING,
    PropertyPath,
    ValuePath,
    expand,
    find_paths,
    format_value_path,
    read,
    travel,
    write,
)
from .cpt import (
    CPTCompiler,
    Statement,
    camel_to_phrase,
    compile_schema,
    parse_statement,
    split_statements,
)
from .registry import (
    SEARCH_TEXT_DELIMITER,
    SchemaRegistry,
    build_registry,
    split_search_text,
)
from .rules import RULE_FACTORIES, make_rule
from .packs import (
    SCHEMA_VERSION,
    SchemaPackLoader,
    SchemaPackSchema,
    load_schema_pack,
)

__all__ = [
    # Paths
    "ARRAY_MARKER",
    "MISSING",
    "PropertyPath",
    "ValuePath",
    "expand",
    "find_paths",
    "format_value_path",
    "read",
    "travel",
    "write",
    # Compiler
    "CPTCompiler",
    "Statement",
    "camel_to_phrase",
    "compile_schema",
    "parse_statement",
    "split_statements",
    # Registry
    "SEARCH_TEXT_DELIMITER",
    "SchemaRegistry",
    "build_registry",
    "split_search_text",
    # Packs
    "RULE_FACTORIES",
    "SCHEMA_VERSION",
    "SchemaPackLoader",
    "SchemaPackSchema",
    "load_schema_pack",
    "make_rule",
]

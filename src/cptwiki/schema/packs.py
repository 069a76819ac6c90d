"""
cptwiki Schema Pack Loader

Loads shape and class declarations from YAML or JSON schema packs, validates
them with pydantic and converts them to SchemaDefinitions.

Pack layout:
    schema_version: "1.0.0"
    shapes:
      NAME:
        code: |
          name TEXTSHORT QUERY;
          reference TEXTLONG;
    dynamic:
      song:
        name: Song
        code: |
          names {NAME}[];
        rules:
          - rule: any_non_empty
            params: {fields: [names]}
            message: A song must have a name
    static:
      main_page:
        name: Main Page
        code: body TEXTLONG;
    predefined:
      - class: category
        id: 1
        data: {name: OST List}
"""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..exceptions import SchemaPackError
from ..models import (
    ClassDefinition,
    PredefinedItem,
    Rule,
    SchemaDefinitions,
    ShapeDefinition,
)
from .rules import RULE_FACTORIES, make_rule

logger = logging.getLogger(__name__)


# =============================================================================
# Schema Version
# =============================================================================

SCHEMA_VERSION = "1.0.0"

_SHAPE_NAME_RE = re.compile(r"^[A-Za-z_]\w*$")


# =============================================================================
# Pack Schemas
# =============================================================================

class RuleSchema(BaseModel):
    """Reference to a rule from the rule library."""
    rule: str = Field(..., description="Rule factory name")
    message: str = Field(..., min_length=1, description="Violation message")
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("rule")
    @classmethod
    def validate_rule(cls, v: str) -> str:
        if v not in RULE_FACTORIES:
            raise ValueError(f"unknown rule '{v}' (known: {', '.join(sorted(RULE_FACTORIES))})")
        return v

    model_config = {"extra": "forbid"}


class ShapeSchema(BaseModel):
    """A reusable shape."""
    code: str = Field(..., description="CPT declarations")
    rules: list[RuleSchema] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


class ClassSchema(BaseModel):
    """An item class."""
    name: str = Field(..., min_length=1, description="Human-readable class name")
    code: str = Field(..., description="CPT declarations")
    rules: list[RuleSchema] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


class PredefinedSchema(BaseModel):
    """An item that must exist with a fixed id."""
    class_name: str = Field(..., alias="class")
    id: int = Field(..., ge=1)
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "forbid", "populate_by_name": True}


class SchemaPackSchema(BaseModel):
    """Top-level schema for a schema pack file."""
    schema_version: str = Field(SCHEMA_VERSION, description="Schema version for compatibility")
    shapes: dict[str, ShapeSchema] = Field(default_factory=dict)
    dynamic: dict[str, ClassSchema] = Field(default_factory=dict)
    static: dict[str, ClassSchema] = Field(default_factory=dict)
    predefined: list[PredefinedSchema] = Field(default_factory=list)

    @field_validator("shapes")
    @classmethod
    def validate_shape_names(cls, v: dict[str, ShapeSchema]) -> dict[str, ShapeSchema]:
        for name in v:
            if not _SHAPE_NAME_RE.match(name):
                raise ValueError(f"invalid shape name '{name}'")
        return v

    model_config = {"extra": "forbid"}


def check_schema_version(data: dict[str, Any]) -> bool:
    """Major version of the pack must match ``SCHEMA_VERSION``."""
    pack_version = str(data.get("schema_version", SCHEMA_VERSION))
    return pack_version.split(".")[0] == SCHEMA_VERSION.split(".")[0]


# =============================================================================
# Schema to Definition Converters
# =============================================================================

def _convert_rules(rules: list[RuleSchema], owner: str) -> tuple[Rule, ...]:
    converted = []
    for rule in rules:
        try:
            converted.append(make_rule(rule.rule, rule.message, rule.params))
        except (TypeError, re.error) as e:
            raise SchemaPackError(
                message=f"Invalid parameters for rule '{rule.rule}' on '{owner}': {e}",
                details={"owner": owner, "rule": rule.rule, "params": rule.params},
            )
    return tuple(converted)


def convert_schema_pack(schema: SchemaPackSchema) -> SchemaDefinitions:
    """Convert a validated pack into definitions ready for ``build_registry``."""
    definitions = SchemaDefinitions(version=schema.schema_version)

    for name, shape in schema.shapes.items():
        definitions.add_shape(ShapeDefinition(
            name=name,
            code=shape.code,
            rules=_convert_rules(shape.rules, name),
        ))

    for is_static, classes in ((False, schema.dynamic), (True, schema.static)):
        for key, cls in classes.items():
            if key in definitions.classes:
                raise SchemaPackError(
                    message=f"Class '{key}' is declared as both dynamic and static",
                    details={"class": key},
                )
            definitions.add_class(ClassDefinition(
                key=key,
                name=cls.name,
                code=cls.code,
                rules=_convert_rules(cls.rules, key),
                is_static=is_static,
            ))

    seen_ids: set[int] = set()
    for item in schema.predefined:
        if item.id in seen_ids:
            raise SchemaPackError(
                message=f"Duplicate predefined item id {item.id}",
                details={"item_id": item.id},
            )
        seen_ids.add(item.id)
        definitions.predefined.append(PredefinedItem(
            class_name=item.class_name,
            item_id=item.id,
            data=item.data,
        ))

    return definitions


# =============================================================================
# Loader
# =============================================================================

class SchemaPackLoader:
    """
    Loads schema packs from YAML or JSON files.

    Usage:
        loader = SchemaPackLoader()
        definitions = loader.load("packs/wiki.yaml")
        registry = build_registry(definitions)
    """

    def __init__(self, strict_version: bool = True):
        self.strict_version = strict_version

    def load(self, path: Union[str, Path]) -> SchemaDefinitions:
        """
        Load a schema pack from a file.

        Raises:
            SchemaPackError: If the file cannot be read or fails validation
        """
        path = Path(path)
        try:
            data = self._load_file(path)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise SchemaPackError(
                message=f"Failed to load schema pack: {e}",
                details={"path": str(path), "error": str(e)},
            )
        definitions = self.load_data(data, source=str(path))
        logger.info(
            "Loaded schema pack %s: %d shapes, %d classes",
            path, len(definitions.shapes), len(definitions.classes),
        )
        return definitions

    def load_text(self, text: str) -> SchemaDefinitions:
        """Load a schema pack from YAML text."""
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise SchemaPackError(
                message=f"Failed to parse schema pack: {e}",
                details={"error": str(e)},
            )
        return self.load_data(data)

    def load_data(self, data: Any, source: Optional[str] = None) -> SchemaDefinitions:
        """Validate and convert already-parsed pack data."""
        if not isinstance(data, dict):
            raise SchemaPackError(
                message="Schema pack must be a mapping",
                details={"path": source},
            )

        if self.strict_version and not check_schema_version(data):
            pack_version = data.get("schema_version", "unknown")
            raise SchemaPackError(
                message=f"Schema version mismatch: pack has {pack_version}, expected {SCHEMA_VERSION}",
                details={"pack_version": pack_version, "expected_version": SCHEMA_VERSION},
            )

        try:
            schema = SchemaPackSchema.model_validate(data)
        except ValidationError as e:
            raise SchemaPackError(
                message=f"Schema pack validation failed: {e.error_count()} errors",
                details={"errors": e.errors(include_url=False), "path": source},
            )

        return convert_schema_pack(schema)

    def _load_file(self, path: Path) -> Any:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                return json.load(f)
            return yaml.safe_load(f)


def load_schema_pack(path: Union[str, Path]) -> SchemaDefinitions:
    """Load a schema pack with default settings."""
    return SchemaPackLoader().load(path)

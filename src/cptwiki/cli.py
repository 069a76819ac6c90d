#!/usr/bin/env python3
"""
cptwiki CLI - Schema and History Maintenance

Command-line interface for checking schema packs and records, and for the
administrative history operations of a wiki database.

Usage:
    cptwiki compile [--pack wiki.yaml]
    cptwiki default song
    cptwiki validate song --data record.json
    cptwiki history 42 [--db wiki.sqlite3]
    cptwiki rollback 42 --actor 1
    cptwiki backup [--backup-dir backups]
    cptwiki migrate --item 42 --transform wrap_array_elements
    cptwiki migrate --all --transform mypackage.fixes:rename_links

Settings not given on the command line come from CPTWIKI_* environment
variables (see ``cptwiki.config``).

Exit Codes:
    0   OK                   - Command succeeded
    10  INPUT_INVALID        - Invalid arguments or input file
    11  PACK_ERROR           - Schema pack or CPT compile error
    12  CONSISTENCY_VIOLATION - Stored history is inconsistent
    13  VALIDATION_FAILED    - Record failed validation
    14  REJECTED             - Operation refused (rollback, backup, ...)
    20  INTERNAL_ERROR       - Unexpected internal error
"""
from __future__ import annotations

import argparse
import dataclasses
import importlib
import json
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .canon import canonical_json
from .catalog import catalog_registry
from .config import WikiConfig, load_config
from .engine import TRANSFORMS, Wiki
from .engine.migration import Transform
from .exceptions import (
    CompileError,
    ConfigError,
    ConsistencyViolation,
    CptWikiError,
    SchemaPackError,
    UnknownClassError,
)
from .logging_config import configure_logging
from .schema.packs import load_schema_pack
from .schema.registry import SchemaRegistry, build_registry


# ============================================================================
# EXIT CODES
# ============================================================================

class ExitCode:
    """Deterministic exit codes for scripting."""
    OK = 0
    INPUT_INVALID = 10          # Invalid arguments or input files
    PACK_ERROR = 11             # Pack loading / CPT compile failed
    CONSISTENCY_VIOLATION = 12  # Corrupted item history
    VALIDATION_FAILED = 13      # Record failed validation
    REJECTED = 14               # Operation refused by the engine
    INTERNAL_ERROR = 20         # Unexpected error


# ============================================================================
# OUTPUT FORMATTING
# ============================================================================

class Colors:
    """ANSI color codes for terminal output."""
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BOLD = '\033[1m'
    END = '\033[0m'

    @classmethod
    def disable(cls):
        cls.BLUE = ''
        cls.CYAN = ''
        cls.GREEN = ''
        cls.YELLOW = ''
        cls.RED = ''
        cls.BOLD = ''
        cls.END = ''


def print_success(text: str):
    print(f"{Colors.GREEN}[OK] {text}{Colors.END}")


def print_error(text: str):
    print(f"{Colors.RED}[ERROR] {text}{Colors.END}", file=sys.stderr)


def print_info(text: str):
    print(f"{Colors.BLUE}[INFO] {text}{Colors.END}")


def print_kv(key: str, value: str, indent: int = 0):
    spaces = "  " * indent
    print(f"{spaces}{Colors.BOLD}{key}:{Colors.END} {value}")


# ============================================================================
# HELPERS
# ============================================================================

def resolve_config(args) -> WikiConfig:
    """Environment configuration with command-line overrides applied."""
    config = load_config()
    overrides = {}
    if getattr(args, "pack", None):
        overrides["schema_pack"] = Path(args.pack)
    if getattr(args, "db", None):
        overrides["db_path"] = args.db
    if getattr(args, "backup_dir", None):
        overrides["backup_dir"] = Path(args.backup_dir)
    return dataclasses.replace(config, **overrides)


def load_registry(config: WikiConfig) -> SchemaRegistry:
    if config.schema_pack is not None:
        return build_registry(load_schema_pack(config.schema_pack))
    return catalog_registry()


def resolve_transform(name: str) -> Transform:
    """
    A built-in transform name or ``module:function``.

    Raises:
        ValueError: If the transform cannot be found
    """
    if name in TRANSFORMS:
        return TRANSFORMS[name]
    module_name, _, function_name = name.partition(":")
    if not module_name or not function_name:
        raise ValueError(f"Unknown transform '{name}' (expected a built-in name or module:function)")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Cannot import transform module '{module_name}': {e}") from e
    transform = getattr(module, function_name, None)
    if not callable(transform):
        raise ValueError(f"'{name}' is not a callable transform")
    return transform


def open_wiki(config: WikiConfig) -> Wiki:
    wiki = Wiki.from_config(config)
    wiki.initialize()
    return wiki


# ============================================================================
# COMMANDS
# ============================================================================

def cmd_compile(args):
    """Compile every shape and class of a schema pack."""
    config = resolve_config(args)
    registry = load_registry(config)
    print_success("Schema compiled")
    print_kv("Shapes", str(len(registry.shapes)))
    print_kv("Dynamic classes", ", ".join(sorted(registry.dynamic_classes)))
    print_kv("Static classes", ", ".join(sorted(registry.static_classes)))
    print_kv("Predefined items", str(len(registry.predefined)))
    if args.verbose:
        for key, descriptor in sorted(registry.classes.items()):
            print(canonical_json({key: descriptor.to_dict()}))
    return ExitCode.OK


def cmd_default(args):
    """Print the default record of a class."""
    registry = load_registry(resolve_config(args))
    print(json.dumps(registry.get_default(args.class_name), indent=2, sort_keys=True))
    return ExitCode.OK


def cmd_validate(args):
    """Validate a JSON record against a class."""
    registry = load_registry(resolve_config(args))
    data_path = Path(args.data)
    if not data_path.exists():
        print_error(f"Record file not found: {data_path}")
        return ExitCode.INPUT_INVALID
    try:
        with open(data_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        print_error(f"Invalid JSON in {data_path}: {e}")
        return ExitCode.INPUT_INVALID

    wiki = Wiki(registry)
    errors = wiki.validate(args.class_name, data)
    if errors:
        print_error(f"{len(errors)} violation(s):")
        for error in errors:
            print(f"  {Colors.RED}[X]{Colors.END} {error}")
        return ExitCode.VALIDATION_FAILED
    print_success(f"Record is a valid {args.class_name}")
    return ExitCode.OK


def cmd_history(args):
    """List the revisions of an item."""
    wiki = open_wiki(resolve_config(args))
    try:
        revisions = wiki.list_revisions(args.item_id)
        if not revisions:
            print_info(f"Item {args.item_id} has no revisions")
            return ExitCode.OK
        for revision in revisions:
            flags = []
            if revision.is_creation:
                flags.append("created")
            if revision.is_minor:
                flags.append("minor")
            flags.extend(tag.name.lower() for tag in revision.tags)
            size = wiki.revisions.size_delta(revision.id)
            print(f"  #{revision.id:<6} actor={revision.actor} t={revision.timestamp} "
                  f"size={size:+d} {' '.join(flags)}".rstrip())
        return ExitCode.OK
    finally:
        wiki.close()


def cmd_rollback(args):
    """Roll back the latest same-actor edits of an item."""
    wiki = open_wiki(resolve_config(args))
    try:
        result = wiki.rollback(args.item_id, args.actor)
        if result.deleted:
            print_success(f"Item {args.item_id} deleted by rollback")
        else:
            print_success(f"Item {args.item_id} rolled back as revision {result.revision_id}")
        print_kv("Reverted", ", ".join(str(r) for r in result.reverted))
        return ExitCode.OK
    finally:
        wiki.close()


def cmd_backup(args):
    """Write a snapshot of the database."""
    wiki = open_wiki(resolve_config(args))
    try:
        path = wiki.backup()
        print_success(f"Backup written to {path}")
        return ExitCode.OK
    finally:
        wiki.close()


def cmd_migrate(args):
    """Retro-migrate one item or every item."""
    try:
        transform = resolve_transform(args.transform)
    except ValueError as e:
        print_error(str(e))
        return ExitCode.INPUT_INVALID

    wiki = open_wiki(resolve_config(args))
    try:
        if args.all:
            report = wiki.migrate_all(transform, args.class_names or None)
            print_kv("Backup", str(report.backup))
            print_kv("Migrated", str(len(report.migrated)))
            for item_id, violation in sorted(report.failed.items()):
                print_error(f"Item {item_id}: {violation.message}")
            return ExitCode.OK if report.ok else ExitCode.CONSISTENCY_VIOLATION

        print_info(f"Backup written to {wiki.backup()}")
        versions = wiki.migrate(args.item_id, transform)
        print_success(f"Item {args.item_id} migrated ({len(versions)} versions)")
        return ExitCode.OK
    finally:
        wiki.close()


# ============================================================================
# MAIN
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cptwiki",
        description="cptwiki CLI - schema and history maintenance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit Codes:
  0   OK                     Command succeeded
  10  INPUT_INVALID          Invalid arguments or input file
  11  PACK_ERROR             Schema pack or compile error
  12  CONSISTENCY_VIOLATION  Stored history is inconsistent
  13  VALIDATION_FAILED      Record failed validation
  14  REJECTED               Operation refused
  20  INTERNAL_ERROR         Unexpected error
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # compile
    compile_parser = subparsers.add_parser("compile", help="Compile a schema pack")
    compile_parser.add_argument("--pack", "-p", help="Schema pack YAML (default: built-in catalog)")
    compile_parser.add_argument("--verbose", "-v", action="store_true", help="Print every compiled class")
    compile_parser.set_defaults(func=cmd_compile)

    # default
    default_parser = subparsers.add_parser("default", help="Print the default record of a class")
    default_parser.add_argument("class_name", help="Class key")
    default_parser.add_argument("--pack", "-p", help="Schema pack YAML")
    default_parser.set_defaults(func=cmd_default)

    # validate
    validate_parser = subparsers.add_parser("validate", help="Validate a JSON record")
    validate_parser.add_argument("class_name", help="Class key")
    validate_parser.add_argument("--data", "-d", required=True, help="Record JSON file")
    validate_parser.add_argument("--pack", "-p", help="Schema pack YAML")
    validate_parser.set_defaults(func=cmd_validate)

    # history
    history_parser = subparsers.add_parser("history", help="List the revisions of an item")
    history_parser.add_argument("item_id", type=int, help="Item id")
    history_parser.add_argument("--db", help="SQLite database path")
    history_parser.add_argument("--pack", "-p", help="Schema pack YAML")
    history_parser.set_defaults(func=cmd_history)

    # rollback
    rollback_parser = subparsers.add_parser("rollback", help="Roll back an item")
    rollback_parser.add_argument("item_id", type=int, help="Item id")
    rollback_parser.add_argument("--actor", type=int, required=True, help="Actor performing the rollback")
    rollback_parser.add_argument("--db", help="SQLite database path")
    rollback_parser.add_argument("--pack", "-p", help="Schema pack YAML")
    rollback_parser.set_defaults(func=cmd_rollback)

    # backup
    backup_parser = subparsers.add_parser("backup", help="Back up the database")
    backup_parser.add_argument("--db", help="SQLite database path")
    backup_parser.add_argument("--backup-dir", help="Backup directory")
    backup_parser.add_argument("--pack", "-p", help="Schema pack YAML")
    backup_parser.set_defaults(func=cmd_backup)

    # migrate
    migrate_parser = subparsers.add_parser("migrate", help="Retro-migrate item histories")
    target = migrate_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--item", dest="item_id", type=int, help="Item id")
    target.add_argument("--all", action="store_true", help="Every item")
    migrate_parser.add_argument("--transform", "-t", required=True,
                                help="Built-in transform name or module:function")
    migrate_parser.add_argument("--class", dest="class_names", action="append",
                                help="Only items of this class (with --all, repeatable)")
    migrate_parser.add_argument("--db", help="SQLite database path")
    migrate_parser.add_argument("--backup-dir", help="Backup directory")
    migrate_parser.add_argument("--pack", "-p", help="Schema pack YAML")
    migrate_parser.set_defaults(func=cmd_migrate)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    if not sys.stdout.isatty():
        Colors.disable()

    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return ExitCode.INPUT_INVALID

    try:
        config = load_config()
        configure_logging(config.log_level, config.log_format)
    except ConfigError as e:
        print_error(e.message)
        return ExitCode.INPUT_INVALID

    try:
        return args.func(args)
    except (SchemaPackError, CompileError) as e:
        print_error(f"Schema error: {e.message}")
        return ExitCode.PACK_ERROR
    except UnknownClassError as e:
        print_error(e.message)
        return ExitCode.INPUT_INVALID
    except ConsistencyViolation as e:
        print_error(f"Consistency violation: {e.message}")
        return ExitCode.CONSISTENCY_VIOLATION
    except CptWikiError as e:
        print_error(f"{e.code}: {e.message}")
        return ExitCode.REJECTED
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        return ExitCode.INTERNAL_ERROR


if __name__ == "__main__":
    sys.exit(main())

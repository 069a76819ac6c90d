"""
cptwiki Configuration

Settings come from ``CPTWIKI_*`` environment variables:

    CPTWIKI_LOG_LEVEL      INFO
    CPTWIKI_LOG_FORMAT     json | text
    CPTWIKI_DB_PATH        cptwiki.sqlite3
    CPTWIKI_BACKUP_DIR     backups
    CPTWIKI_SCHEMA_PACK    unset = built-in catalog
    CPTWIKI_SYSTEM_ACTOR   0 (author of predefined items)
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .exceptions import ConfigError
from .logging_config import LOG_FORMATS

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "json"
DEFAULT_DB_PATH = "cptwiki.sqlite3"
DEFAULT_BACKUP_DIR = "backups"
DEFAULT_SYSTEM_ACTOR = 0


@dataclass(frozen=True)
class WikiConfig:
    log_level: str = DEFAULT_LOG_LEVEL
    log_format: str = DEFAULT_LOG_FORMAT
    db_path: str = DEFAULT_DB_PATH
    backup_dir: Path = Path(DEFAULT_BACKUP_DIR)
    schema_pack: Optional[Path] = None
    system_actor: int = DEFAULT_SYSTEM_ACTOR


def load_config(environ: Optional[Mapping[str, str]] = None) -> WikiConfig:
    """
    Build the configuration from ``environ`` (defaults to ``os.environ``).

    Raises:
        ConfigError: If a variable holds an invalid value
    """
    if environ is None:
        environ = os.environ

    def getenv(name: str, default: Optional[str] = None) -> Optional[str]:
        value = environ.get(name)
        return value if value not in (None, "") else default

    log_level = getenv("CPTWIKI_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(
            message=f"CPTWIKI_LOG_LEVEL must be a logging level, got '{log_level}'",
            details={"variable": "CPTWIKI_LOG_LEVEL"},
        )

    log_format = getenv("CPTWIKI_LOG_FORMAT", DEFAULT_LOG_FORMAT).lower()
    if log_format not in LOG_FORMATS:
        raise ConfigError(
            message=f"CPTWIKI_LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}, got '{log_format}'",
            details={"variable": "CPTWIKI_LOG_FORMAT"},
        )

    actor_text = getenv("CPTWIKI_SYSTEM_ACTOR", str(DEFAULT_SYSTEM_ACTOR))
    try:
        system_actor = int(actor_text)
    except ValueError:
        raise ConfigError(
            message=f"CPTWIKI_SYSTEM_ACTOR must be an integer, got '{actor_text}'",
            details={"variable": "CPTWIKI_SYSTEM_ACTOR"},
        )

    schema_pack = getenv("CPTWIKI_SCHEMA_PACK")
    return WikiConfig(
        log_level=log_level,
        log_format=log_format,
        db_path=getenv("CPTWIKI_DB_PATH", DEFAULT_DB_PATH),
        backup_dir=Path(getenv("CPTWIKI_BACKUP_DIR", DEFAULT_BACKUP_DIR)),
        schema_pack=Path(schema_pack) if schema_pack else None,
        system_actor=system_actor,
    )

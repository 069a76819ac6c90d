"""
cptwiki Backups

Full snapshots of the row store, written as canonical JSON files named
``backup_YYYY_MM_DD_HH_MM_SS.json`` (``_N`` is appended when several backups
land in the same second). Snapshots are checked against
``backup.schema.json`` before a restore replaces any table.
"""
from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Union

from jsonschema import Draft202012Validator

from ..canon import canonical_json
from ..exceptions import BackupError
from ..store import RowStore

logger = logging.getLogger(__name__)


BACKUP_FORMAT_VERSION = "1.0.0"
BACKUP_PREFIX = "backup_"
BACKUP_SUFFIX = ".json"
BACKUP_TIME_FORMAT = "%Y_%m_%d_%H_%M_%S"
BACKUP_SCHEMA_PATH = Path(__file__).parent / "backup.schema.json"

_BACKUP_SCHEMA: Optional[dict] = None


def load_backup_schema() -> dict:
    global _BACKUP_SCHEMA
    if _BACKUP_SCHEMA is None:
        with open(BACKUP_SCHEMA_PATH, encoding="utf-8") as f:
            _BACKUP_SCHEMA = json.load(f)
    return _BACKUP_SCHEMA


def backup_filename(moment: datetime, sequence: int = 0) -> str:
    """File name of a backup; ``sequence`` separates backups taken within one second."""
    stamp = moment.strftime(BACKUP_TIME_FORMAT)
    if sequence:
        stamp = f"{stamp}_{sequence}"
    return f"{BACKUP_PREFIX}{stamp}{BACKUP_SUFFIX}"


def validate_snapshot(snapshot: Any) -> list[str]:
    """Schema errors of a snapshot (empty when it is valid)."""
    validator = Draft202012Validator(load_backup_schema())
    messages = []
    for error in validator.iter_errors(snapshot):
        path = " -> ".join(str(p) for p in error.absolute_path)
        messages.append(f"{path}: {error.message}" if path else error.message)
    return messages


class Backuper:
    """
    Writes and restores row store snapshots.

    Usage:
        backuper = Backuper(store, "backups")
        path = backuper.backup()
        backuper.restore(path)
    """

    def __init__(
        self,
        store: RowStore,
        backup_dir: Union[str, Path],
        now: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.backup_dir = Path(backup_dir)
        self.now = now
        self.last_backup: Optional[Path] = None
        self._lock = threading.Lock()

    def snapshot(self) -> dict[str, Any]:
        return {
            "format_version": BACKUP_FORMAT_VERSION,
            "created_at": self.now().isoformat(),
            "tables": self.store.dump(),
        }

    def backup(self) -> Path:
        """
        Write a snapshot of every table.

        Raises:
            BackupError: If the file cannot be written
        """
        with self._lock:
            moment = self.now()
            path = self.backup_dir / backup_filename(moment)
            sequence = 0
            while path.exists():
                sequence += 1
                path = self.backup_dir / backup_filename(moment, sequence)
            snapshot = self.snapshot()
            try:
                self.backup_dir.mkdir(parents=True, exist_ok=True)
                path.write_text(canonical_json(snapshot), encoding="utf-8")
            except OSError as e:
                raise BackupError(
                    message=f"Cannot write backup {path}: {e}",
                    details={"path": str(path)},
                ) from e
            self.last_backup = path

        rows = sum(len(rows) for rows in snapshot["tables"].values())
        logger.info("Wrote backup %s (%d rows)", path, rows)
        return path

    def list_backups(self) -> list[Path]:
        """Backup files in the directory, oldest first."""
        if not self.backup_dir.is_dir():
            return []
        return sorted(self.backup_dir.glob(f"{BACKUP_PREFIX}*{BACKUP_SUFFIX}"))

    def latest_backup(self) -> Optional[Path]:
        backups = self.list_backups()
        return backups[-1] if backups else None

    def is_today_backed_up(self) -> bool:
        today = f"{BACKUP_PREFIX}{self.now().strftime('%Y_%m_%d')}_"
        return any(path.name.startswith(today) for path in self.list_backups())

    def read(self, path: Union[str, Path]) -> dict[str, Any]:
        """
        Load and check a snapshot file.

        Raises:
            BackupError: If the file is unreadable or fails the backup schema
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                snapshot = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise BackupError(
                message=f"Cannot read backup {path}: {e}",
                details={"path": str(path)},
            ) from e

        errors = validate_snapshot(snapshot)
        if errors:
            raise BackupError(
                message=f"Backup {path} failed schema validation",
                details={"path": str(path), "errors": errors[:10]},
            )
        return snapshot

    def restore(self, path: Union[str, Path]) -> None:
        """Replace every table with the content of a snapshot."""
        snapshot = self.read(path)
        self.store.load(snapshot["tables"])
        logger.info("Restored backup %s", path)

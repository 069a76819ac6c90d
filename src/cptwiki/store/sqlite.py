"""
SQLite row store.

One table per row table with typed columns; record data and deltas are
stored as JSON text. Equality filters on scalar columns run in SQL, callable
predicates in Python.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Optional, Union

from ..models import DELETED_ITEMS_TABLE, DELETION_LOG_TABLE, ITEMS_TABLE, REVISIONS_TABLE
from .base import Row, RowPredicate, RowStore, StoreError

logger = logging.getLogger(__name__)


# column -> storage type ("text", "int", "bool", "json")
TABLE_COLUMNS: dict[str, dict[str, str]] = {
    ITEMS_TABLE: {
        "cls": "text",
        "data": "json",
        "search_text": "text",
        "predefined": "bool",
    },
    DELETED_ITEMS_TABLE: {
        "cls": "text",
        "data": "json",
        "search_text": "text",
        "predefined": "bool",
    },
    REVISIONS_TABLE: {
        "item_id": "int",
        "actor": "int",
        "timestamp": "int",
        "patch": "json",
        "is_minor": "bool",
        "is_creation": "bool",
        "tags": "text",
    },
    DELETION_LOG_TABLE: {
        "cls": "text",
        "item_id": "int",
        "actor": "int",
        "timestamp": "int",
        "reason_code": "int",
        "reason_text": "text",
        "is_deletion": "bool",
    },
}

_SQL_TYPES = {"text": "TEXT", "int": "INTEGER", "bool": "INTEGER", "json": "TEXT"}


def _encode(kind: str, value: Any) -> Any:
    if value is None:
        return None
    if kind == "json":
        return json.dumps(value, ensure_ascii=False)
    if kind == "bool":
        return 1 if value else 0
    return value


def _decode(kind: str, value: Any) -> Any:
    if kind == "json":
        return json.loads(value) if value is not None else None
    if kind == "bool":
        return bool(value)
    return value


class SqliteRowStore(RowStore):
    """
    Row store backed by a SQLite database file.

    Usage:
        store = SqliteRowStore("wiki.sqlite3")
        item_id = store.create_row("items", {...})
        store.close()
    """

    def __init__(self, path: Union[str, Path] = ":memory:"):
        self.path = str(path)
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._init_tables()

    def _init_tables(self) -> None:
        with self._lock, self._conn:
            for table, columns in TABLE_COLUMNS.items():
                column_sql = ", ".join(f"{name} {_SQL_TYPES[kind]}" for name, kind in columns.items())
                self._conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {table} (id INTEGER PRIMARY KEY AUTOINCREMENT, {column_sql})"
                )
            self._conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{REVISIONS_TABLE}_item ON {REVISIONS_TABLE}(item_id, id)"
            )
        logger.debug("Initialized SQLite row store at %s", self.path)

    def _columns(self, table: str) -> dict[str, str]:
        self._check_table(table)
        return TABLE_COLUMNS[table]

    def _to_row(self, table: str, record: sqlite3.Row) -> Row:
        columns = self._columns(table)
        row: Row = {"id": record["id"]}
        for name, kind in columns.items():
            row[name] = _decode(kind, record[name])
        return row

    def create_row(self, table: str, values: Row) -> int:
        columns = self._columns(table)
        unknown = set(values) - set(columns) - {"id"}
        if unknown:
            raise StoreError(f"Unknown columns for '{table}': {', '.join(sorted(unknown))}")
        names = [name for name in columns if name in values]
        params = [_encode(columns[name], values[name]) for name in names]
        if values.get("id") is not None:
            names.insert(0, "id")
            params.insert(0, values["id"])
        placeholders = ", ".join("?" for _ in names)
        sql = f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders})"
        if not names:
            sql = f"INSERT INTO {table} DEFAULT VALUES"
        try:
            with self._lock, self._conn:
                cursor = self._conn.execute(sql, params)
                return int(cursor.lastrowid)
        except sqlite3.IntegrityError as e:
            raise StoreError(f"Cannot insert into '{table}': {e}") from e

    def select_by_id(self, table: str, row_id: int) -> Optional[Row]:
        self._columns(table)
        with self._lock:
            record = self._conn.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,)).fetchone()
        return self._to_row(table, record) if record is not None else None

    def select_all(self, table: str) -> list[Row]:
        return self.select_by_predicate(table)

    def select_by_predicate(
        self,
        table: str,
        predicate: Optional[RowPredicate] = None,
        **equals: Any,
    ) -> list[Row]:
        columns = self._columns(table)
        clauses = []
        params = []
        python_equals = {}
        for name, value in equals.items():
            kind = "int" if name == "id" else columns.get(name)
            if kind is None:
                raise StoreError(f"Unknown column '{name}' for '{table}'")
            if kind == "json":
                python_equals[name] = value
            elif value is None:
                clauses.append(f"{name} IS NULL")
            else:
                clauses.append(f"{name} = ?")
                params.append(_encode(kind, value))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._lock:
            records = self._conn.execute(f"SELECT * FROM {table}{where} ORDER BY id", params).fetchall()
        rows = []
        for record in records:
            row = self._to_row(table, record)
            if any(row.get(name) != value for name, value in python_equals.items()):
                continue
            if predicate is not None and not predicate(row):
                continue
            rows.append(row)
        return rows

    def update_by_id(self, table: str, row_id: int, values: Row) -> bool:
        columns = self._columns(table)
        names = [name for name in values if name != "id"]
        unknown = set(names) - set(columns)
        if unknown:
            raise StoreError(f"Unknown columns for '{table}': {', '.join(sorted(unknown))}")
        if not names:
            return self.select_by_id(table, row_id) is not None
        assignments = ", ".join(f"{name} = ?" for name in names)
        params = [_encode(columns[name], values[name]) for name in names] + [row_id]
        with self._lock, self._conn:
            cursor = self._conn.execute(f"UPDATE {table} SET {assignments} WHERE id = ?", params)
            return cursor.rowcount > 0

    def delete_by_id(self, table: str, row_id: int) -> bool:
        self._columns(table)
        with self._lock, self._conn:
            cursor = self._conn.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
            return cursor.rowcount > 0

    def clear(self, table: str) -> None:
        self._columns(table)
        with self._lock, self._conn:
            self._conn.execute(f"DELETE FROM {table}")

    def max_id(self, table: str) -> int:
        self._columns(table)
        with self._lock:
            value = self._conn.execute(f"SELECT MAX(id) FROM {table}").fetchone()[0]
        return int(value or 0)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

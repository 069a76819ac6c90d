"""In-memory row store."""
from __future__ import annotations

import copy
import threading
from typing import Any, Optional

from .base import Row, RowStore, StoreError


class MemoryRowStore(RowStore):
    """Dict-backed row store. Ids increase monotonically per table."""

    def __init__(self) -> None:
        self._rows: dict[str, dict[int, Row]] = {table: {} for table in self.tables}
        self._next_id: dict[str, int] = {table: 1 for table in self.tables}
        self._lock = threading.Lock()

    def create_row(self, table: str, values: Row) -> int:
        self._check_table(table)
        with self._lock:
            row = copy.deepcopy(values)
            row_id = row.get("id")
            if row_id is None:
                row_id = self._next_id[table]
            elif row_id in self._rows[table]:
                raise StoreError(f"Row {row_id} already exists in '{table}'")
            row["id"] = row_id
            self._rows[table][row_id] = row
            self._next_id[table] = max(self._next_id[table], row_id + 1)
            return row_id

    def select_by_id(self, table: str, row_id: int) -> Optional[Row]:
        self._check_table(table)
        row = self._rows[table].get(row_id)
        return copy.deepcopy(row) if row is not None else None

    def select_all(self, table: str) -> list[Row]:
        self._check_table(table)
        rows = self._rows[table]
        return [copy.deepcopy(rows[row_id]) for row_id in sorted(rows)]

    def update_by_id(self, table: str, row_id: int, values: Row) -> bool:
        self._check_table(table)
        with self._lock:
            row = self._rows[table].get(row_id)
            if row is None:
                return False
            for column, value in values.items():
                if column != "id":
                    row[column] = copy.deepcopy(value)
            return True

    def delete_by_id(self, table: str, row_id: int) -> bool:
        self._check_table(table)
        with self._lock:
            return self._rows[table].pop(row_id, None) is not None

    def clear(self, table: str) -> None:
        self._check_table(table)
        with self._lock:
            self._rows[table].clear()
            self._next_id[table] = 1

    def count(self, table: str) -> int:
        self._check_table(table)
        return len(self._rows[table])

    def __repr__(self) -> str:
        sizes: dict[str, Any] = {table: len(rows) for table, rows in self._rows.items()}
        return f"MemoryRowStore({sizes})"

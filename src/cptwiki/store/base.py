"""
cptwiki Row Store Interface

The engine persists everything through this interface: flat rows with an
integer ``id`` and arbitrary JSON-like columns, grouped in named tables.
Rows handed out are copies; mutating them never changes the store.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from ..models import ALL_TABLES

Row = dict[str, Any]
RowPredicate = Callable[[Row], bool]


class StoreError(Exception):
    """Row store operation failed."""


class RowStore(ABC):
    """
    Abstract keyed-row store.

    Subclasses implement the primitive operations; predicate selection,
    snapshots and id bookkeeping are built on top of them.
    """

    tables: tuple[str, ...] = ALL_TABLES

    def _check_table(self, table: str) -> None:
        if table not in self.tables:
            raise StoreError(f"Unknown table '{table}'")

    @abstractmethod
    def create_row(self, table: str, values: Row) -> int:
        """
        Insert a row and return its id.

        An ``id`` in ``values`` is used as-is; otherwise the next id of the
        table is assigned.

        Raises:
            StoreError: If the explicit id is already taken
        """

    @abstractmethod
    def select_by_id(self, table: str, row_id: int) -> Optional[Row]:
        """Row with ``row_id``, or None."""

    @abstractmethod
    def select_all(self, table: str) -> list[Row]:
        """Every row of ``table`` ordered by id."""

    @abstractmethod
    def update_by_id(self, table: str, row_id: int, values: Row) -> bool:
        """Merge ``values`` into a row. False if the row does not exist."""

    @abstractmethod
    def delete_by_id(self, table: str, row_id: int) -> bool:
        """Remove a row. False if the row does not exist."""

    @abstractmethod
    def clear(self, table: str) -> None:
        """Remove every row of ``table``."""

    def select_by_predicate(
        self,
        table: str,
        predicate: Optional[RowPredicate] = None,
        **equals: Any,
    ) -> list[Row]:
        """
        Rows whose columns equal ``equals`` and that satisfy ``predicate``,
        ordered by id.
        """
        rows = []
        for row in self.select_all(table):
            if any(row.get(column) != value for column, value in equals.items()):
                continue
            if predicate is not None and not predicate(row):
                continue
            rows.append(row)
        return rows

    def max_id(self, table: str) -> int:
        """Highest id in ``table`` (0 when empty)."""
        return max((row["id"] for row in self.select_all(table)), default=0)

    def dump(self) -> dict[str, list[Row]]:
        """Snapshot of every table."""
        return {table: self.select_all(table) for table in self.tables}

    def load(self, snapshot: dict[str, list[Row]]) -> None:
        """Replace the content of every table in ``snapshot``."""
        for table, rows in snapshot.items():
            self._check_table(table)
            self.clear(table)
            for row in rows:
                self.create_row(table, row)

    def close(self) -> None:
        """Release resources held by the store."""

"""
cptwiki Row Stores

Abstract row store plus in-memory and SQLite implementations.
"""
from __future__ import annotations

from .base import Row, RowPredicate, RowStore, StoreError
from .memory import MemoryRowStore
from .sqlite import TABLE_COLUMNS, SqliteRowStore

__all__ = [
    "MemoryRowStore",
    "Row",
    "RowPredicate",
    "RowStore",
    "SqliteRowStore",
    "StoreError",
    "TABLE_COLUMNS",
]

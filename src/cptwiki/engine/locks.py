"""Per-item mutual exclusion for read-then-write operations."""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class ItemLocks:
    """
    One re-entrant lock per item id.

    Operations on different items never wait for each other; a rollback may
    re-enter the lock it holds when it commits its own revision.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.RLock] = {}

    def lock_for(self, item_id: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(item_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[item_id] = lock
            return lock

    @contextmanager
    def hold(self, item_id: Hashable) -> Iterator[None]:
        lock = self.lock_for(item_id)
        with lock:
            yield

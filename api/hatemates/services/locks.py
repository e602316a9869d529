import threading
from contextlib import contextmanager
from typing import Iterator


class KeyedLocks:
    """One mutex per key, alive only while someone holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[int, threading.Lock] = {}
        self._holders: dict[int, int] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: int) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._holders[key] = self._holders.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[key] -= 1
                if not self._holders[key]:
                    del self._holders[key]
                    del self._locks[key]


reconciliation_locks = KeyedLocks()

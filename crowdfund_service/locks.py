import threading
from contextlib import contextmanager
from typing import Dict, Hashable

class KeyedLocks:
    """One exclusive lock per key, created on first use and kept for the store's lifetime"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}

    def get(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, key: Hashable):
        with self.get(key):
            yield

    def __len__(self):
        return len(self._locks)

"""
Per-identifier mutual exclusion
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List

from ..errors import StorageError


class KeyedLocks:
    """
    Hands out one reentrant lock per key

    Operations on different keys never contend. A key's lock is dropped once
    no holder or waiter references it, so unknown identifiers do not
    accumulate.
    """

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._slots: Dict[str, List] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """
        Hold the lock for `key` for the duration of the block

        Raises:
            StorageError: If the lock is not acquired within the timeout
        """
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = [threading.RLock(), 0]
                self._slots[key] = slot
            slot[1] += 1

        try:
            if not slot[0].acquire(timeout=self.timeout):
                raise StorageError(f"Timed out after {self.timeout}s waiting for {key}")
            try:
                yield
            finally:
                slot[0].release()
        finally:
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    del self._slots[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)

# backend/kraft/services/locks.py
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List

from kraft.exceptions import ConflictError

logger = logging.getLogger(__name__)


class KeyedLock:
    """
    One mutex per key, created on demand and dropped when nobody holds or
    waits on it. Operations on different keys never block each other.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[Hashable, List] = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, key: Hashable, timeout: float) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1

        acquired = entry[0].acquire(timeout=timeout)
        try:
            if not acquired:
                logger.warning(f"Timed out waiting {timeout:g}s for lock on {key}")
                raise ConflictError()
            yield
        finally:
            if acquired:
                entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


# Process-wide registry of per-instance and per-snapshot locks
resource_locks = KeyedLock()

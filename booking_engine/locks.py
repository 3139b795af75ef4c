import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

logger = logging.getLogger(__name__)


class ResourceLocks:
    """
    One mutex per resource id, created on first use.

    Serialises the check-then-insert sequence of booking creation within
    a single process. Approval does not rely on it; it row-locks in the
    database instead.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}

    def _lock_for(self, resource_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(resource_id)
            if lock is None:
                lock = self._locks[resource_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, resource_id: int) -> Iterator[None]:
        lock = self._lock_for(resource_id)
        if not lock.acquire(blocking=False):
            logger.debug("Waiting for lock on resource %s", resource_id)
            lock.acquire()
        try:
            yield
        finally:
            lock.release()

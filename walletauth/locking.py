# walletauth/locking.py

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Tuple

from .services.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)


class KeyedLock:
    """Registry of per-key mutexes.

    Used to serialize work for a single identity (nonce check + rotation,
    refresh token sweep/evict/insert) while letting different identities
    proceed in parallel. Entries are reference counted and dropped once no
    thread holds or waits on them, so the registry does not grow with the
    number of identities ever seen.
    """

    def __init__(self, name: str, timeout: float):
        self.name = name
        self.timeout = timeout
        self._guard = threading.Lock()
        # key -> (lock, number of holders + waiters)
        self._locks: Dict[str, Tuple[threading.Lock, int]] = {}

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, users + 1)
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Holds the lock for ``key``; raises ServiceUnavailableError if it can't be taken in time."""
        lock = self._checkout(key)
        try:
            if not lock.acquire(timeout=self.timeout):
                logger.warning(f"{self.name}: timed out after {self.timeout}s waiting for lock on {key[:10]}...")
                raise ServiceUnavailableError("The service is busy. Please retry.")
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

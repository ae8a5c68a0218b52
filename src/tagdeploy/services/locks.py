"""Per-repository mutual exclusion for release runs."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class RepositoryLocks:
    """One lock per repository so a working tree never sees two runs at once."""

    def __init__(self, logger):
        self.logger = logger
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, repository: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(repository, threading.Lock())

    def is_locked(self, repository: str) -> bool:
        return self._lock_for(repository).locked()

    @contextmanager
    def hold(self, repository: str) -> Iterator[None]:
        lock = self._lock_for(repository)
        if not lock.acquire(blocking=False):
            self.logger.info("[%s] Waiting for the release already in progress...", repository)
            lock.acquire()
        try:
            yield
        finally:
            lock.release()

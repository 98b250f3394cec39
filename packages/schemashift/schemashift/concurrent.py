"""Timed mutual exclusion helper."""

import threading
from contextlib import contextmanager
from typing import Callable, Optional, TypeVar

from .errors import LockStateError

T = TypeVar("T")


class LockTemplate:
    """
    Runs callables under a local lock with a bounded wait.

    A wait that times out raises LockStateError rather than blocking forever.
    """

    def __init__(self, timeout_seconds: float, lock=None):
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive; was: {timeout_seconds}")
        self.timeout_seconds = timeout_seconds
        self._lock = lock if lock is not None else threading.RLock()

    @contextmanager
    def hold(self, timeout_seconds: Optional[float] = None):
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        if not self._lock.acquire(timeout=timeout):
            raise LockStateError(f"Failed to acquire lock within {timeout}s")
        try:
            yield
        finally:
            self._lock.release()

    def run(self, callback: Callable[[], T], timeout_seconds: Optional[float] = None) -> T:
        with self.hold(timeout_seconds):
            return callback()

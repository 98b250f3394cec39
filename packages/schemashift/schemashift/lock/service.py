"""
Renewable, reentrant lease lock.

Cross-process exclusion comes from the LockStateRepository compare-and-set.
Inside one process the service counts reentrant acquisitions so nested
work shares one lease, and renews the lease once a quarter of its TTL has
elapsed since it was last written.

State machine:

    UNHELD (count == 0) --try_lock, CAS ok--> HELD (count == 1)
    HELD   --try_lock--> HELD (count + 1, renew if older than TTL / 4)
    HELD   --unlock, count > 1--> HELD (count - 1)
    HELD   --unlock, count == 1--> UNHELD (owner cleared)
"""

import getpass
import logging
import socket
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..concurrent import LockTemplate
from ..config import Configuration
from ..errors import LockLostError, LockStateError, MisconfigurationError
from .repository import LockRecord, LockStateRepository

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=1)
LOCAL_GUARD_TIMEOUT_SECONDS = 60

_TIME_UNITS = {
    "MILLISECONDS": timedelta(milliseconds=1),
    "SECONDS": timedelta(seconds=1),
    "MINUTES": timedelta(minutes=1),
    "HOURS": timedelta(hours=1),
    "DAYS": timedelta(days=1),
}


class LockService(ABC):

    @abstractmethod
    def try_lock(self, timeout_seconds: float) -> bool:
        """
        Try to acquire (or re-enter) the lock.

        Args:
            timeout_seconds: Max wait for the local guard

        Returns:
            True if held after the call, False if another holder owns it
        """

    @abstractmethod
    def unlock(self) -> None:
        ...

    @abstractmethod
    def get_lock(self) -> LockRecord:
        ...

    def close(self) -> None:
        pass


def ttl_from_configuration(configuration: Configuration) -> timedelta:
    """Read ``lock.ttl.timeout`` and ``lock.ttl.timeUnit`` (default 1 HOURS)."""
    timeout = configuration.get_int("lock.ttl.timeout")
    unit_name = configuration.get_string("lock.ttl.timeUnit")

    if timeout is None and unit_name is None:
        return DEFAULT_TTL

    unit = _TIME_UNITS.get((unit_name or "HOURS").strip().upper())
    if unit is None:
        raise MisconfigurationError(f"Unknown lock.ttl.timeUnit: {unit_name}")
    ttl = unit * (timeout if timeout is not None else 1)
    if ttl <= timedelta(0):
        raise MisconfigurationError(f"Lock TTL must be positive, was: {ttl}")
    return ttl


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DatabaseLockService(LockService):
    """Lease lock over a LockStateRepository."""

    def __init__(
        self,
        repository: LockStateRepository,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.repository = repository
        self.lock_id = str(uuid.uuid4())
        self.ttl = ttl
        self.renew_after = ttl / 4
        self._clock = clock
        self._guard = LockTemplate(LOCAL_GUARD_TIMEOUT_SECONDS)
        self._acquired_count = 0
        self._acquired_expiration: Optional[datetime] = None
        self._locked_by = _describe_holder()

    @classmethod
    def from_configuration(cls, repository: LockStateRepository, configuration: Configuration) -> "DatabaseLockService":
        return cls(repository, ttl_from_configuration(configuration))

    @property
    def acquired_count(self) -> int:
        return self._acquired_count

    def try_lock(self, timeout_seconds: float) -> bool:
        logger.debug(f"try_lock({timeout_seconds})")
        return self._guard.run(self._try_lock_with_guard_held, timeout_seconds)

    def _try_lock_with_guard_held(self) -> bool:
        if self._acquired_count == 0:
            could_lock = self._acquire()
        else:
            acquired_at = self._acquired_expiration - self.ttl
            if self._clock() > acquired_at + self.renew_after:
                logger.debug(f"Renewing lease, acquired_count={self._acquired_count}")
                self._acquired_expiration = self._renew()
            could_lock = True

        if could_lock:
            self._acquired_count += 1

        logger.debug(f"acquired_count={self._acquired_count}; could_lock={could_lock}")
        return could_lock

    def _acquire(self) -> bool:
        expiration = self._next_expiration()
        acquired = self.repository.update_id_and_expiration_if_owner_is_null_or_expiration_is_reached(
            self.lock_id, expiration, self._locked_by
        )
        if acquired:
            self._acquired_expiration = expiration
            logger.info(f"Lock acquired: {self.lock_id} until {expiration.isoformat()}")
        return acquired

    def _renew(self) -> datetime:
        expiration = self._next_expiration()
        logger.info(f"Renewing lock expiration to {expiration.isoformat()} for: {self.lock_id}")
        if not self.repository.update_lock_expiration(self.lock_id, expiration):
            raise LockLostError(f"Failure renewing lock for lock id: {self.lock_id}")
        return expiration

    def _next_expiration(self) -> datetime:
        return self._clock().astimezone(timezone.utc) + self.ttl

    def unlock(self) -> None:
        self._guard.run(self._unlock_with_guard_held)

    def _unlock_with_guard_held(self) -> None:
        if self._acquired_count == 0:
            raise LockStateError("The lock is not held!")

        self._acquired_count -= 1
        if self._acquired_count == 0:
            self._acquired_expiration = None
            self.repository.update_id_to_null(self.lock_id)
            logger.info(f"Lock released: {self.lock_id}")
        else:
            logger.debug(f"Not releasing the lock, acquired_count={self._acquired_count}")

    def get_lock(self) -> LockRecord:
        return self.repository.get_lock_record()

    def close(self) -> None:
        self.repository.close()

    def __repr__(self) -> str:
        return f"DatabaseLockService(lock_id={self.lock_id!r}, ttl={self.ttl})"


def _describe_holder() -> str:
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    return f"{user}@{socket.gethostname()}"

from .factory import create_lock_service
from .repository import (
    InMemoryLockStateRepository,
    LockRecord,
    LockStateRepository,
    SqlLockStateRepository,
)
from .service import DatabaseLockService, LockService, ttl_from_configuration

__all__ = [
    "create_lock_service",
    "DatabaseLockService",
    "InMemoryLockStateRepository",
    "LockRecord",
    "LockService",
    "LockStateRepository",
    "SqlLockStateRepository",
    "ttl_from_configuration",
]

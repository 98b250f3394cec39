"""Builds the configured LockService."""

import logging
from typing import Optional

from ..config import Configuration
from ..database import DatabaseFactory
from ..errors import MisconfigurationError
from .repository import SqlLockStateRepository
from .service import DatabaseLockService, LockService

logger = logging.getLogger(__name__)

LOCK_DATABASE_NAME = "lock"


def create_lock_service(
    configuration: Configuration,
    database_factory: DatabaseFactory,
    context=None,
) -> Optional[LockService]:
    """
    Create the lock service named by ``lock.type``.

    ``none`` (the default) disables locking and returns None. ``database``
    stores the lock row through ``lock.database.*``.

    Raises:
        MisconfigurationError: For an unknown lock type
    """
    lock_type = (configuration.get_string("lock.type") or "none").strip().lower()

    if lock_type == "none":
        logger.debug("Locking is disabled (lock.type=none)")
        return None

    if lock_type == "database":
        database_configuration = Configuration({"logSql": "false"}).add_all(
            configuration.get_prefix_namespace("lock", "database")
        )
        database = database_factory.get_database(LOCK_DATABASE_NAME, database_configuration, context)
        repository = SqlLockStateRepository(database, database_configuration)
        service = DatabaseLockService.from_configuration(repository, configuration)
        logger.info(f"Using database lock: {service!r}")
        return service

    raise MisconfigurationError(f"Unknown lock.type: '{lock_type}'; expected one of: none, database")

"""
Persistence of the single lock record.

The record is one logical row ``(lock_id, lock_expiration, locked_by)``.
Acquisition is a conditional update that only succeeds while the row has
no owner or its lease has expired, so the store itself arbitrates between
competing processes.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import Column, DateTime, MetaData, String, Table, func, insert, or_, select, update

from ..config import Configuration
from ..database import Database

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TABLE_NAME = "schemashift_lock_v1"


class LockRecord(BaseModel):
    """Snapshot of the external lock row."""

    lock_id: Optional[str] = None
    expiration: Optional[datetime] = None
    locked_by: Optional[str] = None


class LockStateRepository(ABC):

    @abstractmethod
    def update_id_and_expiration_if_owner_is_null_or_expiration_is_reached(
        self, lock_id: str, expiration: datetime, locked_by: Optional[str] = None
    ) -> bool:
        """Take ownership if the row is free or expired. Returns True on success."""

    @abstractmethod
    def update_lock_expiration(self, lock_id: str, expiration: datetime) -> bool:
        """Extend the lease if still owned by lock_id. Returns True on success."""

    @abstractmethod
    def update_id_to_null(self, lock_id: str) -> bool:
        """Release ownership held by lock_id. Returns True if a row changed."""

    @abstractmethod
    def get_lock_record(self) -> LockRecord:
        ...

    def close(self) -> None:
        pass


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _to_aware_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class InMemoryLockStateRepository(LockStateRepository):
    """Process-local lock record; coordinates threads or services sharing one instance."""

    def __init__(self, clock=_utc_now):
        self._record = LockRecord()
        self._mutex = threading.Lock()
        self._clock = clock

    def update_id_and_expiration_if_owner_is_null_or_expiration_is_reached(
        self, lock_id: str, expiration: datetime, locked_by: Optional[str] = None
    ) -> bool:
        with self._mutex:
            record = self._record
            expired = record.expiration is not None and record.expiration < self._clock()
            if record.lock_id is None or expired:
                self._record = LockRecord(lock_id=lock_id, expiration=expiration, locked_by=locked_by)
                return True
            return False

    def update_lock_expiration(self, lock_id: str, expiration: datetime) -> bool:
        with self._mutex:
            if self._record.lock_id != lock_id:
                return False
            self._record = self._record.model_copy(update={"expiration": expiration})
            return True

    def update_id_to_null(self, lock_id: str) -> bool:
        with self._mutex:
            if self._record.lock_id != lock_id:
                return False
            self._record = self._record.model_copy(update={"lock_id": None})
            return True

    def get_lock_record(self) -> LockRecord:
        with self._mutex:
            return self._record.model_copy()


class SqlLockStateRepository(LockStateRepository):
    """
    Lock record stored in a relational table.

    Configuration (``lock.database.*``): the Database keys plus
    ``table.name`` (default ``schemashift_lock_v1``) and ``table.create``
    (default true) to create the table and its single row when missing.
    """

    def __init__(self, database: Database, configuration: Configuration = None, clock=_utc_now):
        configuration = configuration or Configuration()
        self.database = database
        self._clock = clock

        table_name = configuration.get_string("table.name") or DEFAULT_LOCK_TABLE_NAME
        self._metadata = MetaData()
        self.table = Table(
            table_name,
            self._metadata,
            Column("lock_id", String(255), nullable=True),
            Column("lock_expiration", DateTime(), nullable=True),
            Column("locked_by", String(255), nullable=True),
        )

        create = configuration.get_bool("table.create")
        if create is None or create:
            self._create_table_if_not_found()

    def _create_table_if_not_found(self) -> None:
        engine = self.database.engine
        if not self.database.has_table(self.table.name):
            logger.info(f"Lock table is NOT found, creating it now: {self.table.name}")
            self._metadata.create_all(engine, tables=[self.table], checkfirst=True)

        with engine.begin() as connection:
            row_count = connection.execute(select(func.count()).select_from(self.table)).scalar_one()
            if row_count == 0:
                logger.info(f"Inserting the lock row into {self.table.name}")
                connection.execute(insert(self.table).values(lock_id=None, lock_expiration=None, locked_by=None))

    def update_id_and_expiration_if_owner_is_null_or_expiration_is_reached(
        self, lock_id: str, expiration: datetime, locked_by: Optional[str] = None
    ) -> bool:
        now = _to_naive_utc(self._clock())
        statement = (
            update(self.table)
            .where(or_(self.table.c.lock_id.is_(None), self.table.c.lock_expiration < now))
            .values(lock_id=lock_id, lock_expiration=_to_naive_utc(expiration), locked_by=locked_by)
        )
        with self.database.engine.begin() as connection:
            return connection.execute(statement).rowcount > 0

    def update_lock_expiration(self, lock_id: str, expiration: datetime) -> bool:
        statement = (
            update(self.table)
            .where(self.table.c.lock_id == lock_id)
            .values(lock_expiration=_to_naive_utc(expiration))
        )
        with self.database.engine.begin() as connection:
            return connection.execute(statement).rowcount > 0

    def update_id_to_null(self, lock_id: str) -> bool:
        statement = update(self.table).where(self.table.c.lock_id == lock_id).values(lock_id=None)
        with self.database.engine.begin() as connection:
            return connection.execute(statement).rowcount > 0

    def get_lock_record(self) -> LockRecord:
        with self.database.engine.connect() as connection:
            row = connection.execute(select(self.table)).mappings().first()
        if row is None:
            return LockRecord()
        return LockRecord(
            lock_id=row["lock_id"],
            expiration=_to_aware_utc(row["lock_expiration"]),
            locked_by=row["locked_by"],
        )

    def close(self) -> None:
        self.database.close()

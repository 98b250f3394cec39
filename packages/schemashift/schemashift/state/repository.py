"""
Stores of applied change records.

Two implementations exist: a CSV file per environment (the default) and a
relational table. Both key records by the change file id string.
"""

import csv
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict
from sqlalchemy import Column, DateTime, MetaData, String, Table, delete, insert, or_, select

from ..changefile import ChangeFileFactory, ChangeFileId
from ..concurrent import LockTemplate
from ..database import Database
from ..errors import StateError

logger = logging.getLogger(__name__)

DEFAULT_STATE_TABLE_NAME = "schemashift_state_v1"
PENDING_COMMIT_SUFFIX = ".pending-commit.tmp"
CSV_LOCK_TIMEOUT_SECONDS = 30

CSV_HEADERS = ["CHANGE_FILE_ID", "FILE_HASH", "APPLY_TIMESTAMP", "APPLIED_BY"]


class StateRecord(BaseModel):
    """One applied change."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    change_file_id: ChangeFileId
    file_hash: Optional[str] = None
    apply_timestamp: Optional[datetime] = None
    applied_by: Optional[str] = None


class StateRepository(ABC):

    @abstractmethod
    def get_all_records(self) -> List[StateRecord]:
        ...

    @abstractmethod
    def save_record(self, record: StateRecord) -> None:
        ...

    @abstractmethod
    def delete_records_by_ids(self, ids: Iterable[ChangeFileId]) -> int:
        """Delete every record whose id is in ids. Returns the number deleted."""

    def close(self) -> None:
        pass


# ==================== CSV ====================

class CsvStateRepository(StateRepository):
    """
    Records kept in one CSV file.

    Appends go straight to the file. Deletes rewrite the remaining records
    into ``<file>.pending-commit.tmp`` and then replace the state file with
    it, so a crash leaves either the old or the new content. A pending file
    found at startup holds the last complete write and replaces the state
    file.
    """

    def __init__(self, state_file: Union[str, Path], change_file_factory: ChangeFileFactory):
        self.state_file = Path(state_file)
        self.pending_file = self.state_file.with_name(self.state_file.name + PENDING_COMMIT_SUFFIX)
        self.change_file_factory = change_file_factory
        self._lock = LockTemplate(CSV_LOCK_TIMEOUT_SECONDS)

        self._recover_pending_commit()

    def _recover_pending_commit(self) -> None:
        if not self.pending_file.exists():
            return
        logger.warning(f"Found pending commit {self.pending_file}, restoring it as {self.state_file}")
        os.replace(self.pending_file, self.state_file)

    def get_all_records(self) -> List[StateRecord]:
        with self._lock.hold():
            return self._read_records()

    def save_record(self, record: StateRecord) -> None:
        with self._lock.hold():
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            write_header = not self.state_file.exists() or self.state_file.stat().st_size == 0
            with open(self.state_file, "a", newline="", encoding="utf-8") as f:
                writer = csv.writer(f)
                if write_header:
                    writer.writerow(CSV_HEADERS)
                writer.writerow(_to_row(record))
            logger.debug(f"Saved state record: {record.change_file_id}")

    def delete_records_by_ids(self, ids: Iterable[ChangeFileId]) -> int:
        doomed: Set[str] = {str(change_file_id) for change_file_id in ids}
        with self._lock.hold():
            records = self._read_records()
            remaining = [record for record in records if str(record.change_file_id) not in doomed]
            deleted = len(records) - len(remaining)
            if deleted == 0:
                return 0

            with open(self.pending_file, "w", newline="", encoding="utf-8") as f:
                writer = csv.writer(f)
                writer.writerow(CSV_HEADERS)
                for record in remaining:
                    writer.writerow(_to_row(record))
            os.replace(self.pending_file, self.state_file)

            logger.debug(f"Deleted {deleted} state record(s) from {self.state_file}")
            return deleted

    def _read_records(self) -> List[StateRecord]:
        if not self.state_file.exists():
            return []

        records: List[StateRecord] = []
        with open(self.state_file, newline="", encoding="utf-8") as f:
            for line_number, row in enumerate(csv.DictReader(f), start=2):
                try:
                    records.append(self._from_row(row))
                except (KeyError, ValueError) as e:
                    raise StateError(f"Malformed state record at {self.state_file}:{line_number}: {e}") from e
        return records

    def _from_row(self, row) -> StateRecord:
        timestamp = row["APPLY_TIMESTAMP"]
        return StateRecord(
            change_file_id=self.change_file_factory.parse(row["CHANGE_FILE_ID"]),
            file_hash=row["FILE_HASH"] or None,
            apply_timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
            applied_by=row["APPLIED_BY"] or None,
        )

    def __repr__(self) -> str:
        return f"CsvStateRepository({self.state_file})"


def _to_row(record: StateRecord) -> List[str]:
    return [
        str(record.change_file_id),
        record.file_hash or "",
        record.apply_timestamp.isoformat() if record.apply_timestamp else "",
        record.applied_by or "",
    ]


# ==================== Database ====================

class SqlStateRepository(StateRepository):
    """Records kept in ``<table>(change_file_id, file_hash, apply_timestamp, applied_by)``."""

    def __init__(
        self,
        database: Database,
        change_file_factory: ChangeFileFactory,
        table_name: str = DEFAULT_STATE_TABLE_NAME,
    ):
        self.database = database
        self.change_file_factory = change_file_factory

        self._metadata = MetaData()
        self.table = Table(
            table_name,
            self._metadata,
            Column("change_file_id", String(change_file_factory.max_path_length), primary_key=True),
            Column("file_hash", String(255), nullable=True),
            Column("apply_timestamp", DateTime(), nullable=True),
            Column("applied_by", String(255), nullable=True),
        )

        if not database.has_table(table_name):
            logger.info(f"State table is NOT found, creating it now: {table_name}")
            self._metadata.create_all(database.engine, tables=[self.table], checkfirst=True)

    def get_all_records(self) -> List[StateRecord]:
        with self.database.engine.connect() as connection:
            rows = connection.execute(select(self.table)).mappings().all()
        return [
            StateRecord(
                change_file_id=self.change_file_factory.parse(row["change_file_id"]),
                file_hash=row["file_hash"],
                apply_timestamp=_attach_utc(row["apply_timestamp"]),
                applied_by=row["applied_by"],
            )
            for row in rows
        ]

    def save_record(self, record: StateRecord) -> None:
        timestamp = record.apply_timestamp
        if timestamp is not None and timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)

        statement = insert(self.table).values(
            change_file_id=str(record.change_file_id),
            file_hash=record.file_hash,
            apply_timestamp=timestamp,
            applied_by=record.applied_by,
        )
        with self.database.engine.begin() as connection:
            connection.execute(statement)

    def delete_records_by_ids(self, ids: Iterable[ChangeFileId]) -> int:
        conditions = [self.table.c.change_file_id == str(change_file_id) for change_file_id in ids]
        if not conditions:
            return 0
        with self.database.engine.begin() as connection:
            return connection.execute(delete(self.table).where(or_(*conditions))).rowcount

    def close(self) -> None:
        self.database.close()

    def __repr__(self) -> str:
        return f"SqlStateRepository({self.table.name})"


def _attach_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)

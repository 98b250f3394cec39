"""Records applied changes and forgets reverted ones."""

import getpass
import logging
from datetime import datetime, timezone
from typing import List, Optional

from ..changefile import ApplyFile, ChangeFile, ChangeType, RevertFile
from ..config import Configuration
from ..errors import StateError
from ..hashing import HashService
from .repository import StateRecord, StateRepository

logger = logging.getLogger(__name__)

APPLIED_BY_OVERRIDE_KEY = "state.override.appliedBy.userId"


class StateService:
    """
    Bookkeeping of which change files have been applied.

    Applying stores one StateRecord for the apply file. Reverting deletes the
    record of the matching apply file, whatever change type it was stored
    under; exactly one record must go.
    """

    def __init__(
        self,
        repository: StateRepository,
        configuration: Optional[Configuration] = None,
        hash_service: Optional[HashService] = None,
    ):
        self.repository = repository
        self.hash_service = hash_service
        self._applied_by = _resolve_applied_by(configuration or Configuration())

    def get_state_records(self) -> List[StateRecord]:
        return self.repository.get_all_records()

    def get_applied_changes(self) -> List[str]:
        """Id strings of every applied change file."""
        return [str(record.change_file_id) for record in self.get_state_records()]

    def register_completion(self, change_file: ChangeFile) -> None:
        if isinstance(change_file, RevertFile) or change_file.change_type == ChangeType.REVERT:
            self._register_revert(change_file)
        elif isinstance(change_file, ApplyFile) or change_file.change_type == ChangeType.APPLY:
            self._register_apply(change_file)
        else:
            raise StateError(f"Cannot register completion of untyped change file: {change_file.id}")

    def _register_apply(self, apply_file: ChangeFile) -> None:
        file_hash = self.hash_service.hash_file(apply_file.file) if self.hash_service else None
        record = StateRecord(
            change_file_id=apply_file.id,
            file_hash=file_hash,
            apply_timestamp=datetime.now(timezone.utc),
            applied_by=self._applied_by,
        )
        self.repository.save_record(record)
        logger.info(f"Registered as applied: {apply_file.id}")

    def _register_revert(self, revert_file: ChangeFile) -> None:
        ids = [revert_file.id.with_change_type(change_type) for change_type in (ChangeType.APPLY, ChangeType.REVERT, None)]
        deleted = self.repository.delete_records_by_ids(ids)
        if deleted != 1:
            raise StateError(f"{deleted} records deleted from state for: {revert_file.id}")
        logger.info(f"Registered as reverted: {revert_file.id}")

    def close(self) -> None:
        self.repository.close()


def _resolve_applied_by(configuration: Configuration) -> str:
    override = configuration.get_string(APPLIED_BY_OVERRIDE_KEY)
    if override and override.strip():
        logger.info(f"Overriding appliedBy with configuration value: {override}")
        return override
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"

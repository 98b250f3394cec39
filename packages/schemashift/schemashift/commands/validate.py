"""Drift detection for applied change files."""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..changefile import ApplyFile, ChangeFileId
from ..command.context import CommandContext
from ..command.pipeline import Command
from ..errors import MisconfigurationError
from ..hashing import HashService
from ..state.repository import StateRecord
from ..state.service import StateService
from .discovery import GetApplyFiles

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationFailure:
    change_file_id: ChangeFileId
    message: str

    def __str__(self) -> str:
        return self.message


class ValidateApplyFiles(Command[List[ValidationFailure]]):
    """
    Compare every state record against the apply file on disk.

    A record fails when it has no hash, when its file no longer exists, or
    when the file hash differs (hex compared case-insensitively). All
    failures are returned together; none is raised.
    """

    def __init__(self, filter_expression: Optional[str] = None):
        self.filter_expression = filter_expression

    def execute(self, context: CommandContext) -> List[ValidationFailure]:
        hash_service = context.get_optional(HashService)
        if hash_service is None:
            raise MisconfigurationError("Validation requires 'validation.type: contentHash' in configuration")

        apply_files: Dict[ChangeFileId, ApplyFile] = {
            apply_file.id: apply_file for apply_file in GetApplyFiles(self.filter_expression).execute(context)
        }
        records = context.get(StateService).get_state_records()
        logger.info(f"{len(records)} applied changes found in state, validating them against the files")

        failures: List[ValidationFailure] = []
        for record in records:
            failure = self._validate(record, apply_files.get(record.change_file_id), hash_service)
            if failure is not None:
                logger.error(f"Validation failed of: {record.change_file_id}: {failure.message}")
                failures.append(failure)
        return failures

    @staticmethod
    def _validate(
        record: StateRecord, apply_file: Optional[ApplyFile], hash_service: HashService
    ) -> Optional[ValidationFailure]:
        change_file_id = record.change_file_id
        expected = record.file_hash
        if expected is None or not expected.strip():
            return ValidationFailure(change_file_id, f"Cannot validate state record, as hash is null in: {change_file_id}")

        if apply_file is None:
            return ValidationFailure(change_file_id, f"No change file found for state record: {change_file_id}")

        try:
            actual = hash_service.hash_file(apply_file.file)
        except OSError:
            return ValidationFailure(change_file_id, f"Failed to read file: {apply_file.file}")

        if actual.lower() != expected.strip().lower():
            return ValidationFailure(change_file_id, f"File hash does not match hash from state: {change_file_id}")

        logger.info(f"Validation successful for: {apply_file.file}")
        return None

    def __repr__(self) -> str:
        return f"ValidateApplyFiles(filter_expression={self.filter_expression!r})"

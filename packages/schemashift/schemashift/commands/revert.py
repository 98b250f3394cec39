"""Revert commands."""

import logging
from typing import List, Optional

from ..change import ChangeService
from ..changefile import ChangeFileId, RevertFile
from ..command.context import CommandContext
from ..command.pipeline import Command
from ..state.service import StateService
from .discovery import GetRevertFiles

logger = logging.getLogger(__name__)


class GetApplicableRevertFiles(Command[List[RevertFile]]):
    """Revert files whose apply counterpart is recorded in state."""

    def __init__(self, filter_expression: Optional[str] = None):
        self.filter_expression = filter_expression

    def execute(self, context: CommandContext) -> List[RevertFile]:
        applied = {
            record.change_file_id.with_change_type(None)
            for record in context.get(StateService).get_state_records()
        }
        revert_files = GetRevertFiles(self.filter_expression).execute(context)
        return [revert_file for revert_file in revert_files if revert_file.id.with_change_type(None) in applied]

    def __repr__(self) -> str:
        return f"GetApplicableRevertFiles(filter_expression={self.filter_expression!r})"


class ExecuteRevertFiles(Command[List[ChangeFileId]]):
    """Run every applicable revert file and drop its apply record from state."""

    requires_lock = True

    def __init__(self, filter_expression: Optional[str] = None):
        self.filter_expression = filter_expression

    def execute(self, context: CommandContext) -> List[ChangeFileId]:
        state_service = context.get(StateService)
        change_service = context.get(ChangeService)

        revert_files = GetApplicableRevertFiles(self.filter_expression).execute(context)
        logger.info(f"{len(revert_files)} applicable revert files found")

        reverted: List[ChangeFileId] = []
        for revert_file in revert_files:
            logger.info(f"Executing: {revert_file.file}")
            change_service.execute(revert_file, context)
            state_service.register_completion(revert_file)
            reverted.append(revert_file.id)
            logger.info(f"SUCCESS executing revert: {revert_file.file}")
        return reverted

    def __repr__(self) -> str:
        return f"ExecuteRevertFiles(filter_expression={self.filter_expression!r})"

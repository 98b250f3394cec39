"""Apply commands: run pending apply files and record them in state."""

import logging
from typing import List, Optional

from ..change import ChangeService
from ..changefile import ApplyFile, ChangeFileId
from ..command.context import CommandContext
from ..command.pipeline import Command
from ..connectors.manager import ConnectorManager
from ..environment import Environment
from ..state.service import StateService
from .discovery import GetApplyFiles, GetPendingApplyFiles

logger = logging.getLogger(__name__)


class ExecuteSingleApplyFile(Command[None]):
    """Run one apply file and register it as applied."""

    requires_lock = True

    def __init__(self, apply_file: ApplyFile):
        self.apply_file = apply_file

    def execute(self, context: CommandContext) -> None:
        logger.info(f"Applying: {self.apply_file.file}")
        context.get(ChangeService).execute(self.apply_file, context)
        context.get(StateService).register_completion(self.apply_file)
        logger.info(f"SUCCESS executing: {self.apply_file.file}")

    def __repr__(self) -> str:
        return f"ExecuteSingleApplyFile({self.apply_file.id})"


class ExecutePendingApplyFiles(Command[List[ChangeFileId]]):
    """
    Apply every pending change file, in discovery order.

    Every connector used by a pending file is created before the first file
    runs, so a misconfigured connector fails the run before anything changes.
    A failure stops the run; files applied before it stay recorded.
    """

    requires_lock = True

    def __init__(self, filter_expression: Optional[str] = None):
        self.filter_expression = filter_expression

    def execute(self, context: CommandContext) -> List[ChangeFileId]:
        environment = context.get(Environment)

        all_apply_files = GetApplyFiles(self.filter_expression).execute(context)
        logger.info(f"{len(all_apply_files)} change files found")

        pending = GetPendingApplyFiles(all_apply_files).execute(context)
        total = len(pending)
        logger.info(f"{total} out of {len(all_apply_files)} change files are pending application")

        self._initialize_connectors(context, pending)

        applied: List[ChangeFileId] = []
        for index, apply_file in enumerate(pending, start=1):
            logger.info(f"Executing change file #{index} out of {total}, remaining: {total - index}")
            ExecuteSingleApplyFile(apply_file).execute(context)
            applied.append(apply_file.id)

        if applied:
            logger.info(f"Executed {len(applied)} change files")

        if self.filter_expression is None:
            logger.info(f"SUCCESS: The {environment} environment is in desired state.")
        else:
            logger.info(
                f"SUCCESS: Apply scripts filtered by '{self.filter_expression}' "
                f"are executed against the {environment} environment."
            )
        return applied

    @staticmethod
    def _initialize_connectors(context: CommandContext, pending: List[ApplyFile]) -> None:
        connector_manager = context.get(ConnectorManager)
        for connector in dict.fromkeys(apply_file.connector for apply_file in pending):
            logger.info(f"Initializing connector '{connector}'")
            connector_manager.get_connector_by_name(connector, context)

    def __repr__(self) -> str:
        return f"ExecutePendingApplyFiles(filter_expression={self.filter_expression!r})"

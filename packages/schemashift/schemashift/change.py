"""Executes a single change file through its connector."""

import logging

from .changefile import ChangeFile
from .connectors.manager import ConnectorManager
from .environment import Environment
from .errors import EnvironmentMismatchError

logger = logging.getLogger(__name__)


class ChangeService:
    """
    Runs change files for one environment.

    A change file restricted to an environment only runs there; the
    comparison ignores case. Files without an environment run everywhere.
    """

    def __init__(self, connector_manager: ConnectorManager, environment: Environment):
        self.connector_manager = connector_manager
        self.environment = environment

    def execute(self, change_file: ChangeFile, context) -> None:
        declared = change_file.environment
        if declared is not None and declared.lower() != self.environment.name.lower():
            raise EnvironmentMismatchError(
                f"Change file {change_file.id} is restricted to environment '{declared}', "
                f"current environment is '{self.environment.name}'"
            )

        connector = self.connector_manager.get_connector_by_name(change_file.connector, context)
        logger.info(f"Executing {change_file.id} with connector '{change_file.connector}'")
        connector.execute(change_file, context)

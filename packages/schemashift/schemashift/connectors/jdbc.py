"""
Database connector (type ``jdbc``).

Reads the change file and passes its text to the script executor selected
by the file extension (``sql`` by default). The connector namespace is the
script executor configuration, so ``url``, ``username``, ``password`` and
``statementSeparator`` all live under ``connectors.<name>``.
"""

import logging

from ..changefile import ChangeFile
from ..config import Configuration
from ..errors import ExecutionError
from ..scripts.manager import ScriptExecutorManager
from .base import Connector, ConnectorFactory

logger = logging.getLogger(__name__)


class JdbcConnector(Connector):

    def __init__(self, name: str, configuration: Configuration):
        self.name = name
        self.configuration = configuration

    def execute(self, change_file: ChangeFile, context) -> None:
        try:
            script = change_file.file.read_text(encoding="utf-8")
        except OSError as e:
            raise ExecutionError(f"Failure reading: {change_file.file}") from e

        manager = context.get(ScriptExecutorManager)
        factory = manager.get_script_executor_factory_by_extension(change_file.id.extension)
        executor = factory.get_script_executor(self.name, self.configuration, context)

        logger.info(f"[{self.name}] executing {change_file.id} with {type(executor).__name__}")
        executor.execute(script, context)

    def __repr__(self) -> str:
        return f"JdbcConnector(name={self.name!r})"


class JdbcConnectorFactory(ConnectorFactory):
    connector_type = "jdbc"

    def create_connector(self, name: str, configuration: Configuration, context) -> Connector:
        return JdbcConnector(name, configuration)

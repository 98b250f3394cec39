"""
SSH connectors.

``ssh-commands`` runs each non-blank line of the change file as its own
remote command; lines share no shell state.

``ssh-script`` uploads the change file to
``<remote.temp.dir>/schemashift-script-<uuid>.sh`` (default dir ``/tmp``),
marks it executable, runs it with ``shell`` (default ``/bin/bash``) and
always tries to remove it afterwards.
"""

import logging
import uuid
from pathlib import Path

from ..config import Configuration
from ..errors import ExecutionError
from ..terminal.ssh import SshConnection, SshConnectionFactory
from .base import Connector, ConnectorFactory, TerminalConnector

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_TEMP_DIR = "/tmp"
DEFAULT_SHELL = "/bin/bash"


class SshCommandListConnector(TerminalConnector):

    def execute_file(self, file: Path, context) -> None:
        try:
            lines = Path(file).read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise ExecutionError(f"Failure processing command list file: {file}") from e

        for line in lines:
            if line.strip():
                self.session.execute(line)

    def __repr__(self) -> str:
        return f"SshCommandListConnector(name={self.name!r}, session={self.session!r})"


class SshScriptConnector(TerminalConnector):

    def __init__(self, name: str, session: SshConnection, configuration: Configuration):
        super().__init__(name, session)
        self.remote_temp_dir = configuration.get_string("remote", "temp", "dir") or DEFAULT_REMOTE_TEMP_DIR
        self.shell = configuration.get_string("shell") or DEFAULT_SHELL

    def execute_file(self, file: Path, context) -> None:
        remote_path = f"{self.remote_temp_dir.rstrip('/')}/schemashift-script-{uuid.uuid4()}.sh"
        try:
            logger.info(f"Uploading script {Path(file).name} to remote host at {remote_path}")
            self.session.upload_file(Path(file), remote_path)
            self.session.execute(f"chmod +x {remote_path}")

            logger.info(f"Executing remote script: {remote_path}")
            self.session.execute(f"{self.shell} {remote_path}")
            logger.info(f"Successfully executed script: {Path(file).name}")
        finally:
            try:
                self.session.execute(f"rm -f {remote_path}")
            except Exception as e:
                logger.warning(f"Failed to clean up remote script {remote_path}: {e}")

    def __repr__(self) -> str:
        return (
            f"SshScriptConnector(name={self.name!r}, session={self.session!r}, "
            f"remote_temp_dir={self.remote_temp_dir!r}, shell={self.shell!r})"
        )


class SshCommandListConnectorFactory(ConnectorFactory):
    connector_type = "ssh-commands"

    def __init__(self, connection_factory: SshConnectionFactory):
        self.connection_factory = connection_factory

    def create_connector(self, name: str, configuration: Configuration, context) -> Connector:
        return SshCommandListConnector(name, self.connection_factory.get_connection(name, configuration, context))


class SshScriptConnectorFactory(ConnectorFactory):
    connector_type = "ssh-script"

    def __init__(self, connection_factory: SshConnectionFactory):
        self.connection_factory = connection_factory

    def create_connector(self, name: str, configuration: Configuration, context) -> Connector:
        connection = self.connection_factory.get_connection(name, configuration, context)
        return SshScriptConnector(name, connection, configuration)

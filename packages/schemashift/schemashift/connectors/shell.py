"""Local shell connector (type ``shell``): runs the change file as one shell invocation."""

from pathlib import Path

from ..config import Configuration
from ..terminal.shell import LocalShellSession, LocalShellSessionFactory
from .base import Connector, ConnectorFactory, TerminalConnector


class ShellScriptConnector(TerminalConnector):

    def __init__(self, name: str, session: LocalShellSession):
        super().__init__(name, session)

    def execute_file(self, file: Path, context) -> None:
        self.session.execute([str(Path(file).resolve())])

    def __repr__(self) -> str:
        return f"ShellScriptConnector(name={self.name!r}, session={self.session!r})"


class ShellConnectorFactory(ConnectorFactory):
    connector_type = "shell"

    def __init__(self, session_factory: LocalShellSessionFactory = None):
        self.session_factory = session_factory or LocalShellSessionFactory()

    def create_connector(self, name: str, configuration: Configuration, context) -> Connector:
        return ShellScriptConnector(name, self.session_factory.get_session(name, configuration, context))

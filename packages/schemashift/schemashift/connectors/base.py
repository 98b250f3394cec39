"""Connector contracts."""

from abc import ABC, abstractmethod
from pathlib import Path

from ..changefile import ChangeFile
from ..config import Configuration
from ..terminal.base import TerminalSession


class Connector(ABC):
    """
    A long-lived execution backend addressed by name from change file names.

    execute() may block for as long as the change takes. close() releases
    held processes or connections and is driven by CloseEvent.
    """

    @abstractmethod
    def execute(self, change_file: ChangeFile, context) -> None:
        ...

    def close(self) -> None:
        pass


class ConnectorFactory(ABC):
    """Builds connectors of one ``type``."""

    connector_type: str = ""

    @abstractmethod
    def create_connector(self, name: str, configuration: Configuration, context) -> Connector:
        ...


class TerminalConnector(Connector):
    """Connector that hands the change file to a terminal session."""

    def __init__(self, name: str, session: TerminalSession):
        self.name = name
        self.session = session

    def execute(self, change_file: ChangeFile, context) -> None:
        self.execute_file(change_file.file, context)

    @abstractmethod
    def execute_file(self, file: Path, context) -> None:
        ...

    def close(self) -> None:
        self.session.close()

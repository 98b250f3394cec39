from .base import Connector, ConnectorFactory, TerminalConnector
from .jdbc import JdbcConnector, JdbcConnectorFactory
from .manager import ConnectorManager
from .shell import ShellConnectorFactory, ShellScriptConnector
from .ssh import (
    SshCommandListConnector,
    SshCommandListConnectorFactory,
    SshScriptConnector,
    SshScriptConnectorFactory,
)

__all__ = [
    "Connector",
    "ConnectorFactory",
    "TerminalConnector",
    "JdbcConnector",
    "JdbcConnectorFactory",
    "ConnectorManager",
    "ShellConnectorFactory",
    "ShellScriptConnector",
    "SshCommandListConnector",
    "SshCommandListConnectorFactory",
    "SshScriptConnector",
    "SshScriptConnectorFactory",
]

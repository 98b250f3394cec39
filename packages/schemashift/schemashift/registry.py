"""
Extension registry.

Connector and script executor factories are registered explicitly at
process start. The built-ins are pre-registered by ``default_registry()``;
applications add their own with ``register_connector_factory`` and
``register_script_executor_factory`` before building a ChangeEngine.
"""

import logging
from typing import List, Optional

from .connectors.base import ConnectorFactory
from .connectors.jdbc import JdbcConnectorFactory
from .connectors.manager import ConnectorManager
from .connectors.shell import ShellConnectorFactory
from .connectors.ssh import SshCommandListConnectorFactory, SshScriptConnectorFactory
from .database import DatabaseFactory
from .scripts.base import ScriptExecutorFactory
from .scripts.manager import ScriptExecutorManager
from .scripts.sql import SqlScriptExecutorFactory
from .terminal.shell import LocalShellSessionFactory
from .terminal.ssh import SshConnectionFactory

logger = logging.getLogger(__name__)


class ExtensionRegistry:
    """Holds the shared resource factories and the registered extensions."""

    def __init__(
        self,
        database_factory: Optional[DatabaseFactory] = None,
        ssh_connection_factory: Optional[SshConnectionFactory] = None,
        shell_session_factory: Optional[LocalShellSessionFactory] = None,
    ):
        self.database_factory = database_factory or DatabaseFactory()
        self.ssh_connection_factory = ssh_connection_factory or SshConnectionFactory()
        self.shell_session_factory = shell_session_factory or LocalShellSessionFactory()
        self.sql_script_executor_factory = SqlScriptExecutorFactory(self.database_factory)
        self._connector_factories: List[ConnectorFactory] = []
        self._script_executor_factories: List[ScriptExecutorFactory] = []

    def register_connector_factory(self, factory: ConnectorFactory) -> "ExtensionRegistry":
        logger.debug(f"Registering connector factory for type '{factory.connector_type}'")
        self._connector_factories.append(factory)
        return self

    def register_script_executor_factory(self, factory: ScriptExecutorFactory) -> "ExtensionRegistry":
        logger.debug(f"Registering script executor factory for {factory.extensions}")
        self._script_executor_factories.append(factory)
        return self

    @property
    def connector_factories(self) -> List[ConnectorFactory]:
        return list(self._connector_factories)

    @property
    def script_executor_factories(self) -> List[ScriptExecutorFactory]:
        return list(self._script_executor_factories)

    def create_connector_manager(self) -> ConnectorManager:
        return ConnectorManager(self._connector_factories)

    def create_script_executor_manager(self) -> ScriptExecutorManager:
        return ScriptExecutorManager(self.sql_script_executor_factory, self._script_executor_factories)


def default_registry() -> ExtensionRegistry:
    """Registry with the built-in connectors: jdbc, shell, ssh-script, ssh-commands."""
    registry = ExtensionRegistry()
    registry.register_connector_factory(JdbcConnectorFactory())
    registry.register_connector_factory(ShellConnectorFactory(registry.shell_session_factory))
    registry.register_connector_factory(SshScriptConnectorFactory(registry.ssh_connection_factory))
    registry.register_connector_factory(SshCommandListConnectorFactory(registry.ssh_connection_factory))
    return registry

"""
Resolves connector names to cached Connector instances.

The effective configuration of connector ``main`` is ``connectors.main.*``
overlaid with ``environments.<env>.connectors.main.*`` when an environment
is active. Instances are cached by (name, effective configuration), so two
environments with different overrides get different connectors.
"""

import logging
from typing import Dict, Iterable

from ..cache import CachedObjectFactory
from ..config import Configuration
from ..environment import Environment, scoped_namespace
from ..errors import MisconfigurationError, ResolutionError
from ..events import close_on_shutdown
from .base import Connector, ConnectorFactory

logger = logging.getLogger(__name__)

CONNECTORS = "connectors"


class ConnectorManager(CachedObjectFactory[Connector]):

    def __init__(self, factories: Iterable[ConnectorFactory]):
        super().__init__()
        self._factories: Dict[str, ConnectorFactory] = {}
        for factory in factories:
            if factory.connector_type in self._factories:
                logger.warning(
                    f"Duplicate connector factory for type '{factory.connector_type}'. "
                    f"Using first registered: {type(self._factories[factory.connector_type]).__name__}"
                )
                continue
            self._factories[factory.connector_type] = factory
        logger.debug(f"Connector types registered: {sorted(self._factories)}")

    @property
    def connector_types(self):
        return sorted(self._factories)

    def get_connector_by_name(self, name: str, context) -> Connector:
        """
        Return the connector configured under ``name``.

        Raises:
            MisconfigurationError: If the connector has no configuration or no type
            ResolutionError: If no factory handles the configured type
        """
        configuration = self.get_connector_configuration(name, context)
        return self.get_object(name, configuration, context)

    def get_connector_configuration(self, name: str, context) -> Configuration:
        environment = context.get_optional(Environment)
        return scoped_namespace(context.get(Configuration), environment, CONNECTORS, name)

    def create_new_object(self, name: str, configuration: Configuration, context) -> Connector:
        if configuration.is_empty():
            raise MisconfigurationError(f"Configuration for the connector is not found: {name}")

        connector_type = configuration.get_string("type")
        if not connector_type:
            raise MisconfigurationError(f"No type is specified for connector: {name}")

        factory = self._factories.get(connector_type)
        if factory is None:
            raise ResolutionError(f"Unknown connector type: {connector_type}")

        connector = factory.create_connector(name, configuration, context)
        close_on_shutdown(context, connector)
        logger.info(f"Created: {connector!r}")
        return connector

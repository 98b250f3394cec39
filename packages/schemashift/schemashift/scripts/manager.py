"""Routes file extensions to script executor factories."""

import logging
from typing import Dict, Iterable, Optional

from ..concurrent import LockTemplate
from ..errors import ResolutionError
from .base import ScriptExecutorFactory

logger = logging.getLogger(__name__)

EXTENSION_MAP_BUILD_TIMEOUT_SECONDS = 60


class ScriptExecutorManager:
    """
    Case-insensitive extension lookup over registered factories.

    The built-in SQL factory is seeded first, then any additional factories;
    for an extension claimed more than once the first registrant wins. The map
    is built lazily, once, under a timed lock.
    """

    def __init__(self, sql_factory: ScriptExecutorFactory, additional_factories: Iterable[ScriptExecutorFactory] = ()):
        self._factories = [sql_factory, *additional_factories]
        self._extension_map: Optional[Dict[str, ScriptExecutorFactory]] = None
        self._lock_template = LockTemplate(EXTENSION_MAP_BUILD_TIMEOUT_SECONDS)

    def get_script_executor_factory_by_extension(self, extension: str) -> ScriptExecutorFactory:
        return self._lock_template.run(lambda: self._lookup(extension))

    def _lookup(self, extension: str) -> ScriptExecutorFactory:
        if self._extension_map is None:
            self._extension_map = self._build_extension_map()

        factory = self._extension_map.get(extension.lower())
        if factory is None:
            raise ResolutionError(f"No ScriptExecutorFactory found for: {extension}")
        return factory

    def _build_extension_map(self) -> Dict[str, ScriptExecutorFactory]:
        extension_map: Dict[str, ScriptExecutorFactory] = {}
        for factory in self._factories:
            for extension in factory.extensions:
                key = extension.lower()
                if key in extension_map:
                    logger.warning(
                        f"Extension '{extension}' already handled by {type(extension_map[key]).__name__}; "
                        f"ignoring {type(factory).__name__}"
                    )
                    continue
                extension_map[key] = factory
        logger.debug(f"Script extensions registered: {sorted(extension_map)}")
        return extension_map

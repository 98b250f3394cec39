"""Script executor contracts."""

from abc import ABC, abstractmethod
from typing import List

from ..cache import CachedObjectFactory
from ..config import Configuration


class ScriptExecutor(ABC):
    """Runs the text of a change file against some target."""

    @abstractmethod
    def execute(self, script: str, context) -> None:
        ...

    def close(self) -> None:
        pass


class ScriptExecutorFactory(CachedObjectFactory[ScriptExecutor]):
    """Creates ScriptExecutors for a set of file extensions, one per (name, configuration)."""

    @property
    @abstractmethod
    def extensions(self) -> List[str]:
        ...

    def get_script_executor(self, name: str, configuration: Configuration, context) -> ScriptExecutor:
        return self.get_object(name, configuration, context)

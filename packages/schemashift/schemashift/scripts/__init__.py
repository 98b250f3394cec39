from .base import ScriptExecutor, ScriptExecutorFactory
from .manager import ScriptExecutorManager
from .sql import SqlScriptExecutor, SqlScriptExecutorFactory

__all__ = [
    "ScriptExecutor",
    "ScriptExecutorFactory",
    "ScriptExecutorManager",
    "SqlScriptExecutor",
    "SqlScriptExecutorFactory",
]

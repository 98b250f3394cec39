from .context import CommandContext
from .interceptors import (
    ConfigurationInitializer,
    LockInterceptor,
    SecretsManagerInitializer,
    ServiceInitializer,
)
from .pipeline import (
    Command,
    CommandExecutor,
    CommandInterceptor,
    CommandInvoker,
    ContextInitializerInterceptor,
    build_chain,
)

__all__ = [
    "Command",
    "CommandContext",
    "CommandExecutor",
    "CommandInterceptor",
    "CommandInvoker",
    "ConfigurationInitializer",
    "ContextInitializerInterceptor",
    "LockInterceptor",
    "SecretsManagerInitializer",
    "ServiceInitializer",
    "build_chain",
]

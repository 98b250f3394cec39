"""
Command pipeline.

A Command is a unit of work run against a CommandContext. Interceptors wrap
a delegate executor and can prepare the context, call ``next`` or
short-circuit by raising. Real runs use, outer to inner:

    ConfigurationInitializer -> SecretsManagerInitializer
        -> ServiceInitializer -> LockInterceptor -> CommandInvoker
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Generic, Iterable, TypeVar

from ..concurrent import LockTemplate
from .context import CommandContext

R = TypeVar("R")

CONTEXT_INITIALIZER_TIMEOUT_SECONDS = 30


class Command(ABC, Generic[R]):
    """A unit of work executed against a CommandContext."""

    # Commands that mutate the target system run while holding the lock.
    requires_lock = False

    @abstractmethod
    def execute(self, context: CommandContext) -> R:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class CommandExecutor(ABC):

    @abstractmethod
    def execute(self, context: CommandContext, command: Command[R]) -> R:
        ...


class CommandInvoker(CommandExecutor):
    """Terminal executor: runs the command itself."""

    def execute(self, context: CommandContext, command: Command[R]) -> R:
        return command.execute(context)


class CommandInterceptor(CommandExecutor):
    """Wraps a delegate executor."""

    def __init__(self, next_executor: CommandExecutor):
        if next_executor is None:
            raise TypeError("next_executor cannot be None")
        self.next = next_executor
        self.log = logging.getLogger(f"{type(self).__module__}.{type(self).__name__}")

    def execute(self, context: CommandContext, command: Command[R]) -> R:
        self.log.debug(f"Intercepted: {command!r}")
        return self.intercept(context, command, self.next)

    @abstractmethod
    def intercept(self, context: CommandContext, command: Command[R], next_executor: CommandExecutor) -> R:
        ...


class ContextInitializerInterceptor(CommandInterceptor):
    """
    Interceptor that populates the context before delegating.

    Initialization runs under a timed local lock, so an interceptor shared
    by concurrent invocations builds its services once.
    """

    def __init__(self, next_executor: CommandExecutor):
        super().__init__(next_executor)
        self._lock_template = LockTemplate(CONTEXT_INITIALIZER_TIMEOUT_SECONDS)

    def intercept(self, context: CommandContext, command: Command[R], next_executor: CommandExecutor) -> R:
        self._lock_template.run(lambda: self.initialize_from_context(context))
        return next_executor.execute(context, command)

    @abstractmethod
    def initialize_from_context(self, context: CommandContext) -> None:
        ...


def build_chain(
    interceptor_factories: Iterable[Callable[[CommandExecutor], CommandInterceptor]],
    terminal: CommandExecutor = None,
) -> CommandExecutor:
    """
    Build an executor chain.

    Args:
        interceptor_factories: Factories taking ``next``, listed outer to inner
        terminal: Innermost executor (default: CommandInvoker)

    Returns:
        The outermost executor
    """
    executor = terminal if terminal is not None else CommandInvoker()
    for factory in reversed(list(interceptor_factories)):
        executor = factory(executor)
    return executor

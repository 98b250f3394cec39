"""
ChangeEngine: entry point for running commands.

    engine = ChangeEngine(ConfigurationLoader.from_yaml_file("schemashift.yml"), "DEV")
    with engine:
        engine.execute(ExecutePendingApplyFiles())

Each top-level ``execute`` gets a fresh CommandContext and runs through the
interceptor chain. A command executed from inside another command on the
same thread reuses the running context and skips the chain.
"""

import logging
import threading
from typing import Callable, Optional, Union

from .command.context import CommandContext
from .command.interceptors import (
    ConfigurationInitializer,
    LockInterceptor,
    SecretsManagerInitializer,
    ServiceInitializer,
)
from .command.pipeline import Command, CommandInvoker, R, build_chain
from .config import Configuration
from .environment import Environment
from .events import CloseEvent, EventDispatcher
from .expressions import ExpressionEvaluator
from .registry import ExtensionRegistry, default_registry
from .secrets import SecretsManager, create_secrets_manager

logger = logging.getLogger(__name__)

ConfigurationSource = Union[Configuration, Callable[[], Configuration]]


class ChangeEngine:
    """
    Owns the interceptor chain, the event dispatcher and the extension registry.

    Args:
        configuration: Raw configuration, or a callable returning it
        environment_name: Active environment; commands touching state need one
        secrets_manager: Decoder for ``${secret:...}`` expressions
        registry: Connector and script executor factories (default: built-ins)
    """

    def __init__(
        self,
        configuration: ConfigurationSource,
        environment_name: Optional[str] = None,
        secrets_manager: Optional[SecretsManager] = None,
        registry: Optional[ExtensionRegistry] = None,
    ):
        if isinstance(configuration, Configuration):
            self._configuration_supplier = lambda: configuration
        else:
            self._configuration_supplier = configuration
        self.environment = Environment(environment_name) if environment_name is not None else None
        self.secrets_manager = create_secrets_manager(secrets_manager)
        self.registry = registry or default_registry()
        self.event_dispatcher = EventDispatcher()
        self.expression_evaluator = ExpressionEvaluator(self.secrets_manager.lookups())

        self._chain = build_chain(
            [
                lambda next_executor: ConfigurationInitializer(next_executor, self._configuration_supplier),
                lambda next_executor: SecretsManagerInitializer(next_executor, self.secrets_manager),
                lambda next_executor: ServiceInitializer(next_executor, self.registry),
                LockInterceptor,
            ],
            CommandInvoker(),
        )
        self._nested_invoker = CommandInvoker()
        self._local = threading.local()
        self._closed = False

    def raw_configuration(self) -> Configuration:
        """The configuration before environment selection and evaluation."""
        return self._configuration_supplier()

    def execute(self, command: Command[R]) -> R:
        current = getattr(self._local, "context", None)
        if current is not None:
            logger.debug(f"Nested execution of {command!r}")
            return self._nested_invoker.execute(current, command)

        context = self._create_context()
        self._local.context = context
        try:
            logger.debug(f"Executing {command!r}")
            return self._chain.execute(context, command)
        finally:
            self._local.context = None

    def _create_context(self) -> CommandContext:
        context = CommandContext(
            {
                EventDispatcher: self.event_dispatcher,
                ChangeEngine: self,
                ExpressionEvaluator: self.expression_evaluator,
            }
        )
        if self.environment is not None:
            context.set_value(Environment, self.environment)
        return context

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info("Closing change engine")
        self.event_dispatcher.dispatch(CloseEvent())

    def __enter__(self) -> "ChangeEngine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ChangeEngine(environment={self.environment})"

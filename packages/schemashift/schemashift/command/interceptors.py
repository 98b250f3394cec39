"""
Interceptors that prepare a CommandContext for a command.

Outer to inner:

    ConfigurationInitializer   sets the evaluated Configuration
    SecretsManagerInitializer  sets the SecretsManager
    ServiceInitializer         sets the services built from configuration
    LockInterceptor            holds the lock around commands that need it
"""

import time
from typing import Any, Callable, Dict, Optional

from ..change import ChangeService
from ..changefile import ChangeFileFactory
from ..config import Configuration
from ..connectors.manager import ConnectorManager
from ..database import DatabaseFactory
from ..environment import Environment
from ..errors import LockAcquisitionError
from ..events import close_on_shutdown
from ..expressions import ExpressionEvaluator
from ..hashing import HashService
from ..lock.factory import create_lock_service
from ..lock.service import LockService
from ..registry import ExtensionRegistry
from ..scripts.manager import ScriptExecutorManager
from ..secrets import SecretsManager, create_secrets_manager
from ..state.factory import create_state_repository
from ..state.service import StateService
from ..variables import evaluate_configuration
from .context import CommandContext
from .pipeline import Command, CommandExecutor, CommandInterceptor, ContextInitializerInterceptor, R

CONTENT_HASH_VALIDATION = "contenthash"
LOCK_WAIT_TIMEOUT_KEY = "lock.wait.timeoutSeconds"
DEFAULT_LOCK_WAIT_TIMEOUT_SECONDS = 600
LOCK_GUARD_TIMEOUT_SECONDS = 30


class ConfigurationInitializer(ContextInitializerInterceptor):
    """Evaluates the raw configuration for the context's environment."""

    def __init__(self, next_executor: CommandExecutor, configuration_supplier: Callable[[], Configuration]):
        super().__init__(next_executor)
        self.configuration_supplier = configuration_supplier

    def initialize_from_context(self, context: CommandContext) -> None:
        if context.has(Configuration):
            return
        evaluator = context.get_optional(ExpressionEvaluator) or ExpressionEvaluator()
        environment = context.get_optional(Environment)
        configuration = evaluate_configuration(self.configuration_supplier(), evaluator, environment)
        context.set_value(Configuration, configuration)


class SecretsManagerInitializer(ContextInitializerInterceptor):

    def __init__(self, next_executor: CommandExecutor, secrets_manager: Optional[SecretsManager] = None):
        super().__init__(next_executor)
        self.secrets_manager = create_secrets_manager(secrets_manager)

    def initialize_from_context(self, context: CommandContext) -> None:
        if not context.has(SecretsManager):
            context.set_value(SecretsManager, self.secrets_manager)


class ServiceInitializer(ContextInitializerInterceptor):
    """
    Builds services from the configuration once and sets them into every context.

    Always: ChangeFileFactory, ScriptExecutorManager, ConnectorManager,
    DatabaseFactory and, with ``validation.type=contentHash``, HashService.
    With an Environment in the context: StateService and ChangeService.
    LockService only when ``lock.type`` configures one.
    """

    def __init__(self, next_executor: CommandExecutor, registry: ExtensionRegistry):
        super().__init__(next_executor)
        self.registry = registry
        self._services: Optional[Dict[type, Any]] = None
        self._environment_services: Dict[str, Dict[type, Any]] = {}
        self._lock_service: Optional[LockService] = None
        self._lock_service_resolved = False

    def initialize_from_context(self, context: CommandContext) -> None:
        configuration = context.get(Configuration)

        if self._services is None:
            self._services = self._create_services(configuration)
        self._set_all(context, self._services)

        environment = context.get_optional(Environment)
        if environment is not None:
            services = self._environment_services.get(environment.name)
            if services is None:
                services = self._create_environment_services(configuration, environment, context)
                self._environment_services[environment.name] = services
            self._set_all(context, services)

        if not self._lock_service_resolved:
            self._lock_service = create_lock_service(configuration, self.registry.database_factory, context)
            if self._lock_service is not None:
                close_on_shutdown(context, self._lock_service)
            self._lock_service_resolved = True
        if self._lock_service is not None and not context.has(LockService):
            context.set_value(LockService, self._lock_service)

    def _create_services(self, configuration: Configuration) -> Dict[type, Any]:
        services: Dict[type, Any] = {
            ChangeFileFactory: ChangeFileFactory(configuration),
            ScriptExecutorManager: self.registry.create_script_executor_manager(),
            ConnectorManager: self.registry.create_connector_manager(),
            DatabaseFactory: self.registry.database_factory,
        }
        validation_type = configuration.get_string("validation.type")
        if validation_type is not None and validation_type.strip().lower() == CONTENT_HASH_VALIDATION:
            services[HashService] = HashService.from_configuration(configuration)
        self.log.debug(f"Services created: {sorted(key.__name__ for key in services)}")
        return services

    def _create_environment_services(
        self, configuration: Configuration, environment: Environment, context: CommandContext
    ) -> Dict[type, Any]:
        repository = create_state_repository(
            configuration,
            environment,
            self._services[ChangeFileFactory],
            self.registry.database_factory,
            context,
        )
        state_service = StateService(repository, configuration, self._services.get(HashService))
        close_on_shutdown(context, state_service)
        change_service = ChangeService(self._services[ConnectorManager], environment)
        return {StateService: state_service, ChangeService: change_service}

    @staticmethod
    def _set_all(context: CommandContext, services: Dict[type, Any]) -> None:
        for key, service in services.items():
            if not context.has(key):
                context.set_value(key, service)


class LockInterceptor(CommandInterceptor):
    """
    Runs commands with ``requires_lock`` while holding the LockService.

    The lock is retried every ``poll_interval_seconds`` until
    ``lock.wait.timeoutSeconds`` has passed. Without a LockService in the
    context, commands run unlocked.
    """

    def __init__(self, next_executor: CommandExecutor, poll_interval_seconds: float = 1.0, sleep=time.sleep):
        super().__init__(next_executor)
        self.poll_interval_seconds = poll_interval_seconds
        self._sleep = sleep

    def intercept(self, context: CommandContext, command: Command[R], next_executor: CommandExecutor) -> R:
        lock_service = context.get_optional(LockService)
        if not command.requires_lock or lock_service is None:
            return next_executor.execute(context, command)

        self._acquire(lock_service, context.get(Configuration), command)
        try:
            return next_executor.execute(context, command)
        finally:
            lock_service.unlock()

    def _acquire(self, lock_service: LockService, configuration: Configuration, command: Command) -> None:
        wait_seconds = configuration.get_int(LOCK_WAIT_TIMEOUT_KEY)
        if wait_seconds is None:
            wait_seconds = DEFAULT_LOCK_WAIT_TIMEOUT_SECONDS
        deadline = time.monotonic() + wait_seconds

        while not lock_service.try_lock(LOCK_GUARD_TIMEOUT_SECONDS):
            if time.monotonic() >= deadline:
                raise LockAcquisitionError(
                    f"Could not acquire the lock within {wait_seconds}s for: {command!r}; "
                    f"current holder: {lock_service.get_lock()}"
                )
            self.log.info(f"Lock is held by another process, retrying in {self.poll_interval_seconds}s")
            self._sleep(self.poll_interval_seconds)

"""
schemashift - ordered change management for databases and hosts

Change files are discovered on disk, executed in order through pluggable
connectors, and recorded in a state store, optionally under a distributed
lease lock.

Architecture:
    ChangeEngine → interceptor chain
        ↓
    ConfigurationInitializer → evaluated Configuration
        ↓
    SecretsManagerInitializer → SecretsManager
        ↓
    ServiceInitializer → ChangeFileFactory, ConnectorManager, StateService, LockService...
        ↓
    LockInterceptor → lease held for commands that change the target
        ↓
    Command → ChangeService → Connector (jdbc, shell, ssh-script, ssh-commands)

Key Principle: a change file's name is its identity. The name carries its
order, environment, direction and connector, and state is keyed by it.
"""

from .changefile import (
    ApplyFile,
    ChangeFile,
    ChangeFileFactory,
    ChangeFileId,
    ChangeType,
    RevertFile
)

from .config import Configuration, ConfigurationLoader

from .environment import Environment

from .engine import ChangeEngine

from .registry import ExtensionRegistry, default_registry

from .commands import (
    ExecutePendingApplyFiles,
    ExecuteRevertFiles,
    ExecuteSingleApplyFile,
    GetApplicableRevertFiles,
    GetApplyFiles,
    GetPendingApplyFiles,
    GetRevertFiles,
    ListEnvironments,
    ListVariables,
    ValidateApplyFiles,
    ValidationFailure
)

from .errors import (
    SchemaShiftError,
    GrammarError,
    EnvironmentMismatchError,
    ResolutionError,
    MisconfigurationError,
    ContextError,
    LockStateError,
    LockLostError,
    LockAcquisitionError,
    ExecutionError,
    StateError
)

__all__ = [
    # Change files
    "ApplyFile",
    "ChangeFile",
    "ChangeFileFactory",
    "ChangeFileId",
    "ChangeType",
    "RevertFile",

    # Configuration
    "Configuration",
    "ConfigurationLoader",
    "Environment",

    # Engine
    "ChangeEngine",
    "ExtensionRegistry",
    "default_registry",

    # Commands
    "ExecutePendingApplyFiles",
    "ExecuteRevertFiles",
    "ExecuteSingleApplyFile",
    "GetApplicableRevertFiles",
    "GetApplyFiles",
    "GetPendingApplyFiles",
    "GetRevertFiles",
    "ListEnvironments",
    "ListVariables",
    "ValidateApplyFiles",
    "ValidationFailure",

    # Errors
    "SchemaShiftError",
    "GrammarError",
    "EnvironmentMismatchError",
    "ResolutionError",
    "MisconfigurationError",
    "ContextError",
    "LockStateError",
    "LockLostError",
    "LockAcquisitionError",
    "ExecutionError",
    "StateError",
]

__version__ = "0.1.0"

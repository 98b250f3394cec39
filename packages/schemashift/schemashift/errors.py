"""
Error taxonomy for schemashift.

All errors derive from SchemaShiftError so callers can catch the whole family.
Contended lock acquisition is NOT an error (try_lock returns False), and
validation drift is reported as ValidationFailure values, not raised.
"""


class SchemaShiftError(Exception):
    """Base class for all schemashift errors."""
    pass


class GrammarError(SchemaShiftError, ValueError):
    """Raised when a change file path does not follow the naming grammar."""
    pass


class EnvironmentMismatchError(SchemaShiftError):
    """Raised when a change file restricted to one environment runs in another."""
    pass


class ResolutionError(SchemaShiftError):
    """Raised when a connector type or script extension cannot be resolved."""
    pass


class MisconfigurationError(SchemaShiftError):
    """Raised when a required configuration value is missing or invalid."""
    pass


class ContextError(SchemaShiftError):
    """Raised on a missing value or a second set in a CommandContext."""
    pass


class LockStateError(SchemaShiftError):
    """Raised on lock misuse: unlock while unheld, or local guard timeout."""
    pass


class LockLostError(SchemaShiftError):
    """Raised when a held lease turns out to be owned by someone else on renewal."""
    pass


class LockAcquisitionError(SchemaShiftError):
    """Raised when the lease cannot be obtained before the wait deadline."""
    pass


class ExecutionError(SchemaShiftError):
    """Raised when a statement, process or remote command fails."""
    pass


class StateError(SchemaShiftError):
    """Raised when the state store is inconsistent with the requested change."""
    pass

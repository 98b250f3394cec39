"""
Per-invocation, set-once context keyed by type.

Each key is a class (Configuration, Environment, LockService...). A value
can be set once per key; reading an absent key fails.
"""

import logging
import threading
from typing import Any, Dict, Optional, Type, TypeVar

from ..errors import ContextError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CommandContext:

    def __init__(self, initial_values: Optional[Dict[Type, Any]] = None):
        self._values: Dict[Type, Any] = dict(initial_values or {})
        self._lock = threading.Lock()

    def has(self, key: Type) -> bool:
        if key is None:
            raise TypeError("key cannot be None")
        with self._lock:
            return key in self._values

    def get(self, key: Type[T]) -> T:
        if key is None:
            raise TypeError("key cannot be None")
        with self._lock:
            value = self._values.get(key)
        if value is None:
            raise ContextError(f"No CommandContext value found for: {_name(key)}")
        return value

    def get_optional(self, key: Type[T]) -> Optional[T]:
        with self._lock:
            return self._values.get(key)

    def set_value(self, key: Type[T], value: T) -> None:
        if key is None:
            raise TypeError("key cannot be None")
        if value is None:
            raise TypeError(f"value for {_name(key)} cannot be None")
        with self._lock:
            if key in self._values:
                raise ContextError(f"Value exists already for: {_name(key)}")
            self._values[key] = value
        logger.debug(f"Context value set: {_name(key)}")

    def __repr__(self) -> str:
        with self._lock:
            names = sorted(_name(key) for key in self._values)
        return f"CommandContext(keys={names})"


def _name(key: Type) -> str:
    return getattr(key, "__qualname__", repr(key))

"""
Memoization keyed by (name, configuration).

Connectors, script executors, databases and SSH connections are long-lived
and expensive; every factory for them caches instances by NamedConfigKey so
that repeated lookups with the same name and effective configuration share
one instance.

When the lookup context carries an EventDispatcher, the cache entry belongs
to that dispatcher: other engines sharing the factory get their own
instance, and the entry is evicted on CloseEvent so a closed object is never
handed out again.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Generic, Mapping, Optional, Tuple, TypeVar, Union

from .config import Configuration
from .events import CloseEvent, EventDispatcher

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class NamedConfigKey:
    """Cache key: a name plus a snapshot of its configuration."""

    name: str
    entries: Tuple[Tuple[str, str], ...]

    @classmethod
    def of(cls, name: str, configuration: Union[Configuration, Mapping[str, str]]) -> "NamedConfigKey":
        if name is None:
            raise TypeError("name cannot be None")
        values = configuration.as_dict() if isinstance(configuration, Configuration) else dict(configuration)
        return cls(name, tuple(sorted((str(k), str(v)) for k, v in values.items())))

    @property
    def configuration(self) -> Configuration:
        return Configuration(dict(self.entries))


class CachedObjectFactory(ABC, Generic[T]):
    """
    Creates at most one object per distinct (name, configuration).

    Creation runs under the factory lock, so racing callers asking for the
    same key wait for the first creation instead of building duplicates.
    """

    def __init__(self):
        self._cache: Dict[Tuple[Optional[EventDispatcher], NamedConfigKey], T] = {}
        self._lock = threading.Lock()

    def get_object(self, name: str, configuration: Configuration, context=None) -> T:
        key = NamedConfigKey.of(name, configuration)
        owner = context.get_optional(EventDispatcher) if context is not None else None
        with self._lock:
            cached = self._cache.get((owner, key))
            if cached is None:
                logger.debug(f"{type(self).__name__}: creating object for '{name}'")
                cached = self.create_new_object(name, key.configuration, context)
                self._cache[(owner, key)] = cached
                if owner is not None:
                    owner.subscribe(CloseEvent, lambda event, created=cached: self.evict(owner, key, created))
            return cached

    def evict(self, owner: Optional[EventDispatcher], key: NamedConfigKey, expected: T) -> None:
        """Drop a cache entry, unless it was already replaced by another object."""
        with self._lock:
            if self._cache.get((owner, key)) is expected:
                del self._cache[(owner, key)]
                logger.debug(f"{type(self).__name__}: evicted object for '{key.name}'")

    @abstractmethod
    def create_new_object(self, name: str, configuration: Configuration, context) -> T:
        ...

    def cached_count(self) -> int:
        with self._lock:
            return len(self._cache)

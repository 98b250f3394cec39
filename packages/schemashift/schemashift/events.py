"""
In-process event dispatch.

The only event today is CloseEvent: long-lived resources (connectors,
database engines, SSH sessions, script executors) subscribe their close()
when they are created, and the engine dispatches CloseEvent on shutdown.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Type

from .errors import SchemaShiftError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CloseEvent:
    """Signals that every held resource should be released."""
    pass


class EventDispatchError(SchemaShiftError):
    """Raised after dispatch when one or more listeners failed."""

    def __init__(self, message: str, errors: List[Exception]):
        super().__init__(message)
        self.errors = errors


class EventDispatcher:
    """Routes events to listeners subscribed by event type."""

    def __init__(self):
        self._listeners: Dict[Type, List[Callable]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type, listener: Callable) -> None:
        with self._lock:
            self._listeners.setdefault(event_type, []).append(listener)

    def dispatch(self, event) -> None:
        """
        Deliver an event to every listener of its type.

        Every listener runs even if earlier ones fail; failures are
        re-raised together afterwards.

        Raises:
            EventDispatchError: If any listener raised
        """
        with self._lock:
            listeners = list(self._listeners.get(type(event), []))

        errors: List[Exception] = []
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Listener {listener!r} failed handling {type(event).__name__}: {e}")
                errors.append(e)

        if errors:
            raise EventDispatchError(
                f"{len(errors)} listener(s) failed handling {type(event).__name__}", errors
            ) from errors[0]


def close_on_shutdown(context, resource) -> None:
    """Subscribe ``resource.close()`` to CloseEvent, if the context has a dispatcher."""
    if context is None or not context.has(EventDispatcher):
        return
    context.get(EventDispatcher).subscribe(CloseEvent, lambda event: resource.close())

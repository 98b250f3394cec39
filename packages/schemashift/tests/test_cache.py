"""
Tests for caching, timed locking and event dispatch

Validates:
- NamedConfigKey identity
- At most one object per (name, configuration), even under racing callers
- LockTemplate timeouts
- EventDispatcher delivery and error collection
"""

import threading
import time

import pytest

from schemashift.cache import CachedObjectFactory, NamedConfigKey
from schemashift.command.context import CommandContext
from schemashift.concurrent import LockTemplate
from schemashift.config import Configuration
from schemashift.errors import LockStateError
from schemashift.events import CloseEvent, EventDispatcher, EventDispatchError, close_on_shutdown


class CountingFactory(CachedObjectFactory):
    """Creates plain objects, slowly, counting creations."""

    def __init__(self, delay=0.0):
        super().__init__()
        self.delay = delay
        self.created = 0

    def create_new_object(self, name, configuration, context):
        time.sleep(self.delay)
        self.created += 1
        return object()


class Resource:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


# ========== Test 1: NamedConfigKey ==========

def test_key_ignores_insertion_order():
    first = NamedConfigKey.of("main", Configuration({"a": "1", "b": "2"}))
    second = NamedConfigKey.of("main", {"b": "2", "a": "1"})

    assert first == second
    assert hash(first) == hash(second)
    assert first.configuration == Configuration({"a": "1", "b": "2"})


def test_key_distinguishes_name_and_configuration():
    configuration = Configuration({"a": "1"})

    assert NamedConfigKey.of("main", configuration) != NamedConfigKey.of("other", configuration)
    assert NamedConfigKey.of("main", configuration) != NamedConfigKey.of("main", Configuration({"a": "2"}))


def test_key_requires_name():
    with pytest.raises(TypeError):
        NamedConfigKey.of(None, Configuration())


# ========== Test 2: CachedObjectFactory ==========

def test_same_key_returns_same_object():
    factory = CountingFactory()
    configuration = Configuration({"url": "x"})

    first = factory.get_object("main", configuration)
    second = factory.get_object("main", Configuration({"url": "x"}))

    assert first is second
    assert factory.created == 1
    assert factory.cached_count() == 1


def test_different_configuration_creates_new_object():
    factory = CountingFactory()

    dev = factory.get_object("main", Configuration({"url": "dev"}))
    prod = factory.get_object("main", Configuration({"url": "prod"}))

    assert dev is not prod
    assert factory.created == 2


def test_racing_callers_share_one_creation():
    """Test concurrent lookups of one key build the object exactly once."""
    factory = CountingFactory(delay=0.05)
    configuration = Configuration({"url": "x"})
    barrier = threading.Barrier(8)
    results = []

    def lookup():
        barrier.wait()
        results.append(factory.get_object("main", configuration))

    threads = [threading.Thread(target=lookup) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert factory.created == 1
    assert len(results) == 8
    assert all(result is results[0] for result in results)


def test_objects_are_scoped_to_their_dispatcher():
    factory = CountingFactory()
    configuration = Configuration({"url": "x"})
    first = CommandContext({EventDispatcher: EventDispatcher()})
    second = CommandContext({EventDispatcher: EventDispatcher()})

    assert factory.get_object("main", configuration, first) is factory.get_object("main", configuration, first)
    assert factory.get_object("main", configuration, first) is not factory.get_object("main", configuration, second)
    assert factory.created == 2


def test_close_event_evicts_cached_object():
    """Test a closed owner never gets its old object back."""
    factory = CountingFactory()
    configuration = Configuration({"url": "x"})
    dispatcher = EventDispatcher()
    context = CommandContext({EventDispatcher: dispatcher})
    other = CommandContext({EventDispatcher: EventDispatcher()})
    before = factory.get_object("main", configuration, context)
    kept = factory.get_object("main", configuration, other)

    dispatcher.dispatch(CloseEvent())

    assert factory.cached_count() == 1
    assert factory.get_object("main", configuration, context) is not before
    assert factory.get_object("main", configuration, other) is kept


# ========== Test 3: LockTemplate ==========

def test_lock_template_runs_callback():
    assert LockTemplate(1).run(lambda: "done") == "done"


def test_lock_template_times_out():
    template = LockTemplate(0.1)
    holding = threading.Event()
    release = threading.Event()

    def hold():
        with template.hold():
            holding.set()
            release.wait(5)

    holder = threading.Thread(target=hold)
    holder.start()
    holding.wait(5)
    try:
        with pytest.raises(LockStateError, match="within 0.1s"):
            template.run(lambda: None)
    finally:
        release.set()
        holder.join()


def test_lock_template_is_reentrant():
    template = LockTemplate(1)

    assert template.run(lambda: template.run(lambda: "inner")) == "inner"


def test_lock_template_rejects_non_positive_timeout():
    with pytest.raises(ValueError):
        LockTemplate(0)


# ========== Test 4: Events ==========

def test_dispatch_reaches_subscribers_of_type():
    dispatcher = EventDispatcher()
    received = []
    dispatcher.subscribe(CloseEvent, received.append)
    dispatcher.subscribe(str, lambda event: received.append("wrong"))

    dispatcher.dispatch(CloseEvent())

    assert received == [CloseEvent()]


def test_dispatch_runs_every_listener_then_raises():
    """Test a failing listener does not stop the others."""
    dispatcher = EventDispatcher()
    second = Resource()

    def failing(event):
        raise RuntimeError("boom")

    dispatcher.subscribe(CloseEvent, failing)
    dispatcher.subscribe(CloseEvent, lambda event: second.close())

    with pytest.raises(EventDispatchError) as exc_info:
        dispatcher.dispatch(CloseEvent())

    assert second.closed
    assert len(exc_info.value.errors) == 1
    assert isinstance(exc_info.value.errors[0], RuntimeError)


def test_close_on_shutdown_subscribes_resource():
    dispatcher = EventDispatcher()
    context = CommandContext({EventDispatcher: dispatcher})
    resource = Resource()

    close_on_shutdown(context, resource)
    dispatcher.dispatch(CloseEvent())

    assert resource.closed


def test_close_on_shutdown_without_dispatcher_is_noop():
    resource = Resource()

    close_on_shutdown(None, resource)
    close_on_shutdown(CommandContext(), resource)

    assert not resource.closed

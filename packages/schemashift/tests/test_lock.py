"""
Tests for the renewable lease lock

Validates:
- Reentrant acquisition without extra external writes
- Release only on the final unlock; unlock while unheld fails
- Renewal after a quarter of the TTL; lost lease is fatal
- Mutual exclusion between holders and takeover of expired leases
- The SQL lock repository on SQLite
- TTL and lock type configuration
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from schemashift.config import Configuration
from schemashift.database import Database, DatabaseFactory
from schemashift.errors import LockLostError, LockStateError, MisconfigurationError
from schemashift.lock import (
    DatabaseLockService,
    InMemoryLockStateRepository,
    SqlLockStateRepository,
    create_lock_service,
    ttl_from_configuration,
)

TTL = timedelta(minutes=20)


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, delta):
        self.now += delta


class SpyRepository(InMemoryLockStateRepository):
    """Counts external writes."""

    def __init__(self, clock):
        super().__init__(clock)
        self.acquire_calls = 0
        self.renew_calls = 0
        self.release_calls = 0

    def update_id_and_expiration_if_owner_is_null_or_expiration_is_reached(self, lock_id, expiration, locked_by=None):
        self.acquire_calls += 1
        return super().update_id_and_expiration_if_owner_is_null_or_expiration_is_reached(lock_id, expiration, locked_by)

    def update_lock_expiration(self, lock_id, expiration):
        self.renew_calls += 1
        return super().update_lock_expiration(lock_id, expiration)

    def update_id_to_null(self, lock_id):
        self.release_calls += 1
        return super().update_id_to_null(lock_id)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository(clock):
    return SpyRepository(clock)


@pytest.fixture
def service(repository, clock):
    return DatabaseLockService(repository, TTL, clock)


# ========== Test 1: Reentrancy ==========

def test_first_lock_writes_owner_and_expiration(service, repository, clock):
    assert service.try_lock(1)

    record = repository.get_lock_record()
    assert record.lock_id == service.lock_id
    assert record.expiration == clock.now + TTL
    assert "@" in record.locked_by
    assert service.acquired_count == 1


def test_reentrant_lock_skips_external_write(service, repository):
    assert service.try_lock(1)
    assert service.try_lock(1)

    assert service.acquired_count == 2
    assert repository.acquire_calls == 1
    assert repository.renew_calls == 0


def test_only_final_unlock_releases(service, repository):
    service.try_lock(1)
    service.try_lock(1)

    service.unlock()
    assert repository.get_lock_record().lock_id == service.lock_id
    assert repository.release_calls == 0

    service.unlock()
    assert repository.get_lock_record().lock_id is None
    assert repository.release_calls == 1


def test_unlock_while_unheld_fails(service):
    with pytest.raises(LockStateError, match="not held"):
        service.unlock()

    service.try_lock(1)
    service.unlock()
    with pytest.raises(LockStateError):
        service.unlock()


# ========== Test 2: Renewal ==========

def test_no_renewal_before_quarter_ttl(service, repository, clock):
    service.try_lock(1)
    clock.advance(TTL / 4)

    service.try_lock(1)

    assert repository.renew_calls == 0


def test_renewal_after_quarter_ttl(service, repository, clock):
    service.try_lock(1)
    clock.advance(TTL / 4 + timedelta(seconds=1))

    service.try_lock(1)

    assert repository.renew_calls == 1
    assert repository.get_lock_record().expiration == clock.now + TTL
    assert service.acquired_count == 2


def test_renewal_measured_from_last_renewal(service, repository, clock):
    service.try_lock(1)
    clock.advance(TTL / 4 + timedelta(seconds=1))
    service.try_lock(1)
    clock.advance(timedelta(seconds=1))

    service.try_lock(1)

    assert repository.renew_calls == 1


def test_lost_lease_is_fatal(repository, clock):
    first = DatabaseLockService(repository, TTL, clock)
    second = DatabaseLockService(repository, TTL, clock)
    assert first.try_lock(1)

    clock.advance(TTL + timedelta(seconds=1))
    assert second.try_lock(1)

    with pytest.raises(LockLostError, match=first.lock_id):
        first.try_lock(1)


# ========== Test 3: Mutual exclusion ==========

def test_second_holder_is_refused(repository, clock):
    first = DatabaseLockService(repository, TTL, clock)
    second = DatabaseLockService(repository, TTL, clock)

    assert first.try_lock(1)
    assert not second.try_lock(1)
    assert second.acquired_count == 0

    first.unlock()
    assert second.try_lock(1)


def test_expired_lease_can_be_taken_over(repository, clock):
    first = DatabaseLockService(repository, TTL, clock)
    second = DatabaseLockService(repository, TTL, clock)
    first.try_lock(1)

    clock.advance(TTL + timedelta(seconds=1))

    assert second.try_lock(1)
    assert repository.get_lock_record().lock_id == second.lock_id


def test_release_by_non_owner_leaves_record(repository, clock):
    first = DatabaseLockService(repository, TTL, clock)
    second = DatabaseLockService(repository, TTL, clock)
    first.try_lock(1)
    clock.advance(TTL + timedelta(seconds=1))
    second.try_lock(1)

    assert not repository.update_id_to_null(first.lock_id)
    assert repository.get_lock_record().lock_id == second.lock_id


# ========== Test 4: SQL repository ==========

@pytest.fixture
def sql_repository(database, clock):
    return SqlLockStateRepository(database, Configuration(), clock)


def test_sql_repository_creates_table_and_row(sql_repository, database):
    assert database.has_table("schemashift_lock_v1")

    record = sql_repository.get_lock_record()
    assert record.lock_id is None
    assert record.expiration is None


def test_sql_repository_keeps_single_row(database, clock):
    SqlLockStateRepository(database, Configuration(), clock)
    repository = SqlLockStateRepository(database, Configuration(), clock)

    with database.engine.connect() as connection:
        count = connection.execute(select(func.count()).select_from(repository.table)).scalar_one()
    assert count == 1


def test_sql_repository_compare_and_set(sql_repository, clock):
    expiration = clock.now + TTL

    assert sql_repository.update_id_and_expiration_if_owner_is_null_or_expiration_is_reached("a", expiration, "me@host")
    assert not sql_repository.update_id_and_expiration_if_owner_is_null_or_expiration_is_reached("b", expiration)

    record = sql_repository.get_lock_record()
    assert record.lock_id == "a"
    assert record.locked_by == "me@host"
    assert record.expiration == expiration
    assert record.expiration.tzinfo is not None


def test_sql_repository_expired_takeover(sql_repository, clock):
    sql_repository.update_id_and_expiration_if_owner_is_null_or_expiration_is_reached("a", clock.now + TTL)

    clock.advance(TTL + timedelta(seconds=1))

    assert sql_repository.update_id_and_expiration_if_owner_is_null_or_expiration_is_reached("b", clock.now + TTL)
    assert not sql_repository.update_lock_expiration("a", clock.now + TTL)
    assert sql_repository.update_lock_expiration("b", clock.now + TTL + TTL)


def test_sql_repository_release(sql_repository, clock):
    sql_repository.update_id_and_expiration_if_owner_is_null_or_expiration_is_reached("a", clock.now + TTL)

    assert not sql_repository.update_id_to_null("b")
    assert sql_repository.update_id_to_null("a")
    assert sql_repository.get_lock_record().lock_id is None


def test_sql_repository_custom_table(database, clock):
    SqlLockStateRepository(database, Configuration({"table.name": "deploy_lock"}), clock)

    assert database.has_table("deploy_lock")


def test_services_exclude_each_other_over_sql(database, clock):
    first = DatabaseLockService(SqlLockStateRepository(database, Configuration(), clock), TTL, clock)
    second = DatabaseLockService(SqlLockStateRepository(database, Configuration(), clock), TTL, clock)

    assert first.try_lock(1)
    assert not second.try_lock(1)
    first.unlock()
    assert second.try_lock(1)


# ========== Test 5: Configuration ==========

def test_default_ttl():
    assert ttl_from_configuration(Configuration()) == timedelta(hours=1)


def test_configured_ttl():
    configuration = Configuration({"lock.ttl.timeout": 30, "lock.ttl.timeUnit": "minutes"})

    assert ttl_from_configuration(configuration) == timedelta(minutes=30)


def test_unknown_ttl_unit():
    with pytest.raises(MisconfigurationError, match="timeUnit"):
        ttl_from_configuration(Configuration({"lock.ttl.timeout": 1, "lock.ttl.timeUnit": "fortnights"}))


def test_lock_disabled_by_default():
    assert create_lock_service(Configuration(), DatabaseFactory()) is None


def test_database_lock_from_configuration(sqlite_url):
    configuration = Configuration({
        "lock.type": "database",
        "lock.database.url": sqlite_url,
        "lock.ttl.timeout": 5,
        "lock.ttl.timeUnit": "MINUTES",
    })

    service = create_lock_service(configuration, DatabaseFactory())
    try:
        assert isinstance(service, DatabaseLockService)
        assert service.ttl == timedelta(minutes=5)
        assert service.try_lock(1)
        assert service.get_lock().lock_id == service.lock_id
        service.unlock()
    finally:
        service.close()


def test_unknown_lock_type():
    with pytest.raises(MisconfigurationError, match="Unknown lock.type"):
        create_lock_service(Configuration({"lock.type": "zookeeper"}), DatabaseFactory())

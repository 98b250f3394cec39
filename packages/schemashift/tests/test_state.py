"""
Tests for state bookkeeping

Validates:
- CSV repository: append, read back, delete, pending-commit recovery
- SQL repository on SQLite
- StateService: hashing, appliedBy override, revert bookkeeping
- Repository selection from configuration
"""

import hashlib
from datetime import datetime, timezone

import pytest

from schemashift.changefile import ChangeFileFactory
from schemashift.config import Configuration
from schemashift.database import DatabaseFactory
from schemashift.environment import Environment
from schemashift.errors import MisconfigurationError, StateError
from schemashift.hashing import HashService
from schemashift.state import (
    CsvStateRepository,
    SqlStateRepository,
    StateRecord,
    StateService,
    create_state_repository,
)
from schemashift.state.repository import CSV_HEADERS, PENDING_COMMIT_SUFFIX

FACTORY = ChangeFileFactory()


def _record(path, file_hash="abc123", applied_by="alice"):
    return StateRecord(
        change_file_id=FACTORY.parse(path),
        file_hash=file_hash,
        apply_timestamp=datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc),
        applied_by=applied_by,
    )


@pytest.fixture
def state_file(temp_workspace):
    return temp_workspace / "state" / "DEV" / "state-DEV.csv"


@pytest.fixture
def csv_repository(state_file):
    return CsvStateRepository(state_file, FACTORY)


@pytest.fixture
def changes(temp_workspace):
    directory = temp_workspace / "changes"
    (directory / "1.0").mkdir(parents=True)
    (directory / "1.0" / "001.create.apply.main.sql").write_text("CREATE TABLE t (id INT);", encoding="utf-8")
    (directory / "1.0" / "001.create.revert.main.sql").write_text("DROP TABLE t;", encoding="utf-8")
    return directory


# ========== Test 1: CSV repository ==========

def test_csv_starts_empty(csv_repository, state_file):
    assert csv_repository.get_all_records() == []
    assert not state_file.exists()


def test_csv_save_and_read_back(csv_repository, state_file):
    first = _record("1.0/001.create.apply.main.sql")
    second = _record("1.0/002.seed.DEV.apply.main.sql", file_hash=None)

    csv_repository.save_record(first)
    csv_repository.save_record(second)

    assert state_file.read_text(encoding="utf-8").splitlines()[0] == ",".join(CSV_HEADERS)
    records = csv_repository.get_all_records()
    assert records == [first, second]
    assert records[1].file_hash is None


def test_csv_delete(csv_repository, state_file):
    csv_repository.save_record(_record("1.0/001.create.apply.main.sql"))
    csv_repository.save_record(_record("1.0/002.seed.apply.main.sql"))

    deleted = csv_repository.delete_records_by_ids([FACTORY.parse("1.0/001.create.apply.main.sql")])

    assert deleted == 1
    assert [str(record.change_file_id) for record in csv_repository.get_all_records()] == [
        "1.0/002.seed.apply.main.sql"
    ]
    assert not state_file.with_name(state_file.name + PENDING_COMMIT_SUFFIX).exists()


def test_csv_delete_nothing(csv_repository):
    csv_repository.save_record(_record("1.0/001.create.apply.main.sql"))

    assert csv_repository.delete_records_by_ids([FACTORY.parse("1.0/009.other.apply.main.sql")]) == 0
    assert len(csv_repository.get_all_records()) == 1


def test_csv_pending_commit_recovered(state_file):
    """Test a leftover pending file replaces the state file at startup."""
    CsvStateRepository(state_file, FACTORY).save_record(_record("1.0/001.stale.apply.main.sql"))
    pending = state_file.with_name(state_file.name + PENDING_COMMIT_SUFFIX)
    pending.write_text(
        ",".join(CSV_HEADERS) + "\n" + "1.0/002.fresh.apply.main.sql,ff00,2024-05-01T10:30:00+00:00,bob\n",
        encoding="utf-8",
    )

    repository = CsvStateRepository(state_file, FACTORY)

    assert not pending.exists()
    records = repository.get_all_records()
    assert [str(record.change_file_id) for record in records] == ["1.0/002.fresh.apply.main.sql"]
    assert records[0].applied_by == "bob"


def test_csv_malformed_record(state_file):
    state_file.parent.mkdir(parents=True)
    state_file.write_text(",".join(CSV_HEADERS) + "\nnot-a-change-file,,,\n", encoding="utf-8")

    with pytest.raises(StateError, match="Malformed state record"):
        CsvStateRepository(state_file, FACTORY).get_all_records()


# ========== Test 2: SQL repository ==========

def test_sql_repository_round_trip(database):
    repository = SqlStateRepository(database, FACTORY)
    first = _record("1.0/001.create.apply.main.sql")
    second = _record("1.0/002.seed.apply.main.sql")

    repository.save_record(first)
    repository.save_record(second)

    assert database.has_table("schemashift_state_v1")
    assert sorted(repository.get_all_records(), key=lambda record: record.change_file_id) == [first, second]


def test_sql_repository_delete_many(database):
    repository = SqlStateRepository(database, FACTORY, table_name="deploy_state")
    for path in ("1.0/001.a.apply.main.sql", "1.0/002.b.apply.main.sql", "1.0/003.c.apply.main.sql"):
        repository.save_record(_record(path))

    deleted = repository.delete_records_by_ids([
        FACTORY.parse("1.0/001.a.apply.main.sql"),
        FACTORY.parse("1.0/003.c.apply.main.sql"),
    ])

    assert deleted == 2
    assert [str(record.change_file_id) for record in repository.get_all_records()] == ["1.0/002.b.apply.main.sql"]
    assert repository.delete_records_by_ids([]) == 0


# ========== Test 3: StateService ==========

def test_register_apply_with_hash(csv_repository, changes):
    service = StateService(csv_repository, Configuration(), HashService())
    apply_file = FACTORY.get_apply_file(changes, changes / "1.0" / "001.create.apply.main.sql")

    service.register_completion(apply_file)

    record = service.get_state_records()[0]
    assert record.change_file_id == apply_file.id
    assert record.file_hash == hashlib.sha256(b"CREATE TABLE t (id INT);").hexdigest()
    assert record.apply_timestamp.tzinfo is not None
    assert service.get_applied_changes() == ["1.0/001.create.apply.main.sql"]


def test_register_apply_without_hashing(csv_repository, changes):
    service = StateService(csv_repository)
    apply_file = FACTORY.get_apply_file(changes, changes / "1.0" / "001.create.apply.main.sql")

    service.register_completion(apply_file)

    assert service.get_state_records()[0].file_hash is None


def test_applied_by_override(csv_repository, changes):
    configuration = Configuration({"state.override.appliedBy.userId": "release-bot"})
    service = StateService(csv_repository, configuration)

    service.register_completion(FACTORY.get_apply_file(changes, changes / "1.0" / "001.create.apply.main.sql"))

    assert service.get_state_records()[0].applied_by == "release-bot"


def test_register_revert_removes_apply_record(csv_repository, changes):
    service = StateService(csv_repository)
    service.register_completion(FACTORY.get_apply_file(changes, changes / "1.0" / "001.create.apply.main.sql"))

    service.register_completion(FACTORY.get_revert_file(changes, changes / "1.0" / "001.create.revert.main.sql"))

    assert service.get_state_records() == []


def test_register_revert_without_record_fails(csv_repository, changes):
    service = StateService(csv_repository)
    revert_file = FACTORY.get_revert_file(changes, changes / "1.0" / "001.create.revert.main.sql")

    with pytest.raises(StateError, match="0 records deleted from state for: 1.0/001.create.revert.main.sql"):
        service.register_completion(revert_file)


# ========== Test 4: Repository selection ==========

def test_csv_is_default_and_pattern_uses_environment(temp_workspace):
    configuration = Configuration({
        "stateRepository.csv.file.path.pattern": str(temp_workspace / "${environment}" / "applied.csv"),
    })

    repository = create_state_repository(configuration, Environment("QA"), FACTORY)

    assert isinstance(repository, CsvStateRepository)
    assert repository.state_file == temp_workspace / "QA" / "applied.csv"


def test_database_repository_selected(sqlite_url):
    configuration = Configuration({
        "stateRepository.type": "database",
        "stateRepository.database.url": sqlite_url,
        "stateRepository.database.table.name": "applied_changes",
    })

    repository = create_state_repository(configuration, Environment("QA"), FACTORY, DatabaseFactory())
    try:
        assert isinstance(repository, SqlStateRepository)
        assert repository.table.name == "applied_changes"
    finally:
        repository.close()


def test_unknown_repository_type():
    with pytest.raises(MisconfigurationError, match="stateRepository.type"):
        create_state_repository(Configuration({"stateRepository.type": "redis"}), Environment("QA"), FACTORY)

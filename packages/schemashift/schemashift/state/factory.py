"""Builds the configured StateRepository."""

import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from ..changefile import ChangeFileFactory
from ..config import Configuration
from ..database import DatabaseFactory
from ..environment import Environment
from ..errors import MisconfigurationError
from ..expressions import ExpressionEvaluator
from .repository import DEFAULT_STATE_TABLE_NAME, CsvStateRepository, SqlStateRepository, StateRepository

logger = logging.getLogger(__name__)

STATE_DATABASE_NAME = "state"
DEFAULT_STATE_FILE_PATTERN = "schemashift/state/${environment}/state-${environment}.csv"


class CsvStateSettings(BaseModel):
    file_path_pattern: str = DEFAULT_STATE_FILE_PATTERN

    @classmethod
    def from_configuration(cls, configuration: Configuration) -> "CsvStateSettings":
        pattern = configuration.get_string("file.path.pattern")
        return cls(file_path_pattern=pattern) if pattern else cls()

    def resolve_path(self, environment: Environment) -> Path:
        evaluated = ExpressionEvaluator().evaluate(self.file_path_pattern, {"environment": environment.name})
        return Path(evaluated)


class DatabaseStateSettings(BaseModel):
    table_name: str = DEFAULT_STATE_TABLE_NAME

    @classmethod
    def from_configuration(cls, configuration: Configuration) -> "DatabaseStateSettings":
        table_name = configuration.get_string("table.name")
        return cls(table_name=table_name) if table_name else cls()


def create_state_repository(
    configuration: Configuration,
    environment: Environment,
    change_file_factory: ChangeFileFactory,
    database_factory: Optional[DatabaseFactory] = None,
    context=None,
) -> StateRepository:
    """
    Create the repository named by ``stateRepository.type`` (default ``csv``).

    Raises:
        MisconfigurationError: For an unknown repository type
    """
    repository_type = (configuration.get_string("stateRepository.type") or "csv").strip().lower()

    if repository_type == "csv":
        settings = CsvStateSettings.from_configuration(configuration.get_prefix_namespace("stateRepository", "csv"))
        repository = CsvStateRepository(settings.resolve_path(environment), change_file_factory)
    elif repository_type == "database":
        database_configuration = Configuration({"logSql": "false"}).add_all(
            configuration.get_prefix_namespace("stateRepository", "database")
        )
        settings = DatabaseStateSettings.from_configuration(database_configuration)
        database = (database_factory or DatabaseFactory()).get_database(
            STATE_DATABASE_NAME, database_configuration, context
        )
        repository = SqlStateRepository(database, change_file_factory, settings.table_name)
    else:
        raise MisconfigurationError(
            f"Unknown stateRepository.type: '{repository_type}'; expected one of: csv, database"
        )

    logger.info(f"Using state repository: {repository!r}")
    return repository

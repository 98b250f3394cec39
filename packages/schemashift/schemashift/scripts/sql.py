"""
SQL script execution.

A script is split on ``statementSeparator`` (default ``;``) unless
``no.statementSeparator`` is true; segments are trimmed, blanks dropped, and
each one runs as an independent update.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..config import Configuration
from ..database import Database, DatabaseFactory
from ..errors import ExecutionError
from ..events import close_on_shutdown
from .base import ScriptExecutor, ScriptExecutorFactory

logger = logging.getLogger(__name__)

DEFAULT_STATEMENT_SEPARATOR = ";"


class SqlScriptExecutor(ScriptExecutor):

    def __init__(self, name: str, configuration: Configuration, database: Database):
        self.name = name
        self.database = database
        if configuration.get_bool("no.statementSeparator"):
            self.statement_separator: Optional[str] = None
        else:
            self.statement_separator = (
                configuration.get_string("statementSeparator") or DEFAULT_STATEMENT_SEPARATOR
            )

    def split_statements(self, script: str) -> List[str]:
        if self.statement_separator is None:
            segments = [script]
        else:
            segments = script.split(self.statement_separator)
        return [segment.strip() for segment in segments if segment.strip()]

    def execute(self, script: str, context) -> None:
        for statement in self.split_statements(script):
            try:
                self.database.execute_update(statement)
            except SQLAlchemyError as e:
                raise ExecutionError(f"Statement failed: {statement}") from e

    def close(self) -> None:
        self.database.close()

    def __repr__(self) -> str:
        return f"SqlScriptExecutor(database={self.database!r}, separator={self.statement_separator!r})"


class SqlScriptExecutorFactory(ScriptExecutorFactory):

    def __init__(self, database_factory: DatabaseFactory):
        super().__init__()
        self.database_factory = database_factory

    @property
    def extensions(self) -> List[str]:
        return ["sql"]

    def create_new_object(self, name: str, configuration: Configuration, context) -> ScriptExecutor:
        database = self.database_factory.get_database(name, configuration, context)
        executor = SqlScriptExecutor(name, configuration, database)
        close_on_shutdown(context, executor)
        return executor

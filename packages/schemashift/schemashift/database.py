"""
Named SQLAlchemy databases.

A Database wraps one Engine built from a configuration namespace:

    url         SQLAlchemy URL (required), e.g. postgresql+psycopg://host/db
    username    optional, overrides the URL user
    password    optional, overrides the URL password
    logSql      log every statement at INFO (default: true)
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine, make_url

from .cache import CachedObjectFactory
from .config import Configuration
from .errors import MisconfigurationError, SchemaShiftError
from .events import close_on_shutdown

logger = logging.getLogger(__name__)


class Database:
    """A named connection pool executing plain SQL text."""

    def __init__(self, name: str, configuration: Configuration):
        self.name = name

        url = configuration.get_string("url")
        if not url:
            raise MisconfigurationError(f"Missing value for '{name}': 'url'")

        sa_url = make_url(url)
        username = configuration.get_string("username")
        password = configuration.get_string("password")
        if username is not None:
            sa_url = sa_url.set(username=username)
        if password is not None:
            sa_url = sa_url.set(password=password)

        self.log_sql = configuration.get_bool("logSql")
        if self.log_sql is None:
            self.log_sql = True

        connect_args = {"check_same_thread": False} if sa_url.drivername.startswith("sqlite") else {}
        self._engine: Engine = create_engine(sa_url, connect_args=connect_args, pool_pre_ping=True)
        self._closed = False

        logger.info(f"[{name}] database: engine created for {sa_url.render_as_string(hide_password=True)}")

    @property
    def engine(self) -> Engine:
        self._require_open()
        return self._engine

    def execute_update(self, sql: str, parameters: Optional[Mapping[str, Any]] = None) -> int:
        """Execute one statement in its own transaction; return affected row count."""
        self._log("executeUpdate", sql, parameters)
        with self.engine.begin() as connection:
            result = connection.execute(text(sql), dict(parameters or {}))
            return result.rowcount

    def query(self, sql: str, parameters: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        self._log("query", sql, parameters)
        with self.engine.connect() as connection:
            result = connection.execute(text(sql), dict(parameters or {}))
            return [dict(row) for row in result.mappings()]

    def has_table(self, table_name: str) -> bool:
        return inspect(self.engine).has_table(table_name)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info(f"[{self.name}] database: disposing connection pool")
        self._engine.dispose()

    def _require_open(self) -> None:
        if self._closed:
            raise SchemaShiftError(f"Database '{self.name}' is closed")

    def _log(self, operation: str, sql: str, parameters) -> None:
        if self.log_sql:
            logger.info(f"[{self.name}] database: {operation} SQL: {sql}")
            if parameters:
                logger.info(f"[{self.name}] database: {operation} parameters: {dict(parameters)}")

    def __repr__(self) -> str:
        return f"Database(name={self.name!r})"


class DatabaseFactory(CachedObjectFactory[Database]):
    """One Database per (name, configuration)."""

    def get_database(self, name: str, configuration: Configuration, context=None) -> Database:
        return self.get_object(name, configuration, context)

    def create_new_object(self, name: str, configuration: Configuration, context) -> Database:
        database = Database(name, configuration)
        close_on_shutdown(context, database)
        return database

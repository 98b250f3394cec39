from .factory import CsvStateSettings, DatabaseStateSettings, create_state_repository
from .repository import CsvStateRepository, SqlStateRepository, StateRecord, StateRepository
from .service import StateService

__all__ = [
    "create_state_repository",
    "CsvStateRepository",
    "CsvStateSettings",
    "DatabaseStateSettings",
    "SqlStateRepository",
    "StateRecord",
    "StateRepository",
    "StateService",
]

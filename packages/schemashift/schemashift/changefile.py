"""
Change file identity and the file naming grammar.

A change file name encodes its migration intent:

    <order>.<description>[.<environment>].<type>.<connector>.<extension>

    001.create_users.DEV.apply.jdbc.sql   -> DEV only
    002.add_index.apply.jdbc.sql          -> every environment

``order`` is a non-negative integer whose text (leading zeros included) is
kept verbatim; ``type`` is ``apply`` or ``revert`` (any case) or the literal
``null``. Files live below a changes directory; the path relative to it
(parent directory + file name) is what gets parsed.
"""

import functools
import re
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path, PurePath, PurePosixPath, PureWindowsPath
from typing import Optional, Union

from .config import Configuration
from .errors import GrammarError

MAX_PATH_LENGTH_KEY = "changeFile.id.path.maxLength"
DEFAULT_MAX_PATH_LENGTH = 256

NO_ENVIRONMENT_PART_COUNT = 5
ENVIRONMENT_PART_COUNT = 6

_ORDER = re.compile(r"^-?\d+$")


class ChangeType(str, Enum):
    APPLY = "APPLY"
    REVERT = "REVERT"

    @classmethod
    def from_name(cls, value: str) -> "ChangeType":
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise GrammarError(f"Unknown change type: '{value}'") from None


@functools.total_ordering
@dataclass(frozen=True)
class ChangeFileId:
    """Immutable identity of a change file."""

    parent_directory: str
    order: str
    description: str
    environment: Optional[str]
    change_type: Optional[ChangeType]
    connector: str
    extension: str

    @property
    def order_number(self) -> int:
        return int(self.order)

    def to_string_representation(self) -> str:
        parts = [self.order, self.description]
        if self.environment is not None:
            parts.append(self.environment)
        parts.append(self.change_type.value.lower() if self.change_type is not None else "null")
        parts.append(self.connector)
        parts.append(self.extension)
        return f"{self.parent_directory}/" + ".".join(parts)

    def with_change_type(self, change_type: Optional[ChangeType]) -> "ChangeFileId":
        return replace(self, change_type=change_type)

    def _sort_key(self):
        return (
            self.parent_directory,
            self.order_number,
            self.order,
            self.description,
            self.environment or "",
            self.change_type.value if self.change_type is not None else "",
            self.connector,
            self.extension,
        )

    def __lt__(self, other):
        if not isinstance(other, ChangeFileId):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def __str__(self) -> str:
        return self.to_string_representation()


@dataclass(frozen=True)
class ChangeFile:
    changes_directory: Path
    file: Path
    id: ChangeFileId

    @property
    def relative_path(self) -> Path:
        return self.file.relative_to(self.changes_directory)

    @property
    def change_type(self) -> Optional[ChangeType]:
        return self.id.change_type

    @property
    def environment(self) -> Optional[str]:
        return self.id.environment

    @property
    def connector(self) -> str:
        return self.id.connector

    @property
    def order(self) -> int:
        return self.id.order_number


class ApplyFile(ChangeFile):
    """A change file that moves the target forward."""


class RevertFile(ChangeFile):
    """A change file that undoes a previously applied change."""


class ChangeFileFactory:
    """Parses change file paths into ChangeFileId values."""

    def __init__(self, configuration: Optional[Configuration] = None):
        configured = (configuration or Configuration()).get_int(MAX_PATH_LENGTH_KEY)
        self.max_path_length = configured if configured is not None else DEFAULT_MAX_PATH_LENGTH

    def get_apply_file(self, changes_directory: Path, file: Path) -> ApplyFile:
        return ApplyFile(changes_directory, file, self._id_from_paths(changes_directory, file))

    def get_revert_file(self, changes_directory: Path, file: Path) -> RevertFile:
        return RevertFile(changes_directory, file, self._id_from_paths(changes_directory, file))

    def _id_from_paths(self, changes_directory: Path, file: Path) -> ChangeFileId:
        return self.parse(str(Path(file).relative_to(changes_directory)))

    def parse(self, relative_path: Union[str, PurePath]) -> ChangeFileId:
        """
        Parse a path relative to the changes directory.

        Args:
            relative_path: e.g. ``"1.0/001.create.DEV.apply.jdbc.sql"``

        Returns:
            The parsed ChangeFileId

        Raises:
            GrammarError: If the path is absolute, too long, or the file name
                does not follow the naming grammar
        """
        if relative_path is None:
            raise TypeError("relative_path cannot be None")
        text = str(relative_path)

        if len(text) > self.max_path_length:
            raise GrammarError(
                f"Maximum allowed length for parent directory name and file name combined is "
                f"{self.max_path_length}, was {len(text)} for {text}. "
                f"Adjustable via config: {MAX_PATH_LENGTH_KEY}"
            )

        if PurePosixPath(text).is_absolute() or PureWindowsPath(text).is_absolute() or PureWindowsPath(text).drive:
            raise GrammarError(f"A relative path is expected here, but was: {text}")

        normalized = PurePosixPath(text.replace("\\", "/"))
        parent_directory = str(normalized.parent)
        file_name = normalized.name
        if not file_name:
            raise GrammarError(f"File name cannot be empty in: '{text}'")

        parts = file_name.split(".")
        if len(parts) not in (NO_ENVIRONMENT_PART_COUNT, ENVIRONMENT_PART_COUNT):
            raise GrammarError(f"File name is illegal: '{text}'")

        remaining = iter(parts)
        order = _parse_order(next(remaining), text)
        description = _require_non_blank(next(remaining), "description", text)
        environment = next(remaining) if len(parts) == ENVIRONMENT_PART_COUNT else None
        change_type = _parse_change_type(next(remaining), text)
        connector = _require_non_blank(next(remaining), "connector", text)
        extension = _require_non_blank(next(remaining), "extension", text)

        return ChangeFileId(
            parent_directory=parent_directory,
            order=order,
            description=description,
            environment=environment,
            change_type=change_type,
            connector=connector,
            extension=extension,
        )


def _parse_order(value: str, path: str) -> str:
    if not _ORDER.match(value):
        raise GrammarError(f"Failed to extract order from: {path}")
    if int(value) < 0:
        raise GrammarError(f"Order cannot be a negative number in: {path}")
    return value


def _require_non_blank(value: str, field: str, path: str) -> str:
    if not value.strip():
        raise GrammarError(f"Found blank {field} in: {path}")
    return value


def _parse_change_type(value: str, path: str) -> Optional[ChangeType]:
    if value.lower() == "null":
        return None
    try:
        return ChangeType.from_name(value)
    except GrammarError as e:
        raise GrammarError(f"Failed to extract change type from: {path}") from e

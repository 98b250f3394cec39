"""
Change file discovery.

The changes directory is walked breadth-first. Sibling directories are
visited in version order (``1.9`` before ``1.10``); inside a directory the
files are sorted by their integer order. Revert discovery reverses both.
"""

import functools
import logging
import re
from abc import abstractmethod
from collections import deque
from pathlib import Path
from typing import Iterable, List, Optional, Pattern, Set

from ..changefile import ApplyFile, ChangeFile, ChangeFileFactory, ChangeType, RevertFile
from ..command.context import CommandContext
from ..command.pipeline import Command
from ..config import Configuration
from ..environment import Environment
from ..errors import MisconfigurationError
from ..state.service import StateService

logger = logging.getLogger(__name__)

DEFAULT_CHANGES_DIRECTORY = "changes"

_DIGIT = re.compile(r"\d")
_NUMBER = re.compile(r"\d+")


def compare_directories(left: Path, right: Path) -> int:
    """
    Order directory names as versions when both contain digits.

    ``1.10`` sorts after ``1.9``; names without digits compare as text.
    """
    left_name, right_name = left.name, right.name
    if _DIGIT.search(left_name) and _DIGIT.search(right_name):
        left_version = [int(part) for part in _NUMBER.findall(left_name)]
        right_version = [int(part) for part in _NUMBER.findall(right_name)]
        if left_version != right_version:
            return -1 if left_version < right_version else 1
    return (left_name > right_name) - (left_name < right_name)


def resolve_changes_directory(configuration: Configuration) -> Path:
    directory = Path(configuration.get_string("changes.directory") or DEFAULT_CHANGES_DIRECTORY).resolve()
    if not directory.is_dir():
        raise MisconfigurationError(f"Changes directory does not exist or is not a directory: {directory}")
    return directory


class GetChangeFiles(Command[List[ChangeFile]]):
    """Base for apply and revert discovery."""

    change_types: Set[ChangeType] = set()
    reverse = False

    def __init__(self, filter_expression: Optional[str] = None):
        self.filter_expression = filter_expression
        self._filter: Optional[Pattern] = re.compile(filter_expression) if filter_expression is not None else None

    def execute(self, context: CommandContext) -> List[ChangeFile]:
        factory = context.get(ChangeFileFactory)
        environment = context.get(Environment)
        root = resolve_changes_directory(context.get(Configuration))

        logger.info(f"Searching for change files in: {root}")

        change_files: List[ChangeFile] = []
        directories = deque([root])
        while directories:
            directory = directories.popleft()
            directories.extend(self._sorted_subdirectories(directory))
            change_files.extend(self._change_files_in(directory, root, environment, factory))

        logger.debug(f"{len(change_files)} {type(self).__name__} result(s)")
        return change_files

    def _sorted_subdirectories(self, directory: Path) -> List[Path]:
        subdirectories = [path for path in directory.iterdir() if path.is_dir()]
        return sorted(subdirectories, key=functools.cmp_to_key(compare_directories), reverse=self.reverse)

    def _change_files_in(
        self, directory: Path, root: Path, environment: Environment, factory: ChangeFileFactory
    ) -> List[ChangeFile]:
        selected = []
        for path in sorted(directory.iterdir()):
            if not path.is_file():
                continue
            change_file_id = factory.parse(path.relative_to(root).as_posix())
            if change_file_id.change_type not in self.change_types:
                continue
            change_file = self.create_change_file(factory, root, path)
            if self._matches(change_file, environment):
                selected.append(change_file)
        return sorted(selected, key=lambda change_file: change_file.order, reverse=self.reverse)

    def _matches(self, change_file: ChangeFile, environment: Environment) -> bool:
        declared = change_file.environment
        if declared is not None and declared.lower() != environment.name.lower():
            return False
        if self._filter is not None:
            return self._filter.fullmatch(change_file.relative_path.as_posix()) is not None
        return True

    @abstractmethod
    def create_change_file(self, factory: ChangeFileFactory, root: Path, path: Path) -> ChangeFile:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(filter_expression={self.filter_expression!r})"


class GetApplyFiles(GetChangeFiles):
    change_types = {ChangeType.APPLY}

    def create_change_file(self, factory: ChangeFileFactory, root: Path, path: Path) -> ApplyFile:
        return factory.get_apply_file(root, path)


class GetRevertFiles(GetChangeFiles):
    change_types = {ChangeType.REVERT}
    reverse = True

    def create_change_file(self, factory: ChangeFileFactory, root: Path, path: Path) -> RevertFile:
        return factory.get_revert_file(root, path)


class GetPendingApplyFiles(Command[List[ApplyFile]]):
    """Apply files that have no record in state."""

    def __init__(self, apply_files: Iterable[ApplyFile]):
        self.apply_files = list(apply_files)

    def execute(self, context: CommandContext) -> List[ApplyFile]:
        applied = set(context.get(StateService).get_applied_changes())
        return [apply_file for apply_file in self.apply_files if str(apply_file.id) not in applied]

    def __repr__(self) -> str:
        return f"GetPendingApplyFiles({len(self.apply_files)} file(s))"

"""
Local shell sessions.

Each execute() starts one process: the start command (``start.command``,
comma separated; ``cmd.exe,/c`` on Windows and ``sh,-c`` elsewhere by
default) followed by the given arguments.
"""

import logging
import platform
import subprocess
from typing import List, Sequence

from ..cache import CachedObjectFactory
from ..config import Configuration
from ..errors import ExecutionError
from .base import LineCollector, TerminalSession, read_both_streams

logger = logging.getLogger(__name__)


def default_start_command() -> List[str]:
    if platform.system().lower().startswith("windows"):
        return ["cmd.exe", "/c"]
    return ["sh", "-c"]


class LocalShellSession(TerminalSession[List[str]]):

    def __init__(self, name: str, configuration: Configuration):
        self.name = name
        self.start_command: List[str] = configuration.get_list("start.command") or default_start_command()

    def execute(self, command: Sequence[str]) -> None:
        full_command = [*self.start_command, *command]
        logger.info(f"[{self.name}] executing command: {full_command}")

        stdout_lines = LineCollector(logger, logging.INFO, "SHELL:O")
        stderr_lines = LineCollector(logger, logging.WARNING, "SHELL:E")

        try:
            process = subprocess.Popen(full_command, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as e:
            raise ExecutionError(f"Failed to start command {full_command}: {e}") from e

        out_reader, err_reader, pool = read_both_streams(
            process.stdout, process.stderr, stdout_lines, stderr_lines, f"shell-{self.name}"
        )
        try:
            out_reader.result()
            err_reader.result()
            exit_status = process.wait()
        except BaseException:
            # Interrupted or a reader failed: do not leave the child running.
            process.kill()
            process.wait()
            raise
        finally:
            pool.shutdown(wait=True)

        if exit_status != 0:
            message = f"Exit status {exit_status} received for command: {full_command}"
            if stderr_lines.tail:
                message += f"\n{stderr_lines.tail_text()}"
            raise ExecutionError(message)

    def __repr__(self) -> str:
        return f"LocalShellSession(name={self.name!r}, start_command={self.start_command!r})"


class LocalShellSessionFactory(CachedObjectFactory[LocalShellSession]):

    def get_session(self, name: str, configuration: Configuration, context=None) -> LocalShellSession:
        return self.get_object(name, configuration, context)

    def create_new_object(self, name: str, configuration: Configuration, context) -> LocalShellSession:
        return LocalShellSession(name, configuration)

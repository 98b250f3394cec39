"""Terminal session contract and stream draining."""

import logging
from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Deque, Generic, IO, List, Tuple, TypeVar

C = TypeVar("C")

# Lines of stderr quoted in failure messages.
ERROR_TAIL_LINES = 20


class TerminalSession(ABC, Generic[C]):
    """Executes commands of type C, raising ExecutionError on failure."""

    @abstractmethod
    def execute(self, command: C) -> None:
        ...

    def close(self) -> None:
        pass


def drain(stream: IO, consumer: Callable[[str], None]) -> None:
    """Feed each line of a stream to a consumer until EOF, then close it."""
    try:
        for line in stream:
            if isinstance(line, bytes):
                line = line.decode("utf-8", errors="replace")
            consumer(line.rstrip("\r\n"))
    finally:
        stream.close()


def read_both_streams(
    stdout: IO,
    stderr: IO,
    on_stdout: Callable[[str], None],
    on_stderr: Callable[[str], None],
    thread_name_prefix: str,
) -> Tuple[Future, Future, ThreadPoolExecutor]:
    """
    Start one reader thread per stream.

    Both readers must be joined before the exit status is read, otherwise a
    full pipe on one stream can block the child forever.
    """
    pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix=thread_name_prefix)
    return pool.submit(drain, stdout, on_stdout), pool.submit(drain, stderr, on_stderr), pool


class LineCollector:
    """Logs lines and keeps the last few for error messages."""

    def __init__(self, logger: logging.Logger, level: int, prefix: str):
        self._logger = logger
        self._level = level
        self._prefix = prefix
        self.tail: Deque[str] = deque(maxlen=ERROR_TAIL_LINES)

    def __call__(self, line: str) -> None:
        self._logger.log(self._level, f"[{self._prefix}] {line}")
        self.tail.append(line)

    def tail_text(self) -> str:
        lines: List[str] = list(self.tail)
        return "\n".join(lines)

"""
Secrets capability consumed by configuration evaluation.

Only the decode side is defined here. The default manager carries no
password, so any configuration that references a secret fails loudly
instead of passing the encoded text through.
"""

import atexit
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Optional

from .errors import MisconfigurationError

logger = logging.getLogger(__name__)

_SECRET_SUFFIXES = (".secret.txt", ".secret")


class SecretsManager(ABC):
    """Decodes secrets referenced from configuration."""

    @abstractmethod
    def decode(self, expression: str) -> str:
        ...

    def decoded_file_content(self, path: str) -> str:
        """Decode the (trimmed) content of a secret file."""
        file_path = Path(path)
        if not file_path.exists():
            raise MisconfigurationError(f"File not found: {file_path}")
        if not file_path.is_file():
            raise MisconfigurationError(f"File is not a regular file: {file_path}")
        if not os.access(file_path, os.R_OK):
            raise MisconfigurationError(f"File is not readable: {file_path}")

        return self.decode(file_path.read_text(encoding="utf-8").strip())

    def decoded_file_path(self, path: str) -> str:
        """
        Decode a secret file into a temporary plain-text file.

        The temporary file keeps the real extension of the source
        (``key.pem.secret`` becomes ``*.pem``) and is removed at exit.

        Returns:
            Absolute path of the temporary file
        """
        source = Path(path)
        content = self.decoded_file_content(path)

        name = source.name
        for suffix in _SECRET_SUFFIXES:
            if name.endswith(suffix):
                name = name[: -len(suffix)]
                break
        extension = Path(name).suffix or None

        fd, temp_path = tempfile.mkstemp(prefix=name, suffix=extension)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        atexit.register(_remove_quietly, temp_path)

        return str(Path(temp_path).resolve())

    def lookups(self) -> Dict[str, Callable[[str], str]]:
        """Expression lookups backed by this manager."""
        return {
            "secret": self.decode,
            "secretFileContent": self.decoded_file_content,
            "decodedFilePath": self.decoded_file_path,
        }


class PasswordlessSecretsManager(SecretsManager):
    """Default manager used when no password was supplied."""

    def decode(self, expression: str) -> str:
        raise MisconfigurationError(
            "If secrets are used in configuration, a password must be specified"
        )


def create_secrets_manager(secrets_manager: Optional[SecretsManager] = None) -> SecretsManager:
    """Return the supplied manager, or the default no-argument one."""
    if secrets_manager is not None:
        return secrets_manager
    return PasswordlessSecretsManager()


def _remove_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except OSError as e:
        logger.warning(f"Could not remove decoded secret file {path}: {e}")

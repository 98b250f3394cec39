"""Content hashing for applied change files."""

import hashlib
from pathlib import Path
from typing import Union

from .config import Configuration
from .errors import MisconfigurationError

DEFAULT_ALGORITHM = "sha256"
CHUNK_SIZE = 64 * 1024


class HashService:
    """Hex digest of file content, SHA-256 unless ``hash.algorithm`` says otherwise."""

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM):
        normalized = algorithm.replace("-", "").lower()
        if normalized not in hashlib.algorithms_available:
            raise MisconfigurationError(f"Unsupported hash algorithm: {algorithm}")
        self.algorithm = normalized

    @classmethod
    def from_configuration(cls, configuration: Configuration) -> "HashService":
        return cls(configuration.get_string("hash.algorithm") or DEFAULT_ALGORITHM)

    def hash_file(self, path: Union[str, Path]) -> str:
        digest = hashlib.new(self.algorithm)
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                digest.update(chunk)
        return digest.hexdigest()

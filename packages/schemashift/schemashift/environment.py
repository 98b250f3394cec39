"""Deployment environments (DEV, QA, PROD...) declared under ``environments.*``."""

from dataclasses import dataclass
from typing import List, Optional

from .config import Configuration

ENVIRONMENTS = "environments"


@dataclass(frozen=True)
class Environment:
    name: str

    def __post_init__(self):
        if self.name is None:
            raise TypeError("Environment name cannot be None")
        if not self.name.strip():
            raise ValueError("Environment name cannot be empty or whitespace-only")

    def __str__(self) -> str:
        return self.name


def list_environments(configuration: Configuration) -> List[Environment]:
    """Return environments in declaration order."""
    names: List[str] = []
    prefix = ENVIRONMENTS + "."
    for key in configuration.keys():
        if not key.startswith(prefix):
            continue
        name = key[len(prefix):].split(".", 1)[0]
        if name and name not in names:
            names.append(name)
    return [Environment(name) for name in names]


def scoped_namespace(configuration: Configuration, environment: Optional[Environment], *prefix_parts) -> Configuration:
    """
    Return ``<prefix>.*`` overlaid with ``environments.<env>.<prefix>.*``.

    Environment-specific keys win over global ones.
    """
    namespace = configuration.get_prefix_namespace(*prefix_parts)
    if environment is not None:
        overrides = configuration.get_prefix_namespace(ENVIRONMENTS, environment.name, *prefix_parts)
        namespace = namespace.add_all(overrides)
    return namespace

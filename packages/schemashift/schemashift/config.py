"""
Flat dotted-key configuration.

Nested YAML documents are flattened into keys such as
``connectors.main.type``; values are kept as strings and converted on read.
A Configuration is immutable: every combinator returns a new instance.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

import yaml

from .errors import MisconfigurationError


def _join(key_parts) -> str:
    return ".".join(str(part) for part in key_parts)


class Configuration:
    """Immutable mapping of dotted keys to string values."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, str] = {}
        for key, value in (values or {}).items():
            if value is None:
                continue
            self._values[str(key)] = _to_string(value)

    # ==================== Readers ====================

    def get_string(self, *key_parts) -> Optional[str]:
        return self._values.get(_join(key_parts))

    def require_string(self, *key_parts) -> str:
        value = self.get_string(*key_parts)
        if value is None or not value.strip():
            raise MisconfigurationError(f"Configuration key '{_join(key_parts)}' is not set")
        return value

    def get_int(self, *key_parts) -> Optional[int]:
        value = self.get_string(*key_parts)
        if value is None:
            return None
        try:
            return int(value.strip())
        except ValueError:
            raise MisconfigurationError(
                f"Configuration key '{_join(key_parts)}' must be an integer, was: {value!r}"
            ) from None

    def get_bool(self, *key_parts) -> Optional[bool]:
        value = self.get_string(*key_parts)
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized in ("true", "yes", "1"):
            return True
        if normalized in ("false", "no", "0"):
            return False
        raise MisconfigurationError(
            f"Configuration key '{_join(key_parts)}' must be a boolean, was: {value!r}"
        )

    def get_list(self, *key_parts) -> Optional[List[str]]:
        value = self.get_string(*key_parts)
        if value is None:
            return None
        return [item.strip() for item in value.split(",") if item.strip()]

    # ==================== Combinators ====================

    def get_prefix_namespace(self, *prefix_parts) -> "Configuration":
        """
        Return the sub-configuration below a prefix, with the prefix stripped.

        Example: ``get_prefix_namespace("connectors", "main")`` turns
        ``connectors.main.url`` into ``url``.
        """
        prefix = _join(prefix_parts) + "."
        return Configuration(
            {key[len(prefix):]: value for key, value in self._values.items() if key.startswith(prefix)}
        )

    def add_all(self, other: "Configuration") -> "Configuration":
        """Merge another configuration in; its keys override keys here."""
        merged = dict(self._values)
        merged.update(other.as_dict())
        return Configuration(merged)

    def with_entry(self, key: str, value: Any) -> "Configuration":
        merged = dict(self._values)
        merged[key] = value
        return Configuration(merged)

    def without_prefix(self, *prefix_parts) -> "Configuration":
        prefix = _join(prefix_parts) + "."
        return Configuration(
            {key: value for key, value in self._values.items() if not key.startswith(prefix)}
        )

    # ==================== Views ====================

    def keys(self) -> List[str]:
        return list(self._values.keys())

    def as_dict(self) -> Dict[str, str]:
        return dict(self._values)

    def is_empty(self) -> bool:
        return not self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Configuration):
            return NotImplemented
        return self._values == other._values

    def __hash__(self) -> int:
        return hash(frozenset(self._values.items()))

    def __repr__(self) -> str:
        return f"Configuration(keys={sorted(self._values)})"


def _to_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_to_string(item) for item in value)
    return str(value)


def flatten(document: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested mappings into dotted keys."""
    flat: Dict[str, Any] = {}
    for key, value in document.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten(value, full_key))
        else:
            flat[full_key] = value
    return flat


class ConfigurationLoader:
    """Loads a Configuration from YAML."""

    @staticmethod
    def from_yaml_string(text: str) -> Configuration:
        document = yaml.safe_load(text) or {}
        if not isinstance(document, Mapping):
            raise MisconfigurationError("Configuration document must be a mapping at the top level")
        return Configuration(flatten(document))

    @staticmethod
    def from_yaml_file(path: Union[str, Path]) -> Configuration:
        path = Path(path)
        if not path.is_file():
            raise MisconfigurationError(f"Configuration file not found: {path}")
        return ConfigurationLoader.from_yaml_string(path.read_text(encoding="utf-8"))

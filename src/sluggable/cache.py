"""Optional external caches for resolved slug configurations.

The resolver keeps its own per-type cache; these backends only let a built
configuration outlive the resolver, e.g. across CLI invocations. Values are
stored as JSON-friendly mappings and keyed by ``"<type>$SLUG_CONFIG"``.
Invalidation is left to the caller: remove the cache file after changing a
schema.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

CACHE_KEY_SUFFIX = "$SLUG_CONFIG"


def cache_key(record_type: str) -> str:
    return f"{record_type}{CACHE_KEY_SUFFIX}"


class ConfigCache(Protocol):
    """Minimal key/value contract used by the configuration resolver."""

    def fetch(self, key: str) -> Optional[Mapping[str, Any]]:
        ...

    def save(self, key: str, value: Mapping[str, Any]) -> None:
        ...


@dataclass(slots=True)
class MemoryConfigCache:
    """Process-local cache, mostly useful to share configs between resolvers."""

    _data: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def fetch(self, key: str) -> Optional[Mapping[str, Any]]:
        value = self._data.get(key)
        return dict(value) if value is not None else None

    def save(self, key: str, value: Mapping[str, Any]) -> None:
        self._data[key] = dict(value)

    def keys(self) -> list[str]:
        return sorted(self._data)


@dataclass(slots=True)
class FileConfigCache:
    """JSON file backed cache persisted next to the record database."""

    path: Path
    _data: Optional[Dict[str, Dict[str, Any]]] = None

    def fetch(self, key: str) -> Optional[Mapping[str, Any]]:
        value = self._load().get(key)
        return dict(value) if value is not None else None

    def save(self, key: str, value: Mapping[str, Any]) -> None:
        data = self._load()
        data[key] = dict(value)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, sort_keys=True)

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if self._data is None:
            if self.path.exists():
                with self.path.open("r", encoding="utf-8") as handle:
                    raw = json.load(handle) or {}
                self._data = {str(key): dict(value) for key, value in raw.items()}
            else:
                self._data = {}
        return self._data


__all__ = ["CACHE_KEY_SUFFIX", "ConfigCache", "FileConfigCache", "MemoryConfigCache", "cache_key"]

"""Persistent identity-to-index table backing the native call statistics."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from ..errors import GenerationError, StatsCollisionError

_TABLE_VERSION = 1


class StatsTable:
    """Stable mapping of declaration identity keys to stats indices.

    Indices are never reused: keys that disappear from the sources stay in the
    table as retired entries, and new keys are appended after the highest index
    ever handed out.
    """

    def __init__(
        self,
        entries: Optional[Mapping[str, int]] = None,
        names: Optional[Mapping[str, str]] = None,
        path: Optional[Path] = None,
    ) -> None:
        self._path = path
        self._entries: Dict[str, int] = dict(entries or {})
        self._names: Dict[str, str] = dict(names or {})
        self._active: List[str] = []
        _check_collisions(self._entries)

    @classmethod
    def load(cls, path: Path) -> "StatsTable":
        """Read a persisted table; a missing file yields an empty table."""
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return cls(path=path)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise GenerationError(f"{path}: stats table is not valid JSON: {exc}") from exc
        if not isinstance(data, dict) or data.get("version") != _TABLE_VERSION:
            raise GenerationError(f"{path}: unsupported stats table version")

        entries = data.get("entries")
        names = data.get("names", {})
        if not isinstance(entries, dict) or not isinstance(names, dict):
            raise GenerationError(f"{path}: stats table entries must be mappings")
        valid: Dict[str, int] = {}
        for key, index in entries.items():
            if not isinstance(key, str) or isinstance(index, bool) or not isinstance(index, int) or index < 0:
                raise GenerationError(f"{path}: invalid stats entry {key!r}: {index!r}")
            valid[key] = index
        return cls(
            valid,
            {str(key): str(value) for key, value in names.items()},
            path=path,
        )

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def capacity(self) -> int:
        """One past the highest index ever assigned, retired entries included."""
        return max(self._entries.values(), default=-1) + 1

    def index_of(self, key: str) -> Optional[int]:
        return self._entries.get(key)

    def assign(self, keys: Iterable[str], names: Optional[Mapping[str, str]] = None) -> Dict[str, int]:
        """Return indices for ``keys`` in order, allocating new ones as needed."""
        next_index = self.capacity
        assigned: Dict[str, int] = {}
        for key in keys:
            if key in assigned:
                continue
            index = self._entries.get(key)
            if index is None:
                index = next_index
                next_index += 1
                self._entries[key] = index
            assigned[key] = index
        for key, name in (names or {}).items():
            self._names[key] = name
        self._active = list(assigned)
        return assigned

    def retired(self) -> List[str]:
        """Keys kept in the table that the last ``assign`` did not mention."""
        active = set(self._active)
        return sorted(key for key in self._entries if key not in active)

    def to_json(self) -> str:
        payload = {
            "version": _TABLE_VERSION,
            "entries": dict(sorted(self._entries.items(), key=lambda item: item[1])),
            "names": dict(sorted(self._names.items())),
        }
        return json.dumps(payload, indent=2) + "\n"


def _check_collisions(entries: Mapping[str, int]) -> None:
    owners: Dict[int, str] = {}
    for key in sorted(entries):
        index = entries[key]
        first = owners.get(index)
        if first is not None:
            raise StatsCollisionError(index, first, key)
        owners[index] = key


__all__ = ["StatsTable"]

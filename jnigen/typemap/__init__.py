"""Type mapping rules, plugin discovery and the mapping engine."""

from __future__ import annotations

from importlib import metadata
from typing import Iterable, List

from ..errors import ConfigurationError
from .engine import (
    DISCIPLINE_COPY,
    DISCIPLINE_PINNED,
    DISCIPLINE_VALUE,
    FieldLayout,
    MethodMapping,
    StructLayout,
    TypeMapping,
    TypeMappingEngine,
)
from .rules import REQUIRED_KEYS, MappingRule, builtin_rules

_ENTRY_POINT_GROUP = "jnigen.type_rules"


def discover_rules() -> List[MappingRule]:
    """Return built-in rules followed by rules contributed through entry points.

    Plugin rules are applied after the built-ins, so a plugin may replace the
    mapping for an existing key or add one for a key that has none (``String[]``).
    """
    rules = builtin_rules()
    for entry in _iter_entry_points():
        try:
            loaded = entry.load()
        except (ImportError, AttributeError) as exc:
            raise ConfigurationError(f"Failed to load type rule entry point '{entry.name}': {exc}") from exc
        rules.extend(_coerce_rules(entry.name, loaded))
    return rules


def _coerce_rules(name: str, obj: object) -> List[MappingRule]:
    if isinstance(obj, MappingRule):
        return [obj]
    if callable(obj):
        obj = obj()
    if isinstance(obj, MappingRule):
        return [obj]
    if isinstance(obj, Iterable):
        items = list(obj)
        if all(isinstance(item, MappingRule) for item in items):
            return items
    raise ConfigurationError(f"Type rule entry point '{name}' must provide MappingRule instances")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points(group=_ENTRY_POINT_GROUP)


__all__ = [
    "DISCIPLINE_COPY",
    "DISCIPLINE_PINNED",
    "DISCIPLINE_VALUE",
    "FieldLayout",
    "MappingRule",
    "MethodMapping",
    "REQUIRED_KEYS",
    "StructLayout",
    "TypeMapping",
    "TypeMappingEngine",
    "builtin_rules",
    "discover_rules",
]

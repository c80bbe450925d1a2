"""Typed generation flags.

Annotation comments and metadata records both spell flags as plain words
(``flags=no_gen dynamic``). They are converted into the closed enums below once,
while the source model is built; later stages only ever see the typed values.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, Iterable, Optional, Tuple, Type, TypeVar


class MethodFlag(str, Enum):
    """Flags applicable to a native method declaration."""

    NO_GEN = "no_gen"
    CRITICAL = "critical"
    CONST = "const"
    DYNAMIC = "dynamic"


class ParamFlag(str, Enum):
    """Flags applicable to a single native method parameter."""

    NO_IN = "no_in"
    CALLBACK = "callback"


class FieldFlag(str, Enum):
    """Flags applicable to a struct mirror field."""

    NO_GEN = "no_gen"
    NO_SET = "no_set"


class StructFlag(str, Enum):
    """Flags applicable to a whole struct mirror."""

    NO_GEN = "no_gen"


class Ownership(str, Enum):
    """Who owns an array or string buffer while the native call runs."""

    CALLER_OWNED = "caller_owned"
    PINNED = "pinned"
    BORROWED = "borrowed"


# Words that select an ownership rather than a flag.
_OWNERSHIP_WORDS = {
    "critical": Ownership.PINNED,
    "pinned": Ownership.PINNED,
    "no_out": Ownership.BORROWED,
    "borrowed": Ownership.BORROWED,
    "caller_owned": Ownership.CALLER_OWNED,
}

E = TypeVar("E", bound=Enum)


def split_words(value: object) -> Tuple[str, ...]:
    """Split a flag value (string or sequence) into lower-case words."""
    if value is None:
        return ()
    if isinstance(value, str):
        raw = value.replace(",", " ").split()
    elif isinstance(value, (list, tuple, set, frozenset)):
        raw = []
        for item in value:
            raw.extend(str(item).replace(",", " ").split())
    else:
        raw = [str(value)]
    return tuple(word.strip().lower() for word in raw if word.strip())


def parse_flags(
    enum_cls: Type[E],
    words: Iterable[str],
    on_error: Callable[[str], Exception],
) -> FrozenSet[E]:
    """Convert flag words into members of ``enum_cls``."""
    result = set()
    for word in words:
        try:
            result.add(enum_cls(word))
        except ValueError:
            raise on_error(f"unknown {enum_cls.__name__} '{word}'") from None
    return frozenset(result)


def parse_ownership(
    words: Iterable[str], on_error: Callable[[str], Exception]
) -> Tuple[Optional[Ownership], Tuple[str, ...]]:
    """Pull ownership words out of ``words``; return (ownership, remaining words)."""
    ownership: Optional[Ownership] = None
    remaining = []
    for word in words:
        selected = _OWNERSHIP_WORDS.get(word)
        if selected is None:
            remaining.append(word)
            continue
        if ownership is not None and ownership is not selected:
            raise on_error(f"conflicting ownership '{ownership.value}' and '{selected.value}'")
        ownership = selected
    return ownership, tuple(remaining)


@dataclass(frozen=True)
class MethodDirectives:
    flags: FrozenSet[MethodFlag] = frozenset()
    cast: Optional[str] = None
    accessor: Optional[str] = None


@dataclass(frozen=True)
class ParamDirectives:
    flags: FrozenSet[ParamFlag] = frozenset()
    ownership: Optional[Ownership] = None
    cast: Optional[str] = None
    length: Optional[str] = None


@dataclass(frozen=True)
class FieldDirectives:
    flags: FrozenSet[FieldFlag] = frozenset()
    cast: Optional[str] = None
    accessor: Optional[str] = None
    platforms: Tuple[str, ...] = ()
    offset: Optional[int] = None


@dataclass(frozen=True)
class StructDirectives:
    flags: FrozenSet[StructFlag] = frozenset()
    accessor: Optional[str] = None
    tagged: bool = False


@dataclass(frozen=True)
class CodeFragments:
    """Custom native code injected around (or instead of) the native call."""

    pre_call: Optional[str] = None
    post_call: Optional[str] = None
    body: Optional[str] = None


def first_set(*values):  # type: ignore[no-untyped-def]
    """Return the first value that is not None (inline > metadata > default)."""
    for value in values:
        if value is not None:
            return value
    return None


__all__ = [
    "CodeFragments",
    "FieldDirectives",
    "FieldFlag",
    "MethodDirectives",
    "MethodFlag",
    "Ownership",
    "ParamDirectives",
    "ParamFlag",
    "StructDirectives",
    "StructFlag",
    "first_set",
    "parse_flags",
    "parse_ownership",
    "split_words",
]

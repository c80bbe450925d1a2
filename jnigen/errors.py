"""Exception hierarchy shared by the generation pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class GenerationError(RuntimeError):
    """Base class for errors that abort a target's pipeline."""


class ParseError(GenerationError):
    """Raised when a source file or annotation directive cannot be parsed."""

    def __init__(self, message: str, path: Path | str, line: int, column: int = 0) -> None:
        self.path = Path(path)
        self.line = line
        self.column = column
        self.detail = message
        super().__init__(f"{self.path}:{line}:{column}: {message}")


class MappingError(GenerationError):
    """Raised when a declaration cannot be mapped to the native ABI."""

    def __init__(self, message: str, identity: Optional[str] = None) -> None:
        self.identity = identity
        self.detail = message
        prefix = f"{identity}: " if identity else ""
        super().__init__(f"{prefix}{message}")


class ConfigurationError(GenerationError):
    """Raised when the type-mapping rule set or a target is misconfigured."""


class MetadataError(GenerationError):
    """Raised when a metadata overlay file is malformed."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        self.path = Path(path) if path is not None else None
        super().__init__(f"{self.path}: {message}" if self.path else message)


class StatsCollisionError(GenerationError):
    """Raised when a persisted stats table assigns one index to two identities."""

    def __init__(self, index: int, first: str, second: str) -> None:
        self.index = index
        self.identities = (first, second)
        super().__init__(f"stats index {index} is assigned to both {first} and {second}")


class OutputLockError(GenerationError):
    """Raised when another run holds the output directory lock."""


__all__ = [
    "ConfigurationError",
    "GenerationError",
    "MappingError",
    "MetadataError",
    "OutputLockError",
    "ParseError",
    "StatsCollisionError",
]

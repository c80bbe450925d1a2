"""Discovery of Java source files under a source root."""

from __future__ import annotations

import os
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".gradle",
    ".idea",
    "build",
    "bin",
    "out",
    "target",
    "node_modules",
}

_SOURCE_SUFFIX = ".java"


@dataclass(frozen=True)
class IgnoreRule:
    """A gitignore-style glob taken from ``exclude_paths``."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool

    @property
    def has_slash(self) -> bool:
        return "/" in self.pattern

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if self.directory_only and not is_dir:
            return False
        if self.anchored or self.has_slash:
            return fnmatchcase(rel_path, self.pattern)
        return any(fnmatchcase(part, self.pattern) for part in rel_path.split("/"))


def build_ignore_rule(pattern: str) -> Optional[IgnoreRule]:
    pattern = pattern.strip()
    negate = pattern.startswith("!")
    if negate:
        pattern = pattern[1:]
    directory_only = pattern.endswith("/")
    pattern = pattern.rstrip("/")
    anchored = pattern.startswith("/")
    pattern = pattern.lstrip("/")
    if not pattern:
        return None
    return IgnoreRule(pattern=pattern, directory_only=directory_only, anchored=anchored, negate=negate)


def _should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


class SourceScanner:
    """Walks a source root and yields Java files in a stable order."""

    def __init__(self, exclude_paths: Iterable[str] = ()) -> None:
        self.rules: List[IgnoreRule] = [
            rule for rule in (build_ignore_rule(pattern) for pattern in exclude_paths) if rule is not None
        ]

    def scan(self, root: Path) -> List[Path]:
        """Return ``*.java`` files under ``root`` sorted by relative POSIX path."""
        root_path = Path(root).expanduser().resolve()
        if not root_path.exists():
            raise FileNotFoundError(f"Source root not found: {root}")
        if not root_path.is_dir():
            raise NotADirectoryError(f"Source root is not a directory: {root}")
        found = list(self._iter_sources(root_path))
        return sorted(found, key=lambda path: path.relative_to(root_path).as_posix())

    def _iter_sources(self, root: Path) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            rel_dir = current.relative_to(root).as_posix() if current != root else ""

            kept = []
            for name in dirnames:
                if name in _EXCLUDED_DIRS or name.startswith("."):
                    continue
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if _should_ignore(rel_path, True, self.rules):
                    continue
                kept.append(name)
            dirnames[:] = kept

            for filename in filenames:
                if not filename.endswith(_SOURCE_SUFFIX):
                    continue
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if _should_ignore(rel_path, False, self.rules):
                    continue
                yield current / filename


__all__ = ["IgnoreRule", "SourceScanner", "build_ignore_rule"]

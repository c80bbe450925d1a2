"""Idempotent writing of generated files into an output directory."""

from __future__ import annotations

import difflib
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence

from .errors import OutputLockError
from .logging import get_logger
from .models import GeneratedFile

LOCK_FILENAME = ".jnigen.lock"

STATUS_WRITTEN = "written"
STATUS_UNCHANGED = "unchanged"
STATUS_PENDING = "pending"

_DIRECTORY_LOCKS: Dict[str, threading.Lock] = {}
_REGISTRY_LOCK = threading.Lock()


@dataclass
class FileResult:
    """What happened (or would happen) to one generated file."""

    relative_path: str
    status: str
    diff: str = ""

    @property
    def changed(self) -> bool:
        return self.status != STATUS_UNCHANGED


class OutputLock:
    """Serialize writers of one output directory.

    Threads of this process queue on an in-process lock; other processes are
    kept out by an exclusively created lock file, which raises OutputLockError
    when it already exists.
    """

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)
        self.path = self.output_dir / LOCK_FILENAME
        key = str(self.output_dir.resolve())
        with _REGISTRY_LOCK:
            self._thread_lock = _DIRECTORY_LOCKS.setdefault(key, threading.Lock())
        self._fd: int | None = None

    def __enter__(self) -> "OutputLock":
        self._thread_lock.acquire()
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            try:
                self._fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError as exc:
                raise OutputLockError(f"output directory {self.output_dir} is locked by {self.path}") from exc
            os.write(self._fd, str(os.getpid()).encode("ascii"))
        except BaseException:
            self._release()
            raise
        return self

    def _release(self) -> None:
        try:
            if self._fd is not None:
                os.close(self._fd)
                self._fd = None
                self.path.unlink(missing_ok=True)
        finally:
            self._thread_lock.release()

    def __exit__(self, *exc_info: object) -> None:
        self._release()


class OutputWriter:
    """Compares rendered files against disk and writes only the ones that changed.

    ``check`` computes unified diffs and writes nothing; ``dry_run`` only
    reports which files would change.
    """

    def __init__(self, output_dir: Path, *, check: bool = False, dry_run: bool = False) -> None:
        self.output_dir = Path(output_dir)
        self.check = check
        self.dry_run = dry_run
        self.logger = get_logger("outputs")

    @property
    def writes(self) -> bool:
        return not (self.check or self.dry_run)

    def write(self, files: Sequence[GeneratedFile]) -> List[FileResult]:
        results: List[FileResult] = []
        for generated in files:
            results.append(self._write_one(generated))
        return results

    def _write_one(self, generated: GeneratedFile) -> FileResult:
        path = self.output_dir / generated.relative_path
        content = generated.content.encode("utf-8")
        try:
            existing = path.read_bytes()
        except FileNotFoundError:
            existing = None
        if existing == content:
            return FileResult(generated.relative_path, STATUS_UNCHANGED)

        if not self.writes:
            diff = _unified_diff(generated.relative_path, existing, generated.content) if self.check else ""
            return FileResult(generated.relative_path, STATUS_PENDING, diff)

        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_name(f".{path.name}.tmp")
        temp_path.write_bytes(content)
        os.replace(temp_path, path)
        self.logger.debug("Wrote %s", path)
        return FileResult(generated.relative_path, STATUS_WRITTEN)


def _unified_diff(relative_path: str, existing: bytes | None, updated: str) -> str:
    original = existing.decode("utf-8", errors="replace") if existing is not None else ""
    diff = difflib.unified_diff(
        original.splitlines(keepends=True),
        updated.splitlines(keepends=True),
        fromfile=f"a/{relative_path}",
        tofile=f"b/{relative_path}",
    )
    return "".join(diff)


__all__ = [
    "FileResult",
    "LOCK_FILENAME",
    "OutputLock",
    "OutputWriter",
    "STATUS_PENDING",
    "STATUS_UNCHANGED",
    "STATUS_WRITTEN",
]

"""Logging utilities for jnigen commands."""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List

if TYPE_CHECKING:
    from .models import GenerationWarning

_LOGGER_NAME = "jnigen"
_CONSOLE_FORMAT = "[jnigen] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the jnigen hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Configure console output and an optional file sink for the jnigen logger."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # The CLI may be invoked repeatedly in one process (tests); start clean.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def log_warnings(logger: logging.Logger, target: str, warnings: Iterable["GenerationWarning"]) -> int:
    """Log run warnings grouped by category; return how many were logged."""
    grouped: Dict[str, List["GenerationWarning"]] = defaultdict(list)
    for warning in warnings:
        grouped[warning.category].append(warning)
    total = 0
    for category in sorted(grouped):
        items = grouped[category]
        logger.warning("%s: %d %s warning(s)", target, len(items), category)
        for item in items:
            suffix = f" ({item.location})" if item.location else ""
            logger.warning("  %s%s", item.message, suffix)
        total += len(items)
    return total


__all__ = ["configure_logging", "get_logger", "log_warnings"]

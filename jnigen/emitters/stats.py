"""Emit the per-target native call statistics table."""

from __future__ import annotations

from typing import Dict, List, Optional

from jinja2 import Environment

from ..logging import get_logger
from ..models import GeneratedFile, SourceModel
from ..stores.stats_table import StatsTable
from .natives import native_function_name, stats_macro_prefix
from .templating import create_environment, render


def stats_file_names(stats_name: str) -> Dict[str, str]:
    return {
        "header": f"{stats_name}_stats.h",
        "source": f"{stats_name}_stats.c",
        "table": f"{stats_name}_stats.json",
    }


class StatsEmitter:
    """Assigns stable stats indices and renders the stats header, source and table."""

    def __init__(self, stats_name: str = "natives", *, env: Optional[Environment] = None) -> None:
        self.stats_name = stats_name
        self.prefix = stats_macro_prefix(stats_name)
        self.env = env or create_environment()
        self.logger = get_logger("emitters.stats")

    def emit(self, model: SourceModel, table: StatsTable) -> List[GeneratedFile]:
        names: Dict[str, str] = {}
        for method in model.natives():
            names[method.identity.key] = native_function_name(method)
        assigned = table.assign(names, names)
        retired = table.retired()
        if retired:
            self.logger.debug("Keeping %d retired stats entries", len(retired))

        entries = [
            {"key": key, "symbol": names[key], "index": index}
            for key, index in assigned.items()
        ]
        files = stats_file_names(self.stats_name)
        context = {
            "stats_name": self.stats_name,
            "prefix": self.prefix,
            "include_guard": f"INC_{self.prefix}_STATS_H",
            "entries": entries,
            "count": table.capacity,
            "size": max(table.capacity, 1),
        }
        return [
            GeneratedFile(
                relative_path=files["header"],
                content=render(self.env, "stats.h.j2", **context),
                metadata={"kind": "stats"},
            ),
            GeneratedFile(
                relative_path=files["source"],
                content=render(self.env, "stats.c.j2", **context),
                metadata={"kind": "stats"},
            ),
            GeneratedFile(
                relative_path=files["table"],
                content=table.to_json(),
                metadata={"kind": "stats"},
            ),
        ]


__all__ = ["StatsEmitter", "stats_file_names"]

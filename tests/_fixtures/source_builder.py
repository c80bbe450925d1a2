"""Helper utilities for constructing temporary Java source trees in tests."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Mapping, Optional

from jnigen.models import GenerationTarget, SourceModel
from jnigen.source import SourceModelBuilder
from jnigen.stores import MetadataStore


class SourceTreeBuilder:
    """Writes Java sources and metadata into a throwaway tree and models it."""

    def __init__(self, tmp_path: Path) -> None:
        self.root = tmp_path / "project"
        self.source_root = self.root / "src"
        self.source_root.mkdir(parents=True)

    def write(self, files: Mapping[str, str]) -> None:
        """Write `path -> contents` entries relative to the project root."""
        for relative, content in files.items():
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            normalised = textwrap.dedent(content).lstrip("\n")
            path.write_text(normalised, encoding="utf-8")

    def java(self, relative: str, content: str) -> Path:
        self.write({f"src/{relative}": content})
        return self.source_root / relative

    def metadata(self, content: str, name: str = "metadata.yml") -> Path:
        self.write({name: content})
        return self.root / name

    def model(self, metadata: Optional[Path] = None) -> SourceModel:
        """Return a fresh SourceModel of the current sources."""
        store = MetadataStore.load(metadata) if metadata is not None else MetadataStore()
        return SourceModelBuilder(store).build(self.source_root)

    def target(self, platform_id: str = "gtk", **overrides: object) -> GenerationTarget:
        values = {
            "platform_id": platform_id,
            "output_dir": self.root / "out" / platform_id,
            "source_root": self.source_root,
        }
        values.update(overrides)
        return GenerationTarget(**values)  # type: ignore[arg-type]


__all__ = ["SourceTreeBuilder"]

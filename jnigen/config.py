"""Configuration loading for jnigen (.jnigen.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .models import GenerationTarget, platform_guard

CONFIG_FILENAME = ".jnigen.yml"
_WORD_SIZES = (32, 64)


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


class UnknownTargetError(ConfigError):
    """Raised when a requested target is not configured."""


@dataclass
class TargetConfig:
    """Per-platform settings from the ``targets`` mapping."""

    platform_id: str
    output_dir: Optional[Path] = None
    source_root: Optional[Path] = None
    metadata: Optional[Path] = None
    word_size: int = 64
    define: Optional[str] = None


@dataclass
class JnigenConfig:
    """Represents the high-level settings defined in .jnigen.yml."""

    root: Path
    source_root: Optional[Path] = None
    metadata: Optional[Path] = None
    default_target: Optional[str] = None
    exclude_paths: List[str] = field(default_factory=list)
    stats_name: str = "natives"
    jobs: int = 1
    targets: Dict[str, TargetConfig] = field(default_factory=dict)

    def target_ids(self) -> List[str]:
        return list(self.targets)

    def build_target(
        self,
        platform_id: str,
        *,
        output_dir: Optional[Path] = None,
        source_root: Optional[Path] = None,
    ) -> GenerationTarget:
        """Create the GenerationTarget for ``platform_id``, applying CLI overrides."""
        settings = self.targets.get(platform_id)
        if settings is None:
            known = ", ".join(self.targets) or "none"
            raise UnknownTargetError(f"Unknown target '{platform_id}' (configured: {known})")

        resolved_output = output_dir or settings.output_dir
        if resolved_output is None:
            raise ConfigError(f"Target '{platform_id}' has no output directory")
        resolved_source = source_root or settings.source_root or self.source_root or self.root
        metadata = settings.metadata or self.metadata

        return GenerationTarget(
            platform_id=platform_id,
            output_dir=Path(resolved_output),
            source_root=Path(resolved_source),
            metadata_file=metadata,
            word_size=settings.word_size,
            define=settings.define or "",
            stats_name=self.stats_name,
        )

    def all_targets(self, *, source_root: Optional[Path] = None) -> List[GenerationTarget]:
        return [self.build_target(platform_id, source_root=source_root) for platform_id in self.targets]

    def platform_defines(self) -> Dict[str, str]:
        """Preprocessor symbol of every configured platform."""
        return {
            platform_id: platform_guard(platform_id, settings.define)
            for platform_id, settings in self.targets.items()
        }


def load_config(config_path: Path) -> JnigenConfig:
    """Load configuration from disk."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return JnigenConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    source_root = _as_path(root, data.get("source_root"))
    metadata = _as_path(root, data.get("metadata"))
    default_target = _as_str(data.get("default_target"))
    exclude_paths = _as_str_list(data.get("exclude_paths"))
    stats_name = _as_str(data.get("stats_name")) or "natives"
    jobs = _as_int(data.get("jobs"))
    jobs = 1 if jobs is None else jobs
    if jobs < 1:
        raise ConfigError("jobs must be a positive integer")

    targets: Dict[str, TargetConfig] = {}
    targets_data = data.get("targets")
    if targets_data is not None and not isinstance(targets_data, dict):
        raise ConfigError("targets must be a mapping of platform id to settings")
    for raw_id, raw_settings in (targets_data or {}).items():
        platform_id = str(raw_id)
        settings = _as_dict(raw_settings)
        word_size = _as_int(settings.get("word_size")) or 64
        if word_size not in _WORD_SIZES:
            raise ConfigError(f"Target '{platform_id}' has unsupported word_size {word_size}")
        targets[platform_id] = TargetConfig(
            platform_id=platform_id,
            output_dir=_as_path(root, settings.get("output_dir")),
            source_root=_as_path(root, settings.get("source_root")),
            metadata=_as_path(root, settings.get("metadata")),
            word_size=word_size,
            define=_as_str(settings.get("define")),
        )

    if default_target is not None and default_target not in targets:
        raise ConfigError(f"default_target '{default_target}' is not a configured target")

    return JnigenConfig(
        root=root,
        source_root=source_root,
        metadata=metadata,
        default_target=default_target,
        exclude_paths=exclude_paths,
        stats_name=stats_name,
        jobs=jobs,
        targets=targets,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_path(root: Path, value: Any) -> Optional[Path]:
    text = _as_str(value)
    if not text:
        return None
    path = Path(text).expanduser()
    return path if path.is_absolute() else root / path


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "JnigenConfig",
    "TargetConfig",
    "UnknownTargetError",
    "load_config",
]

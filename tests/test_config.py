"""Tests for jnigen.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from jnigen.config import ConfigError, JnigenConfig, UnknownTargetError, load_config


def _write_config(tmp_path: Path, text: str) -> Path:
    config_file = tmp_path / ".jnigen.yml"
    config_file.write_text(text, encoding="utf-8")
    return config_file


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, JnigenConfig)
    assert config.root == tmp_path.resolve()
    assert config.source_root is None
    assert config.metadata is None
    assert config.default_target is None
    assert config.exclude_paths == []
    assert config.stats_name == "natives"
    assert config.jobs == 1
    assert config.targets == {}


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = _write_config(
        tmp_path,
        """
source_root: "java/src"
metadata: "meta"
default_target: gtk
stats_name: os
jobs: 2
exclude_paths:
  - "examples/"
targets:
  gtk:
    output_dir: "native/gtk"
    word_size: 64
    define: GTK
  win32:
    output_dir: "native/win32"
    word_size: 32
    metadata: "meta/win32.yml"
""",
    )

    config = load_config(config_file)

    root = tmp_path.resolve()
    assert config.source_root == root / "java" / "src"
    assert config.metadata == root / "meta"
    assert config.default_target == "gtk"
    assert config.stats_name == "os"
    assert config.jobs == 2
    assert config.exclude_paths == ["examples/"]
    assert config.target_ids() == ["gtk", "win32"]
    assert config.targets["win32"].word_size == 32
    assert config.platform_defines() == {"gtk": "GTK", "win32": "JNIGEN_WIN32"}


def test_build_target_applies_overrides(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
source_root: src
metadata: meta.yml
targets:
  gtk:
    output_dir: out/gtk
    word_size: 32
  win32:
    output_dir: out/win32
    metadata: win32.yml
""",
    )
    config = load_config(tmp_path)
    root = tmp_path.resolve()

    gtk = config.build_target("gtk")
    assert gtk.output_dir == root / "out" / "gtk"
    assert gtk.source_root == root / "src"
    assert gtk.metadata_file == root / "meta.yml"
    assert gtk.word_size == 32
    assert gtk.pointer_size == 4
    assert gtk.guard == "JNIGEN_GTK"

    overridden = config.build_target("gtk", output_dir=tmp_path / "elsewhere", source_root=tmp_path / "other")
    assert overridden.output_dir == tmp_path / "elsewhere"
    assert overridden.source_root == tmp_path / "other"

    assert config.build_target("win32").metadata_file == root / "win32.yml"
    assert [target.platform_id for target in config.all_targets()] == ["gtk", "win32"]
    assert {target.source_root for target in config.all_targets(source_root=tmp_path / "other")} == {tmp_path / "other"}


def test_build_target_rejects_unknown_target(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    with pytest.raises(UnknownTargetError):
        config.build_target("cocoa")


def test_build_target_requires_output_dir(tmp_path: Path) -> None:
    _write_config(tmp_path, "targets:\n  gtk: {word_size: 64}\n")
    config = load_config(tmp_path)

    with pytest.raises(ConfigError, match="no output directory"):
        config.build_target("gtk")
    assert config.build_target("gtk", output_dir=tmp_path / "out").output_dir == tmp_path / "out"


@pytest.mark.parametrize(
    "text, message",
    [
        ("- just\n- a list\n", "mapping at the root"),
        ("targets: [gtk]\n", "targets must be a mapping"),
        ("targets:\n  gtk: {word_size: 16}\n", "unsupported word_size"),
        ("jobs: 0\n", "jobs must be a positive integer"),
        ("default_target: cocoa\ntargets:\n  gtk: {}\n", "not a configured target"),
        ("targets: {gtk: [unclosed\n", "Failed to parse"),
    ],
)
def test_load_config_rejects_invalid_shapes(tmp_path: Path, text: str, message: str) -> None:
    _write_config(tmp_path, text)

    with pytest.raises(ConfigError, match=message):
        load_config(tmp_path)

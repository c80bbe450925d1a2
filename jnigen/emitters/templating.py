"""Jinja2 environment for the C file skeletons."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

TEMPLATES_DIR = Path(__file__).with_name("templates")
BANNER = "/* Generated by jnigen. Do not edit. */"


def create_environment(templates_dir: Optional[Path] = None) -> Environment:
    """Build the template environment; ``templates_dir`` shadows the packaged templates."""
    directories: List[str] = []
    if templates_dir:
        directories.append(str(templates_dir))
    directories.append(str(TEMPLATES_DIR))
    seen: set[str] = set()
    ordered: List[str] = []
    for directory in directories:
        if directory not in seen:
            ordered.append(directory)
            seen.add(directory)
    env = Environment(
        loader=FileSystemLoader(ordered),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )
    env.globals["banner"] = BANNER
    return env


def render(env: Environment, template: str, **context: Any) -> str:
    text = env.get_template(template).render(**context)
    # Normalise line endings and guarantee a single trailing newline.
    return text.replace("\r\n", "\n").rstrip("\n") + "\n"


__all__ = ["BANNER", "TEMPLATES_DIR", "create_environment", "render"]

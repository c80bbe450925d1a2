"""Parsing of generation directives embedded in doc comments.

A directive is a javadoc-style tag followed by ``key=value`` pairs::

    /**
     * @method flags=dynamic const,cast=(GtkWidget *)
     * @param widget cast=(GtkWidget *),flags=critical
     */

Tags whose body contains no ``key=`` pair are ordinary documentation and are
ignored. Unknown keys and unknown flag words are parse errors.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..errors import ParseError
from ..flags import (
    FieldDirectives,
    FieldFlag,
    MethodDirectives,
    MethodFlag,
    ParamDirectives,
    ParamFlag,
    StructDirectives,
    StructFlag,
    parse_flags,
    parse_ownership,
    split_words,
)

_TAG_PATTERN = re.compile(r"@(method|param|field|struct)\b")
_KEY_PATTERN = re.compile(r"\b([A-Za-z_][A-Za-z0-9_]*)=")

_ALLOWED_KEYS = {
    "method": {"flags", "cast", "accessor"},
    "param": {"flags", "cast", "length"},
    "field": {"flags", "cast", "accessor", "platform", "offset"},
    "struct": {"flags", "accessor"},
}


@dataclass
class CommentDirectives:
    """Typed directives found in one doc comment."""

    method: Optional[MethodDirectives] = None
    params: Dict[str, ParamDirectives] = field(default_factory=dict)
    field: Optional[FieldDirectives] = None
    struct: Optional[StructDirectives] = None

    def param(self, name: str) -> ParamDirectives:
        return self.params.get(name, ParamDirectives())


@dataclass(frozen=True)
class _Tag:
    kind: str
    body: str
    line: int


def parse_comment(comment: Optional[str], path: Path, first_line: int) -> CommentDirectives:
    """Parse a doc comment that starts on ``first_line`` (1-based) of ``path``."""
    result = CommentDirectives()
    if not comment or not comment.startswith("/**"):
        return result

    for tag in _iter_tags(comment, first_line):
        pairs = _split_pairs(tag, path)
        if pairs is None:
            continue

        def error(message: str, line: int = tag.line) -> ParseError:
            return ParseError(message, path, line)

        if tag.kind == "method":
            result.method = _method_directives(pairs, error)
        elif tag.kind == "param":
            name, values = pairs
            result.params[name] = _param_directives(values, error)
        elif tag.kind == "field":
            result.field = _field_directives(pairs[1], error)
        else:
            result.struct = _struct_directives(pairs[1], error)

    # A bare "@struct" tag marks the class as a struct mirror.
    if result.struct is None and re.search(r"@struct\b", comment):
        result.struct = StructDirectives(tagged=True)
    return result


def _iter_tags(comment: str, first_line: int) -> List[_Tag]:
    tags: List[_Tag] = []
    for offset, raw in enumerate(comment.splitlines()):
        text = raw.strip()
        if text.startswith("/**"):
            text = text[3:]
        if text.endswith("*/"):
            text = text[:-2]
        text = text.strip().lstrip("*").strip()
        matches = list(_TAG_PATTERN.finditer(text))
        for index, match in enumerate(matches):
            end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
            body = text[match.end():end].strip()
            tags.append(_Tag(kind=match.group(1), body=body, line=first_line + offset))
    return tags


def _split_pairs(tag: _Tag, path: Path) -> Optional[Tuple[str, Dict[str, str]]]:
    """Return (subject, {key: value}) or None when the tag carries no directives.

    The subject is the parameter name for ``@param`` tags and empty otherwise.
    """
    body = tag.body
    subject = ""
    if tag.kind == "param":
        parts = body.split(None, 1)
        if not parts:
            return None
        subject = parts[0]
        body = parts[1] if len(parts) > 1 else ""

    keys = [match for match in _KEY_PATTERN.finditer(body) if _depth(body, match.start()) == 0]
    if not keys:
        return None
    leading = body[: keys[0].start()].strip(" ,")
    if leading:
        raise ParseError(f"unexpected text '{leading}' in @{tag.kind} directive", path, tag.line)

    values: Dict[str, str] = {}
    for index, match in enumerate(keys):
        key = match.group(1)
        if key not in _ALLOWED_KEYS[tag.kind]:
            raise ParseError(f"unknown @{tag.kind} directive '{key}'", path, tag.line)
        if key in values:
            raise ParseError(f"duplicate @{tag.kind} directive '{key}'", path, tag.line)
        end = keys[index + 1].start() if index + 1 < len(keys) else len(body)
        values[key] = body[match.end():end].strip().rstrip(",").strip()
    return subject, values


def _depth(text: str, position: int) -> int:
    depth = 0
    for char in text[:position]:
        if char == "(":
            depth += 1
        elif char == ")" and depth > 0:
            depth -= 1
    return depth


def _method_directives(pairs, error) -> MethodDirectives:  # type: ignore[no-untyped-def]
    values = pairs[1]
    return MethodDirectives(
        flags=parse_flags(MethodFlag, split_words(values.get("flags")), error),
        cast=values.get("cast") or None,
        accessor=values.get("accessor") or None,
    )


def _param_directives(values: Dict[str, str], error) -> ParamDirectives:  # type: ignore[no-untyped-def]
    ownership, remaining = parse_ownership(split_words(values.get("flags")), error)
    return ParamDirectives(
        flags=parse_flags(ParamFlag, remaining, error),
        ownership=ownership,
        cast=values.get("cast") or None,
        length=values.get("length") or None,
    )


def _field_directives(values: Dict[str, str], error) -> FieldDirectives:  # type: ignore[no-untyped-def]
    offset_text = values.get("offset")
    offset: Optional[int] = None
    if offset_text:
        try:
            offset = int(offset_text, 0)
        except ValueError:
            raise error(f"offset must be an integer, got '{offset_text}'") from None
    return FieldDirectives(
        flags=parse_flags(FieldFlag, split_words(values.get("flags")), error),
        cast=values.get("cast") or None,
        accessor=values.get("accessor") or None,
        platforms=split_words(values.get("platform")),
        offset=offset,
    )


def _struct_directives(values: Dict[str, str], error) -> StructDirectives:  # type: ignore[no-untyped-def]
    return StructDirectives(
        flags=parse_flags(StructFlag, split_words(values.get("flags")), error),
        accessor=values.get("accessor") or None,
        tagged=True,
    )


__all__ = ["CommentDirectives", "parse_comment"]

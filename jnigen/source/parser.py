"""Tree-sitter powered Java declaration parser.

Only top-level classes are generated. Natives declared in nested types,
interfaces or enums are reported in ``ParsedFile.skipped`` and logged.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import tree_sitter_java
from tree_sitter import Language, Node, Parser

from ..errors import ParseError
from ..logging import get_logger

JAVA_LANGUAGE = Language(tree_sitter_java.language())

_WHITESPACE = re.compile(r"\s+")
_TYPE_DECLARATIONS = ("class_declaration", "interface_declaration", "enum_declaration", "record_declaration")


@dataclass(frozen=True)
class RawParameter:
    name: str
    type_text: str
    line: int


@dataclass(frozen=True)
class RawMethod:
    """A ``native`` method exactly as written in source."""

    name: str
    parameters: Tuple[RawParameter, ...]
    return_type: str
    modifiers: Tuple[str, ...]
    line: int
    comment: Optional[str] = None
    comment_line: int = 0


@dataclass(frozen=True)
class RawField:
    name: str
    type_text: str
    line: int
    comment: Optional[str] = None
    comment_line: int = 0


@dataclass(frozen=True)
class RawClass:
    name: str
    line: int
    natives: Tuple[RawMethod, ...]
    fields: Tuple[RawField, ...]
    comment: Optional[str] = None
    comment_line: int = 0


@dataclass(frozen=True)
class ParsedFile:
    path: Path
    package: str
    classes: Tuple[RawClass, ...]
    skipped: Tuple[str, ...] = ()


class JavaSourceParser:
    """Extracts native methods and instance fields from Java sources."""

    def __init__(self) -> None:
        self._parser = Parser(JAVA_LANGUAGE)
        self._path = Path()
        self._skipped: List[str] = []
        self.logger = get_logger("source.parser")

    def parse(self, path: Path, display_path: Optional[Path] = None) -> ParsedFile:
        """Parse ``path``; syntax errors raise ParseError with file and line."""
        shown = display_path or path
        try:
            source_bytes = path.read_bytes()
        except OSError as exc:
            raise ParseError(f"cannot read source: {exc}", shown, 0) from exc
        return self.parse_bytes(source_bytes, shown)

    def parse_bytes(self, source_bytes: bytes, path: Path) -> ParsedFile:
        tree = self._parser.parse(source_bytes)
        root = tree.root_node
        if root.has_error:
            bad = _first_error(root) or root
            row, column = bad.start_point
            detail = "missing " + bad.type if bad.is_missing else "syntax error"
            raise ParseError(detail, path, row + 1, column + 1)

        self._path = path
        self._skipped = []
        package = ""
        classes: List[RawClass] = []
        for child in root.children:
            if child.type == "package_declaration":
                package = _package_name(child)
            elif child.type == "class_declaration":
                classes.append(self._collect_class(child))
            elif child.type in _TYPE_DECLARATIONS:
                self._skip_natives(child, "")
        return ParsedFile(path=path, package=package, classes=tuple(classes), skipped=tuple(self._skipped))

    def _collect_class(self, node: Node) -> RawClass:
        name = _node_text(node.child_by_field_name("name"))
        comment, comment_line = _doc_comment(node)
        natives: List[RawMethod] = []
        fields: List[RawField] = []
        body = node.child_by_field_name("body")
        for member in body.named_children if body is not None else []:
            if member.type == "method_declaration":
                method = self._collect_method(member)
                if method is not None:
                    natives.append(method)
            elif member.type == "field_declaration":
                fields.extend(self._collect_fields(member))
            elif member.type in _TYPE_DECLARATIONS:
                self._skip_natives(member, name)
        return RawClass(
            name=name,
            line=node.start_point[0] + 1,
            natives=tuple(natives),
            fields=tuple(fields),
            comment=comment,
            comment_line=comment_line,
        )

    def _skip_natives(self, node: Node, outer: str) -> None:
        name = _node_text(node.child_by_field_name("name"))
        qualified = f"{outer}.{name}" if outer else name
        body = node.child_by_field_name("body")
        members = list(body.named_children) if body is not None else []
        for member in list(members):
            if member.type == "enum_body_declarations":
                members.extend(member.named_children)
        for member in members:
            if member.type == "method_declaration" and "native" in _modifiers(member):
                method = f"{qualified}.{_node_text(member.child_by_field_name('name'))}"
                self.logger.warning("%s: skipping native %s outside a top-level class", self._path, method)
                self._skipped.append(method)
            elif member.type in _TYPE_DECLARATIONS:
                self._skip_natives(member, qualified)

    def _collect_method(self, node: Node) -> Optional[RawMethod]:
        modifiers = _modifiers(node)
        if "native" not in modifiers:
            return None
        params: List[RawParameter] = []
        parameters = node.child_by_field_name("parameters")
        for param in parameters.named_children if parameters is not None else []:
            if param.type == "spread_parameter":
                raise ParseError(
                    "variable-arity native methods are not supported",
                    self._path,
                    param.start_point[0] + 1,
                    param.start_point[1] + 1,
                )
            if param.type != "formal_parameter":
                continue
            type_text = _type_text(param.child_by_field_name("type"))
            for extra in param.children:
                if extra.type == "dimensions":
                    type_text += _compact(_node_text(extra))
            name_node = param.child_by_field_name("name")
            params.append(
                RawParameter(
                    name=_node_text(name_node),
                    type_text=type_text,
                    line=param.start_point[0] + 1,
                )
            )
        comment, comment_line = _doc_comment(node)
        return RawMethod(
            name=_node_text(node.child_by_field_name("name")),
            parameters=tuple(params),
            return_type=_type_text(node.child_by_field_name("type")),
            modifiers=modifiers,
            line=node.start_point[0] + 1,
            comment=comment,
            comment_line=comment_line,
        )

    def _collect_fields(self, node: Node) -> Iterator[RawField]:
        modifiers = _modifiers(node)
        if "static" in modifiers or "transient" in modifiers:
            return
        type_text = _type_text(node.child_by_field_name("type"))
        comment, comment_line = _doc_comment(node)
        for child in node.named_children:
            if child.type != "variable_declarator":
                continue
            name = _node_text(child.child_by_field_name("name"))
            dims = "".join(
                _compact(_node_text(extra)) for extra in child.children if extra.type == "dimensions"
            )
            yield RawField(
                name=name,
                type_text=type_text + dims,
                line=child.start_point[0] + 1,
                comment=comment,
                comment_line=comment_line,
            )


def _first_error(node: Node) -> Optional[Node]:
    for child in _walk(node):
        if child.type == "ERROR" or child.is_missing:
            return child
    return None


def _walk(node: Node) -> Iterator[Node]:
    for child in node.children:
        yield child
        yield from _walk(child)


def _node_text(node: Optional[Node]) -> str:
    if node is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def _compact(text: str) -> str:
    return _WHITESPACE.sub("", text)


def _type_text(node: Optional[Node]) -> str:
    return _compact(_node_text(node))


def _modifiers(node: Node) -> Tuple[str, ...]:
    for child in node.children:
        if child.type == "modifiers":
            words = _node_text(child).split()
            return tuple(word for word in words if not word.startswith("@"))
    return ()


def _package_name(node: Node) -> str:
    for child in node.named_children:
        if child.type in ("scoped_identifier", "identifier"):
            return _compact(_node_text(child))
    return ""


def _doc_comment(node: Node) -> Tuple[Optional[str], int]:
    previous = node.prev_sibling
    if previous is not None and previous.type == "block_comment":
        text = _node_text(previous)
        if text.startswith("/**"):
            return text, previous.start_point[0] + 1
    return None, 0


__all__ = [
    "JAVA_LANGUAGE",
    "JavaSourceParser",
    "ParsedFile",
    "RawClass",
    "RawField",
    "RawMethod",
    "RawParameter",
]

"""Line-oriented C code builder used for function bodies."""

from __future__ import annotations

from typing import List, Optional

_INDENT = "\t"


class CodeBuilder:
    """Accumulates C source lines with indentation tracking."""

    def __init__(self, depth: int = 0) -> None:
        self._lines: List[str] = []
        self._depth = depth

    def line(self, text: str = "") -> "CodeBuilder":
        self._lines.append(_INDENT * self._depth + text if text else "")
        return self

    def lines(self, *texts: str) -> "CodeBuilder":
        for text in texts:
            self.line(text)
        return self

    def fragment(self, text: Optional[str]) -> "CodeBuilder":
        """Append a multi-line code fragment at the current depth."""
        if not text:
            return self
        for raw in text.strip("\n").splitlines():
            self.line(raw.rstrip())
        return self

    def label(self, name: str) -> "CodeBuilder":
        """Labels sit flush left, as goto targets traditionally do."""
        return self.raw(f"{name}:")

    def raw(self, text: str) -> "CodeBuilder":
        """Append a line without indentation (labels, preprocessor directives)."""
        self._lines.append(text)
        return self

    def indent(self) -> "CodeBuilder":
        self._depth += 1
        return self

    def dedent(self) -> "CodeBuilder":
        if self._depth > 0:
            self._depth -= 1
        return self

    def block(self, header: str, footer: str = "}") -> "_Block":
        return _Block(self, header, footer)

    def render(self) -> str:
        return "\n".join(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


class _Block:
    def __init__(self, builder: CodeBuilder, header: str, footer: str) -> None:
        self._builder = builder
        self._header = header
        self._footer = footer

    def __enter__(self) -> CodeBuilder:
        self._builder.line(self._header)
        self._builder.indent()
        return self._builder

    def __exit__(self, *exc_info: object) -> None:
        self._builder.dedent()
        self._builder.line(self._footer)


__all__ = ["CodeBuilder"]

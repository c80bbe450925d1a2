"""Source model construction: discovery, parsing and directive resolution."""

from .annotations import CommentDirectives, parse_comment
from .builder import SourceModelBuilder, default_native_name, resolve_type
from .parser import JavaSourceParser, ParsedFile
from .scanner import SourceScanner

__all__ = [
    "CommentDirectives",
    "JavaSourceParser",
    "ParsedFile",
    "SourceModelBuilder",
    "SourceScanner",
    "default_native_name",
    "parse_comment",
    "resolve_type",
]

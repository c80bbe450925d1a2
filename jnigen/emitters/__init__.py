"""C emitters for natives, struct mirrors and call statistics."""

from .codegen import CodeBuilder
from .mangling import demangle, entry_point, function_name, mangle, split_entry_point
from .natives import NativesEmitter, native_entry_point, native_function_name, unit_name
from .stats import StatsEmitter, stats_file_names
from .structs import StructsEmitter
from .templating import create_environment

__all__ = [
    "CodeBuilder",
    "NativesEmitter",
    "StatsEmitter",
    "StructsEmitter",
    "create_environment",
    "demangle",
    "entry_point",
    "function_name",
    "mangle",
    "native_entry_point",
    "native_function_name",
    "split_entry_point",
    "stats_file_names",
    "unit_name",
]

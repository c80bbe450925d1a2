"""Core data models shared across jnigen components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import FrozenSet, Iterator, List, Optional, Tuple

from .flags import CodeFragments, FieldFlag, MethodFlag, Ownership, ParamFlag, StructFlag

PRIMITIVES: Tuple[str, ...] = (
    "boolean",
    "byte",
    "char",
    "short",
    "int",
    "long",
    "float",
    "double",
)

PRIMITIVE_DESCRIPTORS = {
    "boolean": "Z",
    "byte": "B",
    "char": "C",
    "short": "S",
    "int": "I",
    "long": "J",
    "float": "F",
    "double": "D",
    "void": "V",
}

INTEGRAL_PRIMITIVES = frozenset({"byte", "char", "short", "int", "long"})


class TypeKind(str, Enum):
    """Semantic category of a host-language type."""

    VOID = "void"
    PRIMITIVE = "primitive"
    STRING = "string"
    ARRAY = "array"
    STRUCT = "struct"
    HANDLE = "handle"
    CALLBACK = "callback"
    OBJECT = "object"


@dataclass(frozen=True)
class SemanticType:
    """Host type after resolution against the source model.

    ``name`` is the primitive name, ``String``, or the simple class name;
    ``qualified`` is the slash-separated class name used in descriptors.
    """

    kind: TypeKind
    name: str
    dimensions: int = 0
    qualified: Optional[str] = None

    @property
    def key(self) -> str:
        """Lookup key into the type-mapping rule table."""
        if self.kind in (TypeKind.STRUCT, TypeKind.HANDLE, TypeKind.CALLBACK):
            return self.kind.value
        suffix = "[]" * self.dimensions
        return f"{self.name}{suffix}"

    @property
    def descriptor(self) -> str:
        """JNI type descriptor of the host type as written in source."""
        prefix = "[" * self.dimensions
        if self.name in PRIMITIVE_DESCRIPTORS:
            return prefix + PRIMITIVE_DESCRIPTORS[self.name]
        if self.kind in (TypeKind.HANDLE, TypeKind.CALLBACK):
            return prefix + "J"
        qualified = self.qualified or self.name
        return f"{prefix}L{qualified};"

    @property
    def is_array(self) -> bool:
        return self.dimensions > 0

    def __str__(self) -> str:
        return self.name + "[]" * self.dimensions


VOID = SemanticType(TypeKind.VOID, "void")


@dataclass(frozen=True, order=True)
class Identity:
    """Stable identity of a declaration: the metadata join key and stats key."""

    enclosing_type: str
    name: str
    signature: str = ""
    kind: str = "method"

    @property
    def key(self) -> str:
        if self.kind == "struct":
            return self.enclosing_type
        if self.kind == "field":
            return f"{self.enclosing_type}#{self.name}"
        return f"{self.enclosing_type}.{self.name}({self.signature})"

    @property
    def bare_key(self) -> str:
        """Key without the parameter signature; matches every overload."""
        if self.kind == "method":
            return f"{self.enclosing_type}.{self.name}"
        return self.key

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class SourcePosition:
    path: Path
    line: int

    def __str__(self) -> str:
        return f"{self.path}:{self.line}"


@dataclass(frozen=True)
class ParameterDescriptor:
    """A resolved native method parameter."""

    index: int
    name: str
    type: SemanticType
    ownership: Ownership = Ownership.CALLER_OWNED
    cast: Optional[str] = None
    length_param: Optional[int] = None
    flags: FrozenSet[ParamFlag] = frozenset()

    @property
    def arg(self) -> str:
        return f"arg{self.index}"


@dataclass(frozen=True)
class NativeMethod:
    """A native method declaration with flags and metadata resolved."""

    identity: Identity
    parameters: Tuple[ParameterDescriptor, ...]
    return_type: SemanticType
    flags: FrozenSet[MethodFlag]
    accessor: str
    position: SourcePosition
    cast: Optional[str] = None
    fragments: CodeFragments = CodeFragments()
    overloaded: bool = False

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def descriptor(self) -> str:
        params = "".join(param.type.descriptor for param in self.parameters)
        return f"({params}){self.return_type.descriptor}"

    @property
    def critical(self) -> bool:
        return MethodFlag.CRITICAL in self.flags

    def has_flag(self, flag: MethodFlag) -> bool:
        return flag in self.flags


@dataclass(frozen=True)
class StructField:
    """A field of a struct mirror."""

    identity: Identity
    type: SemanticType
    accessor: str
    position: SourcePosition
    cast: Optional[str] = None
    platforms: Tuple[str, ...] = ()
    offset: Optional[int] = None
    flags: FrozenSet[FieldFlag] = frozenset()

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def conditional(self) -> bool:
        return bool(self.platforms)


@dataclass(frozen=True)
class StructMirror:
    """A host class mirroring the layout of a native struct."""

    identity: Identity
    qualified: str
    fields: Tuple[StructField, ...]
    native_name: str
    position: SourcePosition
    flags: FrozenSet[StructFlag] = frozenset()

    @property
    def name(self) -> str:
        return self.identity.enclosing_type

    @property
    def generated(self) -> bool:
        return StructFlag.NO_GEN not in self.flags


@dataclass(frozen=True)
class Tombstone:
    """A declaration skipped through ``no_gen``; kept for stale-metadata checks."""

    identity: Identity
    position: SourcePosition


@dataclass(frozen=True)
class SourceUnit:
    """One source file that contributes natives and/or struct mirrors."""

    path: Path
    class_name: str
    package: str
    natives: Tuple[NativeMethod, ...] = ()
    structs: Tuple[StructMirror, ...] = ()
    tombstones: Tuple[Tombstone, ...] = ()

    @property
    def qualified_name(self) -> str:
        return f"{self.package}.{self.class_name}" if self.package else self.class_name


@dataclass(frozen=True)
class SourceModel:
    """Ordered, immutable output of the modeling stage."""

    units: Tuple[SourceUnit, ...]

    def natives(self) -> Iterator[NativeMethod]:
        for unit in self.units:
            yield from unit.natives

    def structs(self) -> Iterator[StructMirror]:
        for unit in self.units:
            yield from unit.structs

    def identities(self) -> List[Identity]:
        """Every identity seen in the sources, including tombstoned ones."""
        result: List[Identity] = []
        for unit in self.units:
            result.extend(method.identity for method in unit.natives)
            for struct in unit.structs:
                result.append(struct.identity)
                result.extend(item.identity for item in struct.fields)
            result.extend(stone.identity for stone in unit.tombstones)
        return result


def platform_guard(platform_id: str, define: Optional[str] = None) -> str:
    return define or f"JNIGEN_{platform_id.upper()}"


@dataclass(frozen=True)
class GenerationTarget:
    """Platform, destination and inputs for one pipeline run."""

    platform_id: str
    output_dir: Path
    source_root: Path
    metadata_file: Optional[Path] = None
    word_size: int = 64
    define: str = ""
    stats_name: str = "natives"

    @property
    def guard(self) -> str:
        """Preprocessor symbol that is defined when compiling for this platform."""
        return platform_guard(self.platform_id, self.define)

    @property
    def pointer_size(self) -> int:
        return self.word_size // 8


@dataclass(frozen=True)
class GenerationWarning:
    """Non-fatal finding reported after a run completes."""

    category: str
    message: str
    location: Optional[str] = None

    def __str__(self) -> str:
        where = f" ({self.location})" if self.location else ""
        return f"[{self.category}] {self.message}{where}"


@dataclass
class GeneratedFile:
    """Rendered output for a single file, before diffing."""

    relative_path: str
    content: str
    metadata: dict = field(default_factory=dict)

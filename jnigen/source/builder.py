"""Build the SourceModel from parsed Java files and the metadata overlay.

Identities are derived from source text alone: types are resolved once
without any directives to compute the JNI signature, the identity is used to
look up metadata, and only then are casts and flags applied to refine ``long``
parameters into handles or callbacks.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

from ..errors import ParseError
from ..flags import (
    CodeFragments,
    FieldDirectives,
    MethodDirectives,
    MethodFlag,
    Ownership,
    ParamDirectives,
    ParamFlag,
    StructDirectives,
    first_set,
)
from ..logging import get_logger
from ..models import (
    INTEGRAL_PRIMITIVES,
    PRIMITIVES,
    VOID,
    Identity,
    NativeMethod,
    ParameterDescriptor,
    SemanticType,
    SourceModel,
    SourcePosition,
    SourceUnit,
    StructField,
    StructMirror,
    Tombstone,
    TypeKind,
)
from ..stores.metadata import MetadataRecord, MetadataStore
from .annotations import CommentDirectives, parse_comment
from .parser import JavaSourceParser, ParsedFile, RawClass, RawMethod, RawParameter
from .scanner import SourceScanner

_JAVA_LANG = {"Object", "String", "Class", "Throwable", "Runnable"}


@dataclass(frozen=True)
class _ClassEntry:
    parsed: ParsedFile
    raw: RawClass
    directives: CommentDirectives

    @property
    def qualified(self) -> str:
        package = self.parsed.package.replace(".", "/")
        return f"{package}/{self.raw.name}" if package else self.raw.name


class SourceModelBuilder:
    """Turns Java sources into an ordered, immutable SourceModel."""

    def __init__(
        self,
        metadata: Optional[MetadataStore] = None,
        *,
        parser: Optional[JavaSourceParser] = None,
        scanner: Optional[SourceScanner] = None,
    ) -> None:
        self.metadata = metadata or MetadataStore()
        self.parser = parser or JavaSourceParser()
        self.scanner = scanner or SourceScanner()
        self.logger = get_logger("source")

    def build(self, source_root: Path) -> SourceModel:
        """Scan ``source_root`` and build the model; any ParseError aborts."""
        root = Path(source_root).expanduser().resolve()
        files = self.scanner.scan(root)
        self.logger.debug("Found %d Java sources under %s", len(files), root)
        parsed = [self.parser.parse(path, display_path=path.relative_to(root)) for path in files]
        return self.build_from(parsed)

    def build_from(self, parsed_files: Sequence[ParsedFile]) -> SourceModel:
        entries = self._index_classes(parsed_files)
        struct_names = self._struct_names(entries)
        qualified = {name: entry.qualified for name, entry in entries.items()}

        units: List[SourceUnit] = []
        for parsed in parsed_files:
            for raw in parsed.classes:
                entry = entries.get(raw.name)
                if entry is None or entry.raw is not raw:
                    continue
                unit = self._build_unit(entry, struct_names, qualified)
                if unit is not None:
                    units.append(unit)

        model = SourceModel(units=tuple(units))
        self.logger.debug(
            "Modeled %d units, %d natives, %d struct mirrors",
            len(model.units),
            sum(1 for _ in model.natives()),
            sum(1 for _ in model.structs()),
        )
        return model

    # ------------------------------------------------------------------
    # Pass one: class index and struct detection

    def _index_classes(self, parsed_files: Sequence[ParsedFile]) -> Dict[str, _ClassEntry]:
        entries: Dict[str, _ClassEntry] = {}
        for parsed in parsed_files:
            for raw in parsed.classes:
                directives = parse_comment(raw.comment, parsed.path, raw.comment_line)
                entry = _ClassEntry(parsed=parsed, raw=raw, directives=directives)
                existing = entries.get(raw.name)
                if existing is None or not self._declares_bindings(existing):
                    entries[raw.name] = entry
                elif self._declares_bindings(entry):
                    raise ParseError(
                        f"class '{raw.name}' is also declared in {existing.parsed.path}",
                        parsed.path,
                        raw.line,
                    )
        return entries

    def _declares_bindings(self, entry: _ClassEntry) -> bool:
        return bool(entry.raw.natives or entry.directives.struct or entry.raw.name in self.metadata)

    def _struct_names(self, entries: Dict[str, _ClassEntry]) -> Set[str]:
        names: Set[str] = set()
        for name, entry in entries.items():
            if entry.directives.struct is not None:
                names.add(name)
        for name in self.metadata.struct_names():
            if name in entries:
                names.add(name)

        # Classes passed to natives by value that carry instance fields.
        for entry in entries.values():
            for method in entry.raw.natives:
                for param in method.parameters:
                    referenced = entries.get(param.type_text.rsplit(".", 1)[-1])
                    if referenced is not None and referenced.raw.fields:
                        names.add(referenced.raw.name)
        return names

    # ------------------------------------------------------------------
    # Pass two: units

    def _build_unit(
        self,
        entry: _ClassEntry,
        struct_names: Set[str],
        qualified: Dict[str, str],
    ) -> Optional[SourceUnit]:
        raw = entry.raw
        is_struct = raw.name in struct_names
        if not raw.natives and not is_struct:
            return None

        counts: Dict[str, int] = {}
        for method in raw.natives:
            counts[method.name] = counts.get(method.name, 0) + 1

        natives: List[NativeMethod] = []
        tombstones: List[Tombstone] = []
        for method in raw.natives:
            built = self._build_method(entry, method, counts[method.name] > 1, struct_names, qualified)
            if isinstance(built, Tombstone):
                tombstones.append(built)
            else:
                natives.append(built)

        structs: Tuple[StructMirror, ...] = ()
        if is_struct:
            structs = (self._build_struct(entry, struct_names, qualified),)

        return SourceUnit(
            path=entry.parsed.path,
            class_name=raw.name,
            package=entry.parsed.package,
            natives=tuple(natives),
            structs=structs,
            tombstones=tuple(tombstones),
        )

    def _build_method(
        self,
        entry: _ClassEntry,
        raw: RawMethod,
        overloaded: bool,
        struct_names: Set[str],
        qualified: Dict[str, str],
    ) -> Union[NativeMethod, Tombstone]:
        path = entry.parsed.path
        inline = parse_comment(raw.comment, path, raw.comment_line)
        host_types = [resolve_type(param.type_text, struct_names, qualified) for param in raw.parameters]
        return_type = resolve_type(raw.return_type, struct_names, qualified)
        signature = "".join(semantic.descriptor for semantic in host_types)
        identity = Identity(entry.raw.name, raw.name, signature)
        position = SourcePosition(path, raw.line)

        record = self.metadata.lookup(identity)
        inline_method = inline.method or MethodDirectives()
        meta_method = record.method if record else MethodDirectives()
        flags = inline_method.flags | meta_method.flags
        if MethodFlag.NO_GEN in flags:
            self.logger.debug("Skipping %s (no_gen)", identity)
            return Tombstone(identity=identity, position=position)

        names = {param.name for param in raw.parameters}
        for name in inline.params:
            if name not in names:
                raise ParseError(f"@param directive names unknown parameter '{name}'", path, raw.comment_line)

        params = [
            self._build_param(index, param, semantic, inline.param(param.name), record, path)
            for index, (param, semantic) in enumerate(zip(raw.parameters, host_types))
        ]
        params = self._link_lengths(params, raw, inline, record, path)

        return NativeMethod(
            identity=identity,
            parameters=tuple(params),
            return_type=return_type,
            flags=flags,
            accessor=first_set(inline_method.accessor, meta_method.accessor, default_native_name(raw.name)),
            position=position,
            cast=first_set(inline_method.cast, meta_method.cast),
            fragments=record.fragments if record else CodeFragments(),
            overloaded=overloaded,
        )

    def _build_param(
        self,
        index: int,
        raw: RawParameter,
        semantic: SemanticType,
        inline: ParamDirectives,
        record: Optional[MetadataRecord],
        path: Path,
    ) -> ParameterDescriptor:
        meta = (record.param(index, raw.name) if record else None) or ParamDirectives()
        flags = inline.flags | meta.flags
        cast = first_set(inline.cast, meta.cast)
        ownership = first_set(inline.ownership, meta.ownership, default_ownership(semantic))
        semantic = refine_long(semantic, flags, cast)
        if ParamFlag.CALLBACK in flags and semantic.kind is not TypeKind.CALLBACK:
            raise ParseError(f"callback flag on '{raw.name}' requires a long parameter", path, raw.line)
        return ParameterDescriptor(
            index=index,
            name=raw.name,
            type=semantic,
            ownership=ownership,
            cast=cast,
            flags=flags,
        )

    def _link_lengths(
        self,
        params: List[ParameterDescriptor],
        raw: RawMethod,
        inline: CommentDirectives,
        record: Optional[MetadataRecord],
        path: Path,
    ) -> List[ParameterDescriptor]:
        linked: List[ParameterDescriptor] = []
        for param, raw_param in zip(params, raw.parameters):
            meta = (record.param(param.index, param.name) if record else None) or ParamDirectives()
            reference = first_set(inline.param(param.name).length, meta.length)
            if reference is None:
                linked.append(param)
                continue
            if not param.type.is_array:
                raise ParseError(f"length= on '{param.name}' requires an array parameter", path, raw_param.line)
            target = _find_param(params, reference)
            if target is None or target.index == param.index:
                raise ParseError(f"length= on '{param.name}' names no other parameter: '{reference}'", path, raw_param.line)
            if target.type.kind is not TypeKind.PRIMITIVE or target.type.name not in INTEGRAL_PRIMITIVES:
                raise ParseError(
                    f"length parameter '{target.name}' of '{param.name}' must be an integral primitive",
                    path,
                    raw_param.line,
                )
            linked.append(
                ParameterDescriptor(
                    index=param.index,
                    name=param.name,
                    type=param.type,
                    ownership=param.ownership,
                    cast=param.cast,
                    length_param=target.index,
                    flags=param.flags,
                )
            )
        return linked

    # ------------------------------------------------------------------
    # Struct mirrors

    def _build_struct(
        self,
        entry: _ClassEntry,
        struct_names: Set[str],
        qualified: Dict[str, str],
    ) -> StructMirror:
        raw = entry.raw
        path = entry.parsed.path
        identity = Identity(raw.name, "", kind="struct")
        record = self.metadata.lookup(identity)
        inline = entry.directives.struct or StructDirectives()
        meta = record.struct if record else StructDirectives()

        fields: List[StructField] = []
        for raw_field in raw.fields:
            field_inline = parse_comment(raw_field.comment, path, raw_field.comment_line).field or FieldDirectives()
            field_identity = Identity(raw.name, raw_field.name, kind="field")
            field_record = self.metadata.lookup(field_identity)
            field_meta = field_record.field if field_record else FieldDirectives()
            cast = first_set(field_inline.cast, field_meta.cast)
            semantic = refine_long(resolve_type(raw_field.type_text, struct_names, qualified), frozenset(), cast)
            fields.append(
                StructField(
                    identity=field_identity,
                    type=semantic,
                    accessor=first_set(field_inline.accessor, field_meta.accessor, raw_field.name),
                    position=SourcePosition(path, raw_field.line),
                    cast=cast,
                    platforms=field_inline.platforms or field_meta.platforms,
                    offset=first_set(field_inline.offset, field_meta.offset),
                    flags=field_inline.flags | field_meta.flags,
                )
            )

        return StructMirror(
            identity=identity,
            qualified=entry.qualified,
            fields=tuple(fields),
            native_name=first_set(inline.accessor, meta.accessor, raw.name),
            position=SourcePosition(path, raw.line),
            flags=inline.flags | meta.flags,
        )


def resolve_type(
    text: str,
    struct_names: Set[str],
    qualified: Optional[Dict[str, str]] = None,
) -> SemanticType:
    """Resolve host type text (``int[]``, ``java.lang.String``) to a SemanticType."""
    base = text
    dimensions = 0
    while base.endswith("[]"):
        base = base[:-2]
        dimensions += 1
    simple = base.rsplit(".", 1)[-1]

    if base == "void":
        return VOID
    if base in PRIMITIVES:
        kind = TypeKind.ARRAY if dimensions else TypeKind.PRIMITIVE
        return SemanticType(kind, base, dimensions)
    if simple == "String" and base in ("String", "java.lang.String"):
        kind = TypeKind.ARRAY if dimensions else TypeKind.STRING
        return SemanticType(kind, "String", dimensions, "java/lang/String")

    known = (qualified or {}).get(simple)
    if "." in base:
        class_path = base.replace(".", "/")
    elif known is not None:
        class_path = known
    elif simple in _JAVA_LANG:
        class_path = f"java/lang/{simple}"
    else:
        class_path = simple
    if simple in struct_names and dimensions == 0:
        return SemanticType(TypeKind.STRUCT, simple, 0, class_path)
    return SemanticType(TypeKind.OBJECT, simple, dimensions, class_path)


def refine_long(semantic: SemanticType, flags, cast: Optional[str]) -> SemanticType:  # type: ignore[no-untyped-def]
    """A ``long`` is a callback when flagged, a native handle when cast to a pointer."""
    if semantic.kind is not TypeKind.PRIMITIVE or semantic.name != "long":
        return semantic
    if ParamFlag.CALLBACK in flags:
        return SemanticType(TypeKind.CALLBACK, "long")
    if cast and "*" in cast:
        return SemanticType(TypeKind.HANDLE, "long")
    return semantic


def default_ownership(semantic: SemanticType) -> Ownership:
    if semantic.kind is TypeKind.STRING:
        return Ownership.BORROWED
    return Ownership.CALLER_OWNED


def default_native_name(method_name: str) -> str:
    """Native function name: the method name without one leading underscore."""
    if method_name.startswith("_") and len(method_name) > 1:
        return method_name[1:]
    return method_name


def _find_param(params: Sequence[ParameterDescriptor], reference: str) -> Optional[ParameterDescriptor]:
    reference = reference.strip()
    if reference.isdigit():
        index = int(reference)
        return params[index] if index < len(params) else None
    for param in params:
        if param.name == reference:
            return param
    return None


__all__ = [
    "SourceModelBuilder",
    "default_native_name",
    "default_ownership",
    "refine_long",
    "resolve_type",
]

"""Type mapping engine: semantic types to JNI types and marshaling code."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..errors import ConfigurationError, MappingError
from ..flags import MethodFlag, Ownership, ParamFlag
from ..models import (
    GenerationTarget,
    NativeMethod,
    ParameterDescriptor,
    SemanticType,
    StructField,
    StructMirror,
    TypeKind,
)
from .rules import REQUIRED_KEYS, MappingRule, builtin_rules

DISCIPLINE_VALUE = "value"
DISCIPLINE_COPY = "copy"
DISCIPLINE_PINNED = "pinned"


@dataclass(frozen=True)
class TypeMapping:
    """Rendered mapping for a single parameter, return value or field."""

    semantic: SemanticType
    abi_type: str
    descriptor: str
    c_type: str
    marshal_in: str = ""
    marshal_out: str = ""
    release: str = ""
    local_decl: str = ""
    call_arg: str = ""
    discipline: str = DISCIPLINE_VALUE
    size: int = 0
    alignment: int = 0
    field_accessor: str = ""

    @property
    def acquires(self) -> bool:
        return bool(self.release)

    @property
    def pinned(self) -> bool:
        return self.discipline == DISCIPLINE_PINNED


@dataclass(frozen=True)
class MethodMapping:
    """All mappings needed to emit one native method."""

    method: NativeMethod
    parameters: Tuple[TypeMapping, ...]
    result: TypeMapping

    @property
    def acquiring(self) -> List[Tuple[ParameterDescriptor, TypeMapping]]:
        """Parameters needing acquire/release, pinned buffers last."""
        items = [
            (param, mapping)
            for param, mapping in zip(self.method.parameters, self.parameters)
            if mapping.marshal_in or mapping.release
        ]
        return [item for item in items if not item[1].pinned] + [item for item in items if item[1].pinned]

    @property
    def pins(self) -> bool:
        return any(mapping.pinned for mapping in self.parameters)


@dataclass(frozen=True)
class FieldLayout:
    field: StructField
    mapping: TypeMapping
    offset: int


@dataclass(frozen=True)
class StructLayout:
    struct: StructMirror
    fields: Tuple[FieldLayout, ...]
    size: int
    alignment: int


class TypeMappingEngine:
    """Maps parameter descriptors to TypeMappings for a single target.

    The rule set is validated when the engine is built: a rule set that leaves
    a required semantic key unmapped raises ConfigurationError before any
    declaration is looked at.
    """

    def __init__(
        self,
        target: GenerationTarget,
        rules: Optional[Iterable[MappingRule]] = None,
    ) -> None:
        if target.word_size not in (32, 64):
            raise ConfigurationError(f"unsupported word size {target.word_size} for {target.platform_id}")
        table: Dict[str, MappingRule] = {}
        for rule in builtin_rules() if rules is None else rules:
            table[rule.key] = rule
        missing = [key for key in REQUIRED_KEYS if key not in table]
        if missing:
            raise ConfigurationError(f"type mapping rules missing for: {', '.join(missing)}")
        self.target = target
        self._rules: Mapping[str, MappingRule] = MappingProxyType(table)

    @property
    def keys(self) -> List[str]:
        return sorted(self._rules)

    def rule(self, semantic: SemanticType, identity: str) -> MappingRule:
        rule = self._rules.get(semantic.key)
        if rule is None:
            raise MappingError(f"no type mapping for '{semantic.key}'", identity)
        return rule

    # ------------------------------------------------------------------
    # Methods

    def check_declaration(self, method: NativeMethod) -> None:
        """Reject critical mode on a declaration that can re-enter the runtime."""
        critical = method.critical or any(
            param.ownership is Ownership.PINNED for param in method.parameters
        )
        if not critical:
            return
        callbacks = [param.name for param in method.parameters if param.type.kind is TypeKind.CALLBACK]
        if callbacks:
            raise MappingError(
                f"critical mode is illegal with callback parameter(s): {', '.join(callbacks)}",
                method.identity.key,
            )

    def map_method(self, method: NativeMethod, structs: Mapping[str, StructMirror]) -> MethodMapping:
        self.check_declaration(method)
        params = tuple(self.map(param, method, structs) for param in method.parameters)
        mapping = MethodMapping(method=method, parameters=params, result=self.map_return(method))
        if mapping.pins and "(*env)->" in mapping.result.marshal_out:
            raise MappingError(
                f"'{method.return_type.key}' return needs the runtime while arrays are pinned",
                method.identity.key,
            )
        return mapping

    def map(
        self,
        param: ParameterDescriptor,
        method: NativeMethod,
        structs: Mapping[str, StructMirror],
    ) -> TypeMapping:
        identity = method.identity.key
        semantic = param.type
        if semantic.kind is TypeKind.VOID:
            raise MappingError(f"parameter '{param.name}' cannot be void", identity)
        rule = self.rule(semantic, identity)

        struct_name = native = qualified = ""
        if semantic.kind is TypeKind.STRUCT:
            mirror = structs.get(semantic.name)
            if mirror is None:
                raise MappingError(f"struct mirror '{semantic.name}' is not generated", identity)
            struct_name, native, qualified = mirror.name, mirror.native_name, mirror.qualified

        discipline = DISCIPLINE_COPY if rule.release else DISCIPLINE_VALUE
        marshal_in, release = rule.marshal_in, rule.release
        if semantic.is_array and (method.critical or param.ownership is Ownership.PINNED):
            discipline = DISCIPLINE_PINNED
            marshal_in, release = rule.pinned_in, rule.pinned_release
        if ParamFlag.NO_IN in param.flags and rule.no_in:
            marshal_in = rule.no_in
        if param.ownership is Ownership.BORROWED and semantic.kind is TypeKind.STRUCT:
            release = ""

        values = {
            "arg": param.arg,
            "local": f"lp{param.arg}",
            "cast": param.cast or self._default_cast(rule),
            "mode": "JNI_ABORT" if param.ownership is Ownership.BORROWED else "0",
            "struct": struct_name,
            "native": native,
            "qualified": qualified,
            "abi": rule.abi_type,
        }
        size, alignment = self._size_of(rule)
        return TypeMapping(
            semantic=semantic,
            abi_type=rule.abi_type,
            descriptor=rule.descriptor.format(**values),
            c_type=_strip_cast(param.cast) or rule.c_type.format(**values),
            marshal_in=marshal_in.format(**values),
            release=release.format(**values),
            local_decl=rule.local_decl.format(**values),
            call_arg=rule.call_arg.format(**values),
            discipline=discipline,
            size=size,
            alignment=alignment,
        )

    def map_return(self, method: NativeMethod) -> TypeMapping:
        identity = method.identity.key
        semantic = method.return_type
        rule = self.rule(semantic, identity)
        if not rule.returnable:
            raise MappingError(f"'{semantic.key}' cannot be returned from a native method", identity)
        c_type = _strip_cast(method.cast) or rule.c_type
        if (
            method.has_flag(MethodFlag.CONST)
            and semantic.kind is not TypeKind.VOID
            and not c_type.startswith("const ")
        ):
            c_type = f"const {c_type}"
        size, alignment = self._size_of(rule)
        return TypeMapping(
            semantic=semantic,
            abi_type=rule.abi_type,
            descriptor=rule.descriptor,
            c_type=c_type,
            marshal_out=rule.marshal_out.replace("{abi}", rule.abi_type),
            size=size,
            alignment=alignment,
        )

    # ------------------------------------------------------------------
    # Structs

    def map_field(self, item: StructField, struct: StructMirror) -> TypeMapping:
        rule = self.rule(item.type, item.identity.key)
        if not rule.field_allowed or not rule.field_accessor:
            raise MappingError(f"'{item.type.key}' is not supported as a struct field", item.identity.key)
        size, alignment = self._size_of(rule)
        cast = item.cast or ""
        return TypeMapping(
            semantic=item.type,
            abi_type=rule.abi_type,
            descriptor=rule.descriptor,
            c_type=_strip_cast(cast) or rule.c_type,
            marshal_out=rule.marshal_out.replace("{abi}", rule.abi_type),
            size=size,
            alignment=alignment,
            field_accessor=rule.field_accessor,
        )

    def layout(self, struct: StructMirror) -> StructLayout:
        """Compute natural-alignment offsets for fields present on this target."""
        offset = 0
        max_align = 1
        fields: List[FieldLayout] = []
        for item in struct.fields:
            mapping = self.map_field(item, struct)
            if item.platforms and self.target.platform_id not in item.platforms:
                continue
            align = max(mapping.alignment, 1)
            if item.offset is not None:
                offset = item.offset
            else:
                offset = _align(offset, align)
            fields.append(FieldLayout(field=item, mapping=mapping, offset=offset))
            offset += mapping.size
            max_align = max(max_align, align)
        return StructLayout(
            struct=struct,
            fields=tuple(fields),
            size=_align(offset, max_align),
            alignment=max_align,
        )

    # ------------------------------------------------------------------
    # Internal helpers

    def _size_of(self, rule: MappingRule) -> Tuple[int, int]:
        if rule.key == "void":
            return 0, 0
        if rule.pointer_sized:
            width = self.target.pointer_size
            return width, width
        return rule.size, rule.alignment

    @staticmethod
    def _default_cast(rule: MappingRule) -> str:
        if rule.key in ("handle", "callback"):
            return f"({rule.c_type})"
        return ""


def _strip_cast(cast: Optional[str]) -> str:
    if not cast:
        return ""
    text = cast.strip()
    if text.startswith("(") and text.endswith(")"):
        text = text[1:-1].strip()
    return text


def _align(value: int, alignment: int) -> int:
    if alignment <= 1:
        return value
    return (value + alignment - 1) // alignment * alignment


__all__ = [
    "DISCIPLINE_COPY",
    "DISCIPLINE_PINNED",
    "DISCIPLINE_VALUE",
    "FieldLayout",
    "MethodMapping",
    "StructLayout",
    "TypeMapping",
    "TypeMappingEngine",
]

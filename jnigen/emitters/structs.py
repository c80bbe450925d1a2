"""Emit struct-mirror accessors and JNI field marshaling."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from jinja2 import Environment

from ..flags import FieldFlag
from ..logging import get_logger
from ..models import GeneratedFile, GenerationWarning, SourceUnit, StructField, StructMirror, TypeKind
from ..typemap import StructLayout, TypeMapping, TypeMappingEngine
from .codegen import CodeBuilder
from .natives import unit_name
from .templating import create_environment, render


@dataclass(frozen=True)
class _RenderedField:
    field: StructField
    mapping: TypeMapping
    condition: Optional[str]


class StructsEmitter:
    """Renders ``<unit>_structs.h`` and ``<unit>_structs.c`` for struct mirrors.

    ``platform_defines`` maps every configured platform id to the preprocessor
    symbol its build defines; platform-conditional fields are wrapped in
    ``#if defined(...)`` over those symbols.
    """

    def __init__(
        self,
        engine: TypeMappingEngine,
        platform_defines: Mapping[str, str],
        *,
        env: Optional[Environment] = None,
    ) -> None:
        self.engine = engine
        self.platform_defines = dict(platform_defines)
        self.env = env or create_environment()
        self.warnings: List[GenerationWarning] = []
        self.logger = get_logger("emitters.structs")

    def emit(self, unit: SourceUnit) -> List[GeneratedFile]:
        structs = [struct for struct in unit.structs if struct.generated]
        if not structs:
            return []
        name = unit_name(unit.class_name)
        rendered = [self._struct(struct) for struct in structs]
        context = {
            "unit": name,
            "include_guard": f"INC_{name.upper()}_STRUCTS_H",
            "custom_header": f"{unit.class_name.upper()}_CUSTOM_HEADER",
            "structs": rendered,
        }
        self.logger.debug("Rendering %d struct mirrors for %s", len(rendered), unit.class_name)
        return [
            GeneratedFile(
                relative_path=f"{name}_structs.h",
                content=render(self.env, "structs.h.j2", **context),
                metadata={"unit": unit.class_name, "kind": "structs"},
            ),
            GeneratedFile(
                relative_path=f"{name}_structs.c",
                content=render(self.env, "structs.c.j2", **context),
                metadata={"unit": unit.class_name, "kind": "structs"},
            ),
        ]

    # ------------------------------------------------------------------
    # Struct rendering

    def _struct(self, struct: StructMirror) -> Dict[str, str]:
        layout = self.engine.layout(struct)
        fields = [
            _RenderedField(item, self.engine.map_field(item, struct), self._condition(item))
            for item in struct.fields
            if FieldFlag.NO_GEN not in item.flags
        ]
        native = struct.native_name
        cache = f"{struct.name}Fc"
        return {
            "name": struct.name,
            "layout_comment": self._layout_comment(layout),
            "declarations": self._declarations(struct, fields),
            "cache_type": self._cache_type(struct, fields),
            "cache": self._cache_function(struct, fields, cache),
            "get_fields": self._get_fields(struct, fields, cache),
            "set_fields": self._set_fields(struct, fields, cache),
            "accessors": self._accessors(struct, fields),
            "sizeof": f"jint {struct.name}_sizeof(void)\n{{\n\treturn (jint)sizeof({native});\n}}",
        }

    def _condition(self, item: StructField) -> Optional[str]:
        if not item.platforms:
            return None
        symbols = []
        unconfigured = []
        for platform in item.platforms:
            define = self.platform_defines.get(platform)
            if define is None:
                unconfigured.append(platform)
                define = f"JNIGEN_{platform.upper()}"
            symbols.append(f"defined({define})")
        if len(unconfigured) == len(item.platforms):
            names = ", ".join(f"'{platform}'" for platform in unconfigured)
            self.warnings.append(
                GenerationWarning(
                    category="platform",
                    message=f"field {item.identity} is present on no configured platform ({names})",
                    location=str(item.position),
                )
            )
        return " || ".join(symbols)

    def _layout_comment(self, layout: StructLayout) -> str:
        target = self.engine.target
        lines = [
            "/*",
            f" * {layout.struct.native_name} layout ({target.platform_id}, {target.word_size}-bit):"
            f" size {layout.size}, alignment {layout.alignment}",
        ]
        for entry in layout.fields:
            suffix = " (no_gen)" if FieldFlag.NO_GEN in entry.field.flags else ""
            lines.append(
                f" *   {entry.offset:>4}  {entry.field.accessor}  {entry.mapping.c_type} ({entry.mapping.size}){suffix}"
            )
        lines.append(" */")
        return "\n".join(lines)

    def _declarations(self, struct: StructMirror, fields: List[_RenderedField]) -> str:
        native = struct.native_name
        code = CodeBuilder()
        code.lines(
            f"void cache{struct.name}Fields(JNIEnv *env, jobject lpObject);",
            f"{native} *get{struct.name}Fields(JNIEnv *env, jobject lpObject, {native} *lpStruct);",
            f"void set{struct.name}Fields(JNIEnv *env, jobject lpObject, {native} *lpStruct);",
            f"jint {struct.name}_sizeof(void);",
        )
        for entry in fields:
            abi = entry.mapping.abi_type
            with _conditional(code, entry.condition):
                code.line(f"{abi} {struct.name}_get_{entry.field.name}(jlong ptr);")
                if FieldFlag.NO_SET not in entry.field.flags:
                    code.line(f"void {struct.name}_set_{entry.field.name}(jlong ptr, {abi} value);")
        return code.render()

    def _cache_type(self, struct: StructMirror, fields: List[_RenderedField]) -> str:
        code = CodeBuilder()
        with code.block(f"typedef struct {struct.name}_FID_CACHE {{", f"}} {struct.name}_FID_CACHE;"):
            code.line("int cached;")
            code.line("jclass clazz;")
            for entry in fields:
                with _conditional(code, entry.condition):
                    code.line(f"jfieldID {entry.field.name};")
        return code.render()

    def _cache_function(self, struct: StructMirror, fields: List[_RenderedField], cache: str) -> str:
        code = CodeBuilder()
        code.line(f"void cache{struct.name}Fields(JNIEnv *env, jobject lpObject)")
        with code.block("{"):
            code.line(f"if ({cache}.cached) return;")
            code.line(f"{cache}.clazz = (*env)->GetObjectClass(env, lpObject);")
            for entry in fields:
                with _conditional(code, entry.condition):
                    code.line(
                        f'{cache}.{entry.field.name} = (*env)->GetFieldID(env, {cache}.clazz, '
                        f'"{entry.field.name}", "{entry.field.type.descriptor}");'
                    )
            code.line(f"{cache}.cached = 1;")
        return code.render()

    def _get_fields(self, struct: StructMirror, fields: List[_RenderedField], cache: str) -> str:
        native = struct.native_name
        code = CodeBuilder()
        code.line(f"{native} *get{struct.name}Fields(JNIEnv *env, jobject lpObject, {native} *lpStruct)")
        with code.block("{"):
            code.line(f"if (!{cache}.cached) cache{struct.name}Fields(env, lpObject);")
            for entry in fields:
                mapping = entry.mapping
                read = (
                    f"(*env)->Get{mapping.field_accessor}Field(env, lpObject, {cache}.{entry.field.name})"
                )
                with _conditional(code, entry.condition):
                    code.line(f"lpStruct->{entry.field.accessor} = {_to_native(mapping, read)};")
            code.line("return lpStruct;")
        return code.render()

    def _set_fields(self, struct: StructMirror, fields: List[_RenderedField], cache: str) -> str:
        native = struct.native_name
        code = CodeBuilder()
        code.line(f"void set{struct.name}Fields(JNIEnv *env, jobject lpObject, {native} *lpStruct)")
        with code.block("{"):
            code.line(f"if (!{cache}.cached) cache{struct.name}Fields(env, lpObject);")
            for entry in fields:
                if FieldFlag.NO_SET in entry.field.flags:
                    continue
                mapping = entry.mapping
                value = _to_abi(mapping, f"lpStruct->{entry.field.accessor}")
                with _conditional(code, entry.condition):
                    code.line(
                        f"(*env)->Set{mapping.field_accessor}Field(env, lpObject, "
                        f"{cache}.{entry.field.name}, {value});"
                    )
        return code.render()

    def _accessors(self, struct: StructMirror, fields: List[_RenderedField]) -> str:
        native = struct.native_name
        code = CodeBuilder()
        for position, entry in enumerate(fields):
            if position:
                code.line()
            mapping = entry.mapping
            offset = (
                str(entry.field.offset)
                if entry.field.offset is not None
                else f"offsetof({native}, {entry.field.accessor})"
            )
            address = f"(({mapping.c_type} *)((char *)(intptr_t)ptr + {offset}))"
            getter, setter = _accessor_names(struct, entry.field)
            with _conditional(code, entry.condition):
                code.line(f"#ifndef NO_{getter}")
                code.line(f"{mapping.abi_type} {getter}(jlong ptr)")
                with code.block("{"):
                    code.line(f"return {_to_abi(mapping, '*' + address)};")
                code.line("#endif")
                if FieldFlag.NO_SET not in entry.field.flags:
                    code.line(f"#ifndef NO_{setter}")
                    code.line(f"void {setter}(jlong ptr, {mapping.abi_type} value)")
                    with code.block("{"):
                        code.line(f"*{address} = {_to_native(mapping, 'value')};")
                    code.line("#endif")
        return code.render()


@contextmanager
def _conditional(code: CodeBuilder, condition: Optional[str]) -> Iterator[CodeBuilder]:
    """Wrap emitted lines in ``#if <condition>`` when a condition is set."""
    if condition:
        code.raw(f"#if {condition}")
    yield code
    if condition:
        code.raw("#endif")


def _accessor_names(struct: StructMirror, item: StructField) -> Tuple[str, str]:
    return f"{struct.name}_get_{item.name}", f"{struct.name}_set_{item.name}"


def _is_pointer(mapping: TypeMapping) -> bool:
    return mapping.semantic.kind in (TypeKind.HANDLE, TypeKind.CALLBACK)


def _to_native(mapping: TypeMapping, expression: str) -> str:
    if _is_pointer(mapping):
        return f"({mapping.c_type})(intptr_t){expression}"
    return f"({mapping.c_type}){expression}"


def _to_abi(mapping: TypeMapping, expression: str) -> str:
    if _is_pointer(mapping):
        return f"({mapping.abi_type})(intptr_t){expression}"
    return f"({mapping.abi_type}){expression}"


__all__ = ["StructsEmitter"]

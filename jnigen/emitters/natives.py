"""Emit the JNI entry points for each source unit.

Every function body follows the same shape::

    locals
    ENTER
    acquire copied parameters in order (goto fail on failure)
    length checks, then acquire pinned arrays
    pre_call fragment
    native call (or body fragment), post_call fragment, return marshaling
    fail:
    release acquired parameters in reverse order
    EXIT
    return

Release always walks the acquisition list backwards, so a failure part way
through acquisition releases only what was acquired, in LIFO order; each
release template is guarded by a NULL check on its local.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional

from jinja2 import Environment

from ..flags import MethodFlag
from ..logging import get_logger
from ..models import GeneratedFile, NativeMethod, SourceUnit, StructMirror, TypeKind
from ..typemap import MethodMapping, TypeMapping, TypeMappingEngine
from .codegen import CodeBuilder
from .mangling import entry_point, function_name, parameter_signature
from .templating import create_environment, render


def unit_name(class_name: str) -> str:
    return class_name.lower()


def stats_macro_prefix(stats_name: str) -> str:
    return "".join(char if char.isalnum() else "_" for char in stats_name).upper()


def native_function_name(method: NativeMethod) -> str:
    """Name used for the ``NO_`` guard and the stats ``_FUNC`` symbol."""
    signature = parameter_signature(method.descriptor) if method.overloaded else None
    return function_name(method.identity.enclosing_type, method.name, signature)


def native_entry_point(method: NativeMethod, package: str) -> str:
    qualified = f"{package}.{method.identity.enclosing_type}" if package else method.identity.enclosing_type
    signature = parameter_signature(method.descriptor) if method.overloaded else None
    return entry_point(qualified, method.name, signature)


class NativesEmitter:
    """Renders ``<unit>.h`` and ``<unit>.c`` for units that declare natives."""

    def __init__(
        self,
        engine: TypeMappingEngine,
        *,
        stats_name: str = "natives",
        env: Optional[Environment] = None,
    ) -> None:
        self.engine = engine
        self.stats_name = stats_name
        self.macro_prefix = stats_macro_prefix(stats_name)
        self.env = env or create_environment()
        self.logger = get_logger("emitters.natives")

    def map_unit(self, unit: SourceUnit, structs: Mapping[str, StructMirror]) -> List[MethodMapping]:
        """Map every native of ``unit``; a MappingError aborts the target."""
        return [self.engine.map_method(method, structs) for method in unit.natives]

    def emit(
        self,
        unit: SourceUnit,
        mappings: List[MethodMapping],
    ) -> List[GeneratedFile]:
        if not mappings:
            return []
        name = unit_name(unit.class_name)
        functions = [self._function(unit, mapping) for mapping in mappings]
        registrations = [
            {
                "guard": native_function_name(mapping.method),
                "name": mapping.method.name,
                "descriptor": mapping.method.descriptor,
                "symbol": native_entry_point(mapping.method, unit.package),
            }
            for mapping in mappings
        ]
        struct_headers = sorted(
            {
                f"{unit_name(param.type.name)}_structs.h"
                for mapping in mappings
                for param in mapping.method.parameters
                if param.type.kind is TypeKind.STRUCT
            }
        )
        context = {
            "unit": name,
            "class_name": unit.class_name,
            "class_path": unit.qualified_name.replace(".", "/"),
            "include_guard": f"INC_{name.upper()}_H",
            "custom_header": f"{unit.class_name.upper()}_CUSTOM_HEADER",
            "stats_header": f"{self.stats_name}_stats.h",
            "struct_headers": struct_headers,
            "functions": functions,
            "registrations": registrations,
        }
        self.logger.debug("Rendering %d natives for %s", len(functions), unit.class_name)
        return [
            GeneratedFile(
                relative_path=f"{name}.h",
                content=render(self.env, "natives.h.j2", **context),
                metadata={"unit": unit.class_name, "kind": "natives"},
            ),
            GeneratedFile(
                relative_path=f"{name}.c",
                content=render(self.env, "natives.c.j2", **context),
                metadata={"unit": unit.class_name, "kind": "natives"},
            ),
        ]

    # ------------------------------------------------------------------
    # Function rendering

    def _function(self, unit: SourceUnit, mapping: MethodMapping) -> Dict[str, str]:
        method = mapping.method
        guard = native_function_name(method)
        symbol = native_entry_point(method, unit.package)
        result = mapping.result
        params = ", ".join(
            ["JNIEnv *env", "jclass that"]
            + [f"{item.abi_type} {param.arg}" for param, item in zip(method.parameters, mapping.parameters)]
        )
        prototype = f"JNIEXPORT {result.abi_type} JNICALL {symbol}\n\t({params})"

        code = CodeBuilder(depth=1)
        for item in mapping.parameters:
            if item.local_decl:
                code.line(item.local_decl)
        returns_value = result.semantic.kind is not TypeKind.VOID
        if returns_value:
            code.line(f"{result.abi_type} rc = 0;")

        func = f"{guard}_FUNC"
        code.line(f"{self.macro_prefix}_NATIVE_ENTER(env, that, {func});")
        acquired = mapping.acquiring
        for _, item in acquired:
            if item.marshal_in and not item.pinned:
                code.line(item.marshal_in)
        can_fail = any(item.marshal_in for _, item in acquired)
        for param in method.parameters:
            if param.length_param is None:
                continue
            count = method.parameters[param.length_param].arg
            code.line(f"if ({param.arg} && (*env)->GetArrayLength(env, {param.arg}) < {count}) goto fail;")
            can_fail = True
        # Nothing may call into the runtime between the critical acquire and release.
        for _, item in acquired:
            if item.marshal_in and item.pinned:
                code.line(item.marshal_in)

        code.fragment(method.fragments.pre_call)
        if method.fragments.body:
            code.fragment(method.fragments.body)
        else:
            self._call(code, mapping, returns_value)
        code.fragment(method.fragments.post_call)

        if can_fail:
            code.label("fail")
        for _, item in reversed(acquired):
            if item.release:
                code.line(item.release)
        code.line(f"{self.macro_prefix}_NATIVE_EXIT(env, that, {func});")
        if returns_value:
            code.line("return rc;")

        return {"guard": guard, "prototype": prototype, "body": code.render()}

    def _call(self, code: CodeBuilder, mapping: MethodMapping, returns_value: bool) -> None:
        method = mapping.method
        result = mapping.result
        args = ", ".join(item.call_arg for item in mapping.parameters)

        if method.has_flag(MethodFlag.DYNAMIC):
            code.line("{")
            code.indent()
            code.line(f"LOAD_FUNCTION(fp, {method.accessor})")
            with code.block("if (fp) {"):
                self._assign(code, result, f"(({self._pointer_type(mapping)})fp)({args})", returns_value, method)
            code.dedent()
            code.line("}")
            return
        self._assign(code, result, f"{method.accessor}({args})", returns_value, method)

    @staticmethod
    def _assign(
        code: CodeBuilder,
        result: TypeMapping,
        call: str,
        returns_value: bool,
        method: NativeMethod,
    ) -> None:
        if not returns_value:
            code.line(f"{call};")
            return
        value = f"({result.c_type}){call}" if method.cast else call
        code.line(f"rc = {result.marshal_out.replace('{value}', value)};")

    @staticmethod
    def _pointer_type(mapping: MethodMapping) -> str:
        params = ", ".join(item.c_type for item in mapping.parameters) or "void"
        return f"{mapping.result.c_type} (CALLING_CONVENTION*)({params})"


__all__ = [
    "NativesEmitter",
    "native_entry_point",
    "native_function_name",
    "stats_macro_prefix",
    "unit_name",
]

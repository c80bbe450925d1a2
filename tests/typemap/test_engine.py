"""Tests for the type mapping engine."""

from __future__ import annotations

from pathlib import Path

import pytest

from jnigen.errors import ConfigurationError, MappingError
from jnigen.flags import FieldFlag, MethodFlag, Ownership, ParamFlag
from jnigen.models import (
    VOID,
    GenerationTarget,
    Identity,
    NativeMethod,
    ParameterDescriptor,
    SemanticType,
    SourcePosition,
    StructField,
    StructMirror,
    TypeKind,
)
from jnigen.typemap import (
    DISCIPLINE_COPY,
    DISCIPLINE_PINNED,
    DISCIPLINE_VALUE,
    TypeMappingEngine,
    builtin_rules,
)

POSITION = SourcePosition(Path("OS.java"), 1)
INT = SemanticType(TypeKind.PRIMITIVE, "int")
INT_ARRAY = SemanticType(TypeKind.ARRAY, "int", 1)
STRING = SemanticType(TypeKind.STRING, "String", 0, "java/lang/String")
HANDLE = SemanticType(TypeKind.HANDLE, "long")
CALLBACK = SemanticType(TypeKind.CALLBACK, "long")


def _target(word_size: int = 64) -> GenerationTarget:
    return GenerationTarget("gtk", Path("out"), Path("src"), word_size=word_size)


def _param(index: int, name: str, semantic: SemanticType, **kwargs) -> ParameterDescriptor:  # type: ignore[no-untyped-def]
    return ParameterDescriptor(index=index, name=name, type=semantic, **kwargs)


def _method(*params: ParameterDescriptor, result: SemanticType = VOID, flags=(), cast=None) -> NativeMethod:  # type: ignore[no-untyped-def]
    signature = "".join(param.type.descriptor for param in params)
    return NativeMethod(
        identity=Identity("OS", "call", signature),
        parameters=tuple(params),
        return_type=result,
        flags=frozenset(flags),
        accessor="call",
        position=POSITION,
        cast=cast,
    )


def _struct(*fields: StructField) -> StructMirror:
    return StructMirror(
        identity=Identity("Rect", "", kind="struct"),
        qualified="org/example/Rect",
        fields=tuple(fields),
        native_name="GdkRect",
        position=POSITION,
    )


def _field(name: str, semantic: SemanticType, **kwargs) -> StructField:  # type: ignore[no-untyped-def]
    return StructField(
        identity=Identity("Rect", name, kind="field"),
        type=semantic,
        accessor=name,
        position=POSITION,
        **kwargs,
    )


def test_rule_set_missing_required_key_is_rejected() -> None:
    rules = [rule for rule in builtin_rules() if rule.key != "double[]"]

    with pytest.raises(ConfigurationError, match="double\\[\\]"):
        TypeMappingEngine(_target(), rules)


def test_unsupported_word_size_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="word size 16"):
        TypeMappingEngine(_target(16))


def test_primitive_maps_by_value() -> None:
    engine = TypeMappingEngine(_target())
    mapping = engine.map_method(_method(_param(0, "count", INT), result=INT), {})

    param = mapping.parameters[0]
    assert param.abi_type == "jint"
    assert param.descriptor == "I"
    assert param.discipline == DISCIPLINE_VALUE
    assert param.call_arg == "arg0"
    assert not param.acquires
    assert mapping.result.marshal_out == "(jint){value}"


def test_array_copy_and_pinned_disciplines() -> None:
    engine = TypeMappingEngine(_target())
    copied = engine.map_method(_method(_param(0, "values", INT_ARRAY)), {}).parameters[0]
    pinned = engine.map_method(
        _method(_param(0, "values", INT_ARRAY, ownership=Ownership.PINNED)), {}
    ).parameters[0]
    critical = engine.map_method(
        _method(_param(0, "values", INT_ARRAY), flags=[MethodFlag.CRITICAL]), {}
    ).parameters[0]

    assert copied.discipline == DISCIPLINE_COPY
    assert "GetIntArrayElements(env, arg0, NULL)" in copied.marshal_in
    assert copied.release.endswith("ReleaseIntArrayElements(env, arg0, lparg0, 0);")
    assert copied.local_decl == "jint *lparg0=NULL;"
    assert copied.call_arg == "lparg0"
    assert pinned.discipline == DISCIPLINE_PINNED
    assert "GetPrimitiveArrayCritical" in pinned.marshal_in
    assert critical.discipline == DISCIPLINE_PINNED


def test_borrowed_array_releases_without_copy_back() -> None:
    engine = TypeMappingEngine(_target())
    mapping = engine.map_method(
        _method(_param(0, "values", INT_ARRAY, ownership=Ownership.BORROWED)), {}
    ).parameters[0]

    assert mapping.release.endswith("lparg0, JNI_ABORT);")


def test_string_parameter_and_return() -> None:
    engine = TypeMappingEngine(_target())
    mapping = engine.map_method(
        _method(_param(0, "name", STRING, ownership=Ownership.BORROWED), result=STRING), {}
    )

    param = mapping.parameters[0]
    assert "GetStringUTFChars" in param.marshal_in
    assert "ReleaseStringUTFChars(env, arg0, lparg0)" in param.release
    assert mapping.result.abi_type == "jstring"
    assert mapping.result.marshal_out == "(*env)->NewStringUTF(env, (const char *){value})"


def test_handle_uses_pointer_cast() -> None:
    engine = TypeMappingEngine(_target())
    mapping = engine.map_method(
        _method(_param(0, "widget", HANDLE, cast="(GtkWidget *)"), result=HANDLE), {}
    )

    assert mapping.parameters[0].call_arg == "(GtkWidget *)(intptr_t)arg0"
    assert mapping.parameters[0].c_type == "GtkWidget *"
    assert mapping.result.marshal_out == "(jlong)(intptr_t){value}"


def test_struct_parameter_uses_mirror_helpers() -> None:
    engine = TypeMappingEngine(_target())
    mirror = _struct(_field("x", INT))
    rect = SemanticType(TypeKind.STRUCT, "Rect", 0, "org/example/Rect")

    mapping = engine.map_method(_method(_param(0, "rect", rect)), {"Rect": mirror}).parameters[0]
    no_in = engine.map_method(
        _method(_param(0, "rect", rect, flags=frozenset({ParamFlag.NO_IN}))), {"Rect": mirror}
    ).parameters[0]

    assert mapping.descriptor == "Lorg/example/Rect;"
    assert mapping.local_decl == "GdkRect _arg0, *lparg0=NULL;"
    assert "getRectFields(env, arg0, &_arg0)" in mapping.marshal_in
    assert "setRectFields(env, arg0, lparg0)" in mapping.release
    assert "getRectFields" not in no_in.marshal_in


def test_struct_without_mirror_is_a_mapping_error() -> None:
    engine = TypeMappingEngine(_target())
    rect = SemanticType(TypeKind.STRUCT, "Rect", 0, "org/example/Rect")

    with pytest.raises(MappingError, match="struct mirror 'Rect'"):
        engine.map_method(_method(_param(0, "rect", rect)), {})


@pytest.mark.parametrize(
    "semantic",
    [
        SemanticType(TypeKind.OBJECT, "Object", 0, "java/lang/Object"),
        SemanticType(TypeKind.ARRAY, "String", 1, "java/lang/String"),
    ],
)
def test_unmapped_types_name_the_declaration(semantic: SemanticType) -> None:
    engine = TypeMappingEngine(_target())

    with pytest.raises(MappingError) as excinfo:
        engine.map_method(_method(_param(0, "value", semantic)), {})

    assert excinfo.value.identity is not None
    assert excinfo.value.identity.startswith("OS.call(")


def test_arrays_cannot_be_returned() -> None:
    engine = TypeMappingEngine(_target())

    with pytest.raises(MappingError, match="cannot be returned"):
        engine.map_method(_method(result=INT_ARRAY), {})


def test_critical_with_callback_is_rejected() -> None:
    engine = TypeMappingEngine(_target())
    method = _method(
        _param(0, "values", INT_ARRAY, ownership=Ownership.PINNED),
        _param(1, "proc", CALLBACK),
    )

    with pytest.raises(MappingError, match="callback parameter\\(s\\): proc"):
        engine.map_method(method, {})


def test_const_return_prefixes_c_type() -> None:
    engine = TypeMappingEngine(_target())
    mapping = engine.map_method(_method(result=HANDLE, flags=[MethodFlag.CONST], cast="(char *)"), {})

    assert mapping.result.c_type == "const char *"


@pytest.mark.parametrize("word_size, size, handle_offset", [(32, 8, 4), (64, 16, 8)])
def test_struct_layout_follows_pointer_size(word_size: int, size: int, handle_offset: int) -> None:
    engine = TypeMappingEngine(_target(word_size))
    layout = engine.layout(_struct(_field("x", INT), _field("window", HANDLE)))

    offsets = {item.field.name: item.offset for item in layout.fields}
    assert offsets == {"x": 0, "window": handle_offset}
    assert layout.size == size
    assert layout.alignment == word_size // 8


def test_layout_skips_fields_of_other_platforms_and_honors_offsets() -> None:
    engine = TypeMappingEngine(_target())
    layout = engine.layout(
        _struct(
            _field("x", INT),
            _field("hwnd", HANDLE, platforms=("win32",)),
            _field("y", INT, offset=12),
            _field("skip", INT, flags=frozenset({FieldFlag.NO_SET})),
        )
    )

    assert [(item.field.name, item.offset) for item in layout.fields] == [("x", 0), ("y", 12), ("skip", 16)]
    assert layout.size == 20


def test_array_fields_are_rejected() -> None:
    engine = TypeMappingEngine(_target())

    with pytest.raises(MappingError, match="not supported as a struct field"):
        engine.layout(_struct(_field("values", INT_ARRAY)))

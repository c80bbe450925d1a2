"""Tests for JNI entry point emission."""

from __future__ import annotations

from typing import Dict, Optional

import pytest

from jnigen.emitters import NativesEmitter
from jnigen.errors import MappingError
from jnigen.typemap import TypeMappingEngine


def _emit(source_tree, body: str, metadata: Optional[str] = None, stats_name: str = "natives") -> Dict[str, str]:  # type: ignore[no-untyped-def]
    source_tree.java("org/example/OS.java", f"package org.example;\n\npublic class OS {{\n{body}\n}}\n")
    meta_path = source_tree.metadata(metadata) if metadata else None
    model = source_tree.model(meta_path)
    engine = TypeMappingEngine(source_tree.target())
    emitter = NativesEmitter(engine, stats_name=stats_name)
    unit = next(unit for unit in model.units if unit.class_name == "OS")
    structs = {struct.name: struct for struct in model.structs() if struct.generated}
    return {item.relative_path: item.content for item in emitter.emit(unit, emitter.map_unit(unit, structs))}


SUM_FUNCTION = """\
#ifndef NO_OS_sum
JNIEXPORT jint JNICALL Java_org_example_OS_sum
\t(JNIEnv *env, jclass that, jintArray arg0)
{
\tjint *lparg0=NULL;
\tjint rc = 0;
\tNATIVES_NATIVE_ENTER(env, that, OS_sum_FUNC);
\tif (arg0) if ((lparg0 = (*env)->GetIntArrayElements(env, arg0, NULL)) == NULL) goto fail;
\trc = (jint)sum(lparg0);
fail:
\tif (arg0 && lparg0) (*env)->ReleaseIntArrayElements(env, arg0, lparg0, 0);
\tNATIVES_NATIVE_EXIT(env, that, OS_sum_FUNC);
\treturn rc;
}
#endif
"""


def test_emits_header_and_source_per_unit(source_tree) -> None:
    files = _emit(source_tree, "    public static native int sum(int[] values);\n    public static native void clear();")

    assert sorted(files) == ["os.c", "os.h"]
    source = files["os.c"]
    assert SUM_FUNCTION in source
    assert source.startswith("/* Generated by jnigen. Do not edit. */\n#include \"os.h\"\n#include \"natives_stats.h\"\n")
    clear = source[source.index("#ifndef NO_OS_clear"):]
    assert "fail:" not in clear.split("#endif")[0]
    assert "\tclear();\n" in clear

    header = files["os.h"]
    assert "#ifndef INC_OS_H" in header
    assert "#ifdef OS_CUSTOM_HEADER\n#include OS_CUSTOM_HEADER\n#endif" in header
    assert "#ifndef NO_OS_sum\nJNIEXPORT jint JNICALL Java_org_example_OS_sum\n\t(JNIEnv *env, jclass that, jintArray arg0);\n#endif" in header
    assert "jint OS_register(JNIEnv *env);" in header


def test_registration_table_is_null_terminated(source_tree) -> None:
    source = _emit(source_tree, "    public static native int sum(int[] values);\n    public static native void clear();")["os.c"]

    table = source[source.index("static JNINativeMethod OS_methods[] = {"):]
    assert '\t{"sum", "([I)I", (void *)Java_org_example_OS_sum},' in table
    assert '\t{"clear", "()V", (void *)Java_org_example_OS_clear},' in table
    assert "\t{NULL, NULL, NULL}\n};" in table
    assert '(*env)->FindClass(env, "org/example/OS");' in table
    assert "RegisterNatives(env, clazz, OS_methods, count)" in table


def test_releases_run_in_reverse_acquisition_order(source_tree) -> None:
    source = _emit(source_tree, "    public static native void copy(int[] a, byte[] b, String c);")["os.c"]

    order = [
        "GetIntArrayElements",
        "GetByteArrayElements",
        "GetStringUTFChars",
        "copy(lparg0, lparg1, lparg2);",
        "fail:",
        "ReleaseStringUTFChars(env, arg2, lparg2);",
        "ReleaseByteArrayElements(env, arg1, lparg1, 0);",
        "ReleaseIntArrayElements(env, arg0, lparg0, 0);",
        "NATIVES_NATIVE_EXIT",
    ]
    positions = [source.index(marker) for marker in order]
    assert positions == sorted(positions)
    # Early exits jump to the same label, so both paths share one release sequence.
    assert source.count("goto fail;") == 3
    assert source.count("ReleaseIntArrayElements") == 1


def test_dynamic_call_loads_function_pointer(source_tree) -> None:
    source = _emit(
        source_tree,
        "    /** @method flags=dynamic */\n    public static native long gtk_window_new(int type);",
        stats_name="os-natives",
    )["os.c"]

    expected = (
        "\tjlong rc = 0;\n"
        "\tOS_NATIVES_NATIVE_ENTER(env, that, OS_gtk_1window_1new_FUNC);\n"
        "\t{\n"
        "\t\tLOAD_FUNCTION(fp, gtk_window_new)\n"
        "\t\tif (fp) {\n"
        "\t\t\trc = (jlong)((jlong (CALLING_CONVENTION*)(jint))fp)(arg0);\n"
        "\t\t}\n"
        "\t}\n"
        "\tOS_NATIVES_NATIVE_EXIT(env, that, OS_gtk_1window_1new_FUNC);\n"
        "\treturn rc;\n"
    )
    assert expected in source
    assert "fail:" not in source
    assert '#include "os-natives_stats.h"' in source


def test_overloads_use_signature_suffixed_names(source_tree) -> None:
    source = _emit(
        source_tree,
        "    public static native void draw(long handle);\n    public static native void draw(long handle, int[] points);",
    )["os.c"]

    assert "#ifndef NO_OS_draw__J\nJNIEXPORT void JNICALL Java_org_example_OS_draw__J\n" in source
    assert "#ifndef NO_OS_draw__J_3I\nJNIEXPORT void JNICALL Java_org_example_OS_draw__J_3I\n" in source
    assert '{"draw", "(J[I)V", (void *)Java_org_example_OS_draw__J_3I},' in source


def test_length_checks_and_handle_casts(source_tree) -> None:
    source = _emit(
        source_tree,
        "    /**\n"
        "     * @param widget cast=(GtkWidget *)\n"
        "     * @param values length=count\n"
        "     */\n"
        "    public static native void fill(long widget, int[] values, int count);",
    )["os.c"]

    assert "\tif (arg1 && (*env)->GetArrayLength(env, arg1) < arg2) goto fail;\n" in source
    assert "\tfill((GtkWidget *)(intptr_t)arg0, lparg1, arg2);\n" in source
    assert "fail:" in source


def test_metadata_fragments_surround_or_replace_the_call(source_tree) -> None:
    source = _emit(
        source_tree,
        "    public static native int lock();\n    public static native int peek(int[] values);",
        metadata="""
        OS:
          methods:
            lock:
              pre_call: "gdk_threads_enter();"
              post_call: "gdk_threads_leave();"
              cast: "(gint)"
            peek:
              body: "rc = lparg0 ? lparg0[0] : -1;"
        """,
    )["os.c"]

    lock = source[source.index("#ifndef NO_OS_lock"):source.index("#ifndef NO_OS_peek")]
    assert "\tgdk_threads_enter();\n\trc = (jint)(gint)lock();\n\tgdk_threads_leave();\n" in lock
    peek = source[source.index("#ifndef NO_OS_peek"):]
    assert "\trc = lparg0 ? lparg0[0] : -1;\nfail:\n" in peek
    assert "peek(lparg0)" not in peek


def test_struct_parameters_include_mirror_headers(source_tree) -> None:
    source_tree.java(
        "org/example/GdkPoint.java",
        "package org.example;\n/** @struct */\npublic class GdkPoint { public int x, y; }\n",
    )
    source = _emit(source_tree, "    public static native void move(GdkPoint point);")["os.c"]

    assert '#include "gdkpoint_structs.h"' in source
    assert "GdkPoint _arg0, *lparg0=NULL;" in source
    assert "if (arg0 && lparg0) setGdkPointFields(env, arg0, lparg0);" in source


def test_unmappable_parameter_fails_the_unit(source_tree) -> None:
    with pytest.raises(MappingError, match="no type mapping for 'Object'"):
        _emit(source_tree, "    public static native void post(Object value);")


def test_critical_arrays_are_pinned_after_other_runtime_calls(source_tree) -> None:
    source = _emit(
        source_tree,
        "    /**\n"
        "     * @method flags=critical\n"
        "     * @param values length=count\n"
        "     */\n"
        "    public static native void fill(int[] values, String label, int count);",
    )["os.c"]

    order = [
        "GetStringUTFChars(env, arg1, NULL)",
        "GetArrayLength(env, arg0) < arg2",
        "GetPrimitiveArrayCritical(env, arg0, NULL)",
        "fill(lparg0, lparg1, arg2);",
        "fail:",
        "ReleasePrimitiveArrayCritical(env, arg0, lparg0, 0);",
        "ReleaseStringUTFChars(env, arg1, lparg1);",
        "NATIVES_NATIVE_EXIT",
    ]
    positions = [source.index(marker) for marker in order]
    assert positions == sorted(positions)


def test_critical_method_cannot_return_a_string(source_tree) -> None:
    with pytest.raises(MappingError, match="needs the runtime while arrays are pinned"):
        _emit(source_tree, "    /** @method flags=critical */\n    public static native String name(byte[] data);")

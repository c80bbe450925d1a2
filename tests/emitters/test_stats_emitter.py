"""Tests for the native call statistics emitter."""

from __future__ import annotations

import json

from jnigen.emitters import StatsEmitter, stats_file_names
from jnigen.models import SourceModel
from jnigen.stores import StatsTable

OS_SOURCE = """
package org.example;

public class OS {
    public static native int sum(int[] values);
    public static native void clear();
}
"""


def test_file_names_follow_stats_name() -> None:
    assert stats_file_names("os") == {"header": "os_stats.h", "source": "os_stats.c", "table": "os_stats.json"}


def test_indices_follow_declaration_order(source_tree) -> None:
    source_tree.java("org/example/OS.java", OS_SOURCE)
    files = {item.relative_path: item.content for item in StatsEmitter().emit(source_tree.model(), StatsTable())}

    assert sorted(files) == ["natives_stats.c", "natives_stats.h", "natives_stats.json"]
    header = files["natives_stats.h"]
    assert "\tOS_sum_FUNC = 0,\n\tOS_clear_FUNC = 1,\n\tNATIVES_FUNC_COUNT = 2\n} NATIVES_FUNCS;" in header
    assert "#define NATIVES_NATIVE_ENTER(env, that, func) NATIVES_nativeFunctionCallCount[func]++;" in header
    source = files["natives_stats.c"]
    assert "int NATIVES_nativeFunctionCount = 2;" in source
    assert "int NATIVES_nativeFunctionCallCount[2];" in source
    assert '\t[0] = "OS_sum",\n\t[1] = "OS_clear",\n' in source
    assert json.loads(files["natives_stats.json"])["entries"] == {"OS.sum([I)": 0, "OS.clear()": 1}


def test_retired_entries_keep_their_slots(source_tree) -> None:
    source_tree.java("org/example/OS.java", OS_SOURCE)
    table = StatsTable({"OS.clear()": 0, "OS.removed(I)": 1})

    files = {item.relative_path: item.content for item in StatsEmitter("os").emit(source_tree.model(), table)}

    header = files["os_stats.h"]
    assert "\tOS_sum_FUNC = 2,\n\tOS_clear_FUNC = 0,\n\tOS_FUNC_COUNT = 3\n} OS_FUNCS;" in header
    assert "removed" not in header
    assert "int OS_nativeFunctionCallCount[3];" in files["os_stats.c"]
    assert json.loads(files["os_stats.json"])["entries"] == {"OS.clear()": 0, "OS.removed(I)": 1, "OS.sum([I)": 2}


def test_empty_model_still_declares_one_slot() -> None:
    files = {item.relative_path: item.content for item in StatsEmitter().emit(SourceModel(units=()), StatsTable())}

    source = files["natives_stats.c"]
    assert "int NATIVES_nativeFunctionCount = 0;" in source
    assert "int NATIVES_nativeFunctionCallCount[1];" in source
    assert "\tNATIVES_FUNC_COUNT = 0\n" in files["natives_stats.h"]

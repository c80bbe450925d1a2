"""Tests for doc-comment directive parsing."""

from __future__ import annotations

from pathlib import Path

import pytest

from jnigen.errors import ParseError
from jnigen.flags import FieldFlag, MethodFlag, Ownership, ParamFlag, StructFlag
from jnigen.source import parse_comment

PATH = Path("org/example/OS.java")


def test_method_and_param_directives() -> None:
    comment = """/**
     * Draws the widget.
     * @method flags=dynamic const,cast=(GtkWidget *)
     * @param widget cast=(GtkWidget *),flags=critical
     * @param proc flags=callback
     * @param count the number of items
     */"""

    directives = parse_comment(comment, PATH, 10)

    assert directives.method is not None
    assert directives.method.flags == frozenset({MethodFlag.DYNAMIC, MethodFlag.CONST})
    assert directives.method.cast == "(GtkWidget *)"
    widget = directives.param("widget")
    assert widget.cast == "(GtkWidget *)"
    assert widget.ownership is Ownership.PINNED
    assert directives.param("proc").flags == frozenset({ParamFlag.CALLBACK})
    assert "count" not in directives.params


def test_field_and_struct_directives() -> None:
    field = parse_comment("/** @field platform=gtk cocoa,offset=0x10,flags=no_set */", PATH, 3).field
    struct = parse_comment("/** @struct accessor=struct _GdkRect,flags=no_gen */", PATH, 1).struct

    assert field is not None
    assert field.platforms == ("gtk", "cocoa")
    assert field.offset == 16
    assert field.flags == frozenset({FieldFlag.NO_SET})
    assert struct is not None
    assert struct.accessor == "struct _GdkRect"
    assert struct.flags == frozenset({StructFlag.NO_GEN})
    assert struct.tagged


def test_bare_struct_tag_marks_a_mirror() -> None:
    struct = parse_comment("/**\n * Rectangle.\n * @struct\n */", PATH, 1).struct

    assert struct is not None and struct.tagged and not struct.flags


def test_plain_comments_carry_no_directives() -> None:
    assert parse_comment("/* @method flags=dynamic */", PATH, 1).method is None
    assert parse_comment(None, PATH, 1).method is None


def test_param_ownership_words() -> None:
    directives = parse_comment("/** @param data flags=no_out,length=count */", PATH, 1)

    assert directives.param("data").ownership is Ownership.BORROWED
    assert directives.param("data").length == "count"


@pytest.mark.parametrize(
    "comment, line, message",
    [
        ("/**\n * @method flags=fast\n */", 6, "unknown MethodFlag 'fast'"),
        ("/**\n *\n * @method colour=red\n */", 7, "unknown @method directive 'colour'"),
        ("/** @param data flags=critical no_out */", 5, "conflicting ownership"),
        ("/** @field offset=ten */", 5, "offset must be an integer"),
        ("/** @method cast=(int),cast=(long) */", 5, "duplicate @method directive 'cast'"),
    ],
)
def test_invalid_directives_raise_with_line(comment: str, line: int, message: str) -> None:
    with pytest.raises(ParseError, match=message) as excinfo:
        parse_comment(comment, PATH, 5)

    assert excinfo.value.line == line
    assert excinfo.value.path == PATH

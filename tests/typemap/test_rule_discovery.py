"""Tests for type-mapping rule plugins discovered through entry points."""

from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

import jnigen.typemap as typemap
from jnigen.errors import ConfigurationError
from jnigen.models import GenerationTarget
from jnigen.typemap import MappingRule, TypeMappingEngine, builtin_rules, discover_rules

STRING_ARRAY = MappingRule(
    key="String[]",
    abi_type="jobjectArray",
    descriptor="[Ljava/lang/String;",
    c_type="char **",
    returnable=False,
    field_allowed=False,
)


class _FakeEntryPoint:
    def __init__(self, name: str, value: object) -> None:
        self.name = name
        self._value = value

    def load(self) -> object:
        if isinstance(self._value, Exception):
            raise self._value
        return self._value


def _install(monkeypatch: pytest.MonkeyPatch, *entries: _FakeEntryPoint) -> None:
    monkeypatch.setattr(typemap, "_iter_entry_points", lambda: list(entries))


def test_without_plugins_only_builtin_rules_are_returned(monkeypatch: pytest.MonkeyPatch) -> None:
    _install(monkeypatch)

    assert [rule.key for rule in discover_rules()] == [rule.key for rule in builtin_rules()]


def test_plugin_rules_are_appended_after_builtins(monkeypatch: pytest.MonkeyPatch) -> None:
    def factory() -> List[MappingRule]:
        return [STRING_ARRAY]

    _install(monkeypatch, _FakeEntryPoint("single", STRING_ARRAY), _FakeEntryPoint("factory", factory))

    rules = discover_rules()

    assert [rule.key for rule in rules[-2:]] == ["String[]", "String[]"]
    engine = TypeMappingEngine(GenerationTarget("gtk", Path("out"), Path("src")), rules)
    assert "String[]" in engine.keys


def test_plugin_may_replace_a_builtin_rule(monkeypatch: pytest.MonkeyPatch) -> None:
    wide = MappingRule(key="char", abi_type="jchar", descriptor="C", c_type="wchar_t", size=4, alignment=4)
    _install(monkeypatch, _FakeEntryPoint("wide", wide))

    engine = TypeMappingEngine(GenerationTarget("gtk", Path("out"), Path("src")), discover_rules())

    assert engine._rules["char"].c_type == "wchar_t"


@pytest.mark.parametrize(
    "value, message",
    [
        (ImportError("no module named plugin"), "Failed to load"),
        ("not a rule", "must provide MappingRule instances"),
    ],
)
def test_broken_plugins_raise_configuration_error(
    monkeypatch: pytest.MonkeyPatch, value: object, message: str
) -> None:
    _install(monkeypatch, _FakeEntryPoint("broken", value))

    with pytest.raises(ConfigurationError, match=message):
        discover_rules()

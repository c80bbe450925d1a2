"""Built-in type-mapping rules.

Each rule maps a semantic type key (``int``, ``int[]``, ``String``, ``struct``,
``handle``, ``callback``, ...) to its JNI representation and the C templates used
to marshal it. Templates are ``str.format`` strings; the placeholders are
``{arg}`` (JNI argument), ``{local}`` (acquired native buffer), ``{cast}``
(parameter cast, possibly empty), ``{mode}`` (array release mode), ``{struct}``
(struct mirror name), ``{native}`` (native struct type), ``{abi}`` (JNI type)
and ``{value}`` (native call result).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from ..models import PRIMITIVES

# Keys every rule set must cover; checked when the engine is constructed.
REQUIRED_KEYS: Tuple[str, ...] = (
    ("void",)
    + PRIMITIVES
    + tuple(f"{name}[]" for name in PRIMITIVES)
    + ("String", "struct", "handle", "callback")
)

_PRIMITIVE_SIZES = {
    "boolean": 1,
    "byte": 1,
    "char": 2,
    "short": 2,
    "int": 4,
    "long": 8,
    "float": 4,
    "double": 8,
}


@dataclass(frozen=True)
class MappingRule:
    """Mapping of one semantic type key to the native ABI.

    ``size``/``alignment`` of 0 mean pointer-sized: the engine substitutes the
    target's word size.
    """

    key: str
    abi_type: str
    descriptor: str
    c_type: str
    marshal_in: str = ""
    release: str = ""
    pinned_in: str = ""
    pinned_release: str = ""
    no_in: str = ""
    local_decl: str = ""
    call_arg: str = "{cast}{arg}"
    marshal_out: str = "({abi}){value}"
    field_accessor: str = ""
    size: int = 0
    alignment: int = 0
    returnable: bool = True
    field_allowed: bool = True

    @property
    def pointer_sized(self) -> bool:
        return self.size == 0


def _jni_name(primitive: str) -> str:
    return primitive.capitalize()


def _primitive_rule(name: str) -> MappingRule:
    size = _PRIMITIVE_SIZES[name]
    abi = f"j{name}"
    return MappingRule(
        key=name,
        abi_type=abi,
        descriptor={"boolean": "Z", "long": "J"}.get(name, name[0].upper()),
        c_type=abi,
        field_accessor=_jni_name(name),
        size=size,
        alignment=size,
    )


def _array_rule(name: str) -> MappingRule:
    jni = _jni_name(name)
    element = f"j{name}"
    return MappingRule(
        key=f"{name}[]",
        abi_type=f"j{name}Array",
        descriptor="[" + _primitive_rule(name).descriptor,
        c_type=f"{element} *",
        local_decl=f"{element} *{{local}}=NULL;",
        marshal_in=(
            f"if ({{arg}}) if (({{local}} = (*env)->Get{jni}ArrayElements(env, {{arg}}, NULL)) == NULL) goto fail;"
        ),
        release=(
            f"if ({{arg}} && {{local}}) (*env)->Release{jni}ArrayElements(env, {{arg}}, {{local}}, {{mode}});"
        ),
        pinned_in=(
            "if ({arg}) if (({local} = (*env)->GetPrimitiveArrayCritical(env, {arg}, NULL)) == NULL) goto fail;"
        ),
        pinned_release=(
            "if ({arg} && {local}) (*env)->ReleasePrimitiveArrayCritical(env, {arg}, {local}, {mode});"
        ),
        call_arg="{cast}{local}",
        returnable=False,
        field_allowed=False,
    )


def builtin_rules() -> List[MappingRule]:
    """Return the default rule set covering every required key."""
    rules: List[MappingRule] = [
        MappingRule(
            key="void",
            abi_type="void",
            descriptor="V",
            c_type="void",
            marshal_out="",
            field_allowed=False,
        )
    ]
    rules.extend(_primitive_rule(name) for name in PRIMITIVES)
    rules.extend(_array_rule(name) for name in PRIMITIVES)
    rules.append(
        MappingRule(
            key="String",
            abi_type="jstring",
            descriptor="Ljava/lang/String;",
            c_type="const char *",
            local_decl="const char *{local}=NULL;",
            marshal_in="if ({arg}) if (({local} = (*env)->GetStringUTFChars(env, {arg}, NULL)) == NULL) goto fail;",
            release="if ({arg} && {local}) (*env)->ReleaseStringUTFChars(env, {arg}, {local});",
            call_arg="{cast}{local}",
            marshal_out="(*env)->NewStringUTF(env, (const char *){value})",
            field_allowed=False,
        )
    )
    rules.append(
        MappingRule(
            key="struct",
            abi_type="jobject",
            descriptor="L{qualified};",
            c_type="{native} *",
            local_decl="{native} _{arg}, *{local}=NULL;",
            marshal_in="if ({arg}) if (({local} = get{struct}Fields(env, {arg}, &_{arg})) == NULL) goto fail;",
            no_in="if ({arg}) if (({local} = &_{arg}) == NULL) goto fail;",
            release="if ({arg} && {local}) set{struct}Fields(env, {arg}, {local});",
            call_arg="{cast}{local}",
            returnable=False,
            field_allowed=False,
        )
    )
    rules.append(
        MappingRule(
            key="handle",
            abi_type="jlong",
            descriptor="J",
            c_type="void *",
            call_arg="{cast}(intptr_t){arg}",
            marshal_out="(jlong)(intptr_t){value}",
            field_accessor="Long",
        )
    )
    rules.append(
        MappingRule(
            key="callback",
            abi_type="jlong",
            descriptor="J",
            c_type="void *",
            call_arg="{cast}(intptr_t){arg}",
            marshal_out="(jlong)(intptr_t){value}",
            field_accessor="Long",
        )
    )
    return rules


__all__ = ["MappingRule", "REQUIRED_KEYS", "builtin_rules"]

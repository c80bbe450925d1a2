"""JNI short and long native symbol names.

Escapes follow the JNI naming rule: ``/`` (and ``.``) become ``_``, ``_``
becomes ``_1``, ``;`` becomes ``_2``, ``[`` becomes ``_3`` and every other
character outside ``[A-Za-z0-9]`` becomes ``_0xxxx`` with the lower-case hex
value of its UTF-16 code unit(s).
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

_ESCAPES = {"_": "_1", ";": "_2", "[": "_3"}
_UNESCAPES = {"1": "_", "2": ";", "3": "["}
_ENTRY_PREFIX = "Java_"
_HEX = re.compile(r"[0-9a-f]{4}")


def mangle(name: str) -> str:
    """Escape a class, method or descriptor fragment for use in a C symbol."""
    out = []
    for char in name:
        if char in "./":
            out.append("_")
        elif char in _ESCAPES:
            out.append(_ESCAPES[char])
        elif char.isascii() and char.isalnum():
            out.append(char)
        else:
            encoded = char.encode("utf-16-be")
            for offset in range(0, len(encoded), 2):
                unit = int.from_bytes(encoded[offset:offset + 2], "big")
                out.append(f"_0{unit:04x}")
    return "".join(out)


def demangle(symbol: str) -> str:
    """Reverse :func:`mangle`; plain ``_`` separators come back as ``/``."""
    units = []
    index = 0
    while index < len(symbol):
        char = symbol[index]
        if char != "_":
            units.append(ord(char))
            index += 1
            continue
        code = symbol[index + 1:index + 2]
        if code in _UNESCAPES:
            units.append(ord(_UNESCAPES[code]))
            index += 2
        elif code == "0" and _HEX.fullmatch(symbol[index + 2:index + 6]):
            units.append(int(symbol[index + 2:index + 6], 16))
            index += 6
        else:
            units.append(ord("/"))
            index += 1
    raw = b"".join(unit.to_bytes(2, "big") for unit in units)
    return raw.decode("utf-16-be", errors="surrogatepass")


def parameter_signature(descriptor: str) -> str:
    """The part of a method descriptor between the parentheses."""
    if descriptor.startswith("("):
        return descriptor[1:descriptor.index(")")]
    return descriptor


def entry_point(class_name: str, method_name: str, signature: Optional[str] = None) -> str:
    """Return the JNI entry point; ``signature`` selects the overloaded form."""
    symbol = f"{_ENTRY_PREFIX}{mangle(class_name)}_{mangle(method_name)}"
    if signature is not None:
        symbol += f"__{mangle(signature)}"
    return symbol


def function_name(class_name: str, method_name: str, signature: Optional[str] = None) -> str:
    """Package-free native name used for ``NO_`` guards and stats symbols."""
    name = f"{mangle(class_name)}_{mangle(method_name)}"
    if signature is not None:
        name += f"__{mangle(signature)}"
    return name


def split_entry_point(symbol: str) -> Tuple[str, str, Optional[str]]:
    """Split ``Java_<class>_<method>[__<sig>]`` into demangled parts.

    Since ``_`` alone separates package segments, the last lone ``_`` before
    the method separates class from method.
    """
    if not symbol.startswith(_ENTRY_PREFIX):
        raise ValueError(f"not a JNI entry point: {symbol}")
    body = symbol[len(_ENTRY_PREFIX):]
    signature: Optional[str] = None
    overload = _find_separator(body, double=True)
    if overload is not None:
        body, signature = body[:overload], demangle(body[overload + 2:])
    split = _find_separator(body, double=False, last=True)
    if split is None:
        raise ValueError(f"not a JNI entry point: {symbol}")
    return demangle(body[:split]).replace("/", "."), demangle(body[split + 1:]), signature


def _find_separator(text: str, *, double: bool, last: bool = False) -> Optional[int]:
    found: Optional[int] = None
    index = 0
    while index < len(text):
        if text[index] != "_":
            index += 1
            continue
        following = text[index + 1:index + 2]
        if following in _UNESCAPES:
            index += 2
        elif following == "0" and _HEX.fullmatch(text[index + 2:index + 6]):
            index += 6
        elif double and following == "_":
            return index
        elif not double:
            found = index
            if not last:
                return index
            index += 1
        else:
            index += 1
    return found


__all__ = [
    "demangle",
    "entry_point",
    "function_name",
    "mangle",
    "parameter_signature",
    "split_entry_point",
]

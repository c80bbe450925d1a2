"""Metadata overlay store.

The overlay is a YAML file (or a directory of ``*.yml`` files) holding override
records keyed by declaration identity, one namespace per enclosing type::

    OS:
      methods:
        "sum([I)":
          flags: [critical]
          params:
            0: {ownership: borrowed}
        gtk_init:            # bare name: applies to every overload
          flags: dynamic
    GdkRectangle:
      struct: {accessor: GdkRectangle}
      fields:
        x: {platform: [gtk]}

Records are parsed into the typed directive structures once, at load time. The
store is immutable afterwards and safe to share between targets.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import yaml

from ..errors import MetadataError
from ..flags import (
    CodeFragments,
    FieldDirectives,
    FieldFlag,
    MethodDirectives,
    MethodFlag,
    Ownership,
    ParamDirectives,
    ParamFlag,
    StructDirectives,
    StructFlag,
    parse_flags,
    parse_ownership,
    split_words,
)
from ..logging import get_logger
from ..models import Identity

_SECTION_KEYS = {"methods", "fields", "struct"}
_METHOD_KEYS = {"flags", "cast", "accessor", "pre_call", "post_call", "body", "params", "replace"}
_PARAM_KEYS = {"flags", "cast", "ownership", "length"}
_FIELD_KEYS = {"flags", "cast", "accessor", "platform", "platforms", "offset", "replace"}
_STRUCT_KEYS = {"flags", "accessor", "replace"}


@dataclass(frozen=True)
class MetadataRecord:
    """Overrides for a single declaration identity."""

    key: str
    kind: str
    method: MethodDirectives = MethodDirectives()
    params: Tuple[Tuple[str, ParamDirectives], ...] = ()
    field: FieldDirectives = FieldDirectives()
    struct: StructDirectives = StructDirectives()
    fragments: CodeFragments = CodeFragments()
    replace: bool = False
    origin: Optional[str] = None

    def param(self, index: int, name: str) -> Optional[ParamDirectives]:
        """Return overrides for a parameter referenced by index or by name."""
        by_ref = dict(self.params)
        by_index = by_ref.get(str(index))
        by_name = by_ref.get(name)
        if by_index is not None and by_name is not None:
            return _merge_params(by_index, by_name)
        return by_name or by_index


def merge(base: MetadataRecord, override: MetadataRecord) -> MetadataRecord:
    """Combine two records; ``override`` wins per key, lists concatenate.

    When ``override.replace`` is set the override record is returned as is.
    """
    if override.replace:
        return override
    method = MethodDirectives(
        flags=base.method.flags | override.method.flags,
        cast=_pick(override.method.cast, base.method.cast),
        accessor=_pick(override.method.accessor, base.method.accessor),
    )
    params: Dict[str, ParamDirectives] = dict(base.params)
    for ref, directives in override.params:
        existing = params.get(ref)
        params[ref] = _merge_params(existing, directives) if existing else directives
    field_directives = FieldDirectives(
        flags=base.field.flags | override.field.flags,
        cast=_pick(override.field.cast, base.field.cast),
        accessor=_pick(override.field.accessor, base.field.accessor),
        platforms=_concat(base.field.platforms, override.field.platforms),
        offset=_pick(override.field.offset, base.field.offset),
    )
    struct = StructDirectives(
        flags=base.struct.flags | override.struct.flags,
        accessor=_pick(override.struct.accessor, base.struct.accessor),
        tagged=base.struct.tagged or override.struct.tagged,
    )
    fragments = CodeFragments(
        pre_call=_pick(override.fragments.pre_call, base.fragments.pre_call),
        post_call=_pick(override.fragments.post_call, base.fragments.post_call),
        body=_pick(override.fragments.body, base.fragments.body),
    )
    origin = ", ".join(item for item in (base.origin, override.origin) if item) or None
    return MetadataRecord(
        key=override.key,
        kind=override.kind,
        method=method,
        params=tuple(sorted(params.items())),
        field=field_directives,
        struct=struct,
        fragments=fragments,
        replace=False,
        origin=origin,
    )


class MetadataStore:
    """Read-only mapping of identity key to MetadataRecord."""

    def __init__(self, records: Optional[Mapping[str, MetadataRecord]] = None) -> None:
        self._records: Mapping[str, MetadataRecord] = MappingProxyType(dict(records or {}))
        self.logger = get_logger("metadata")

    @classmethod
    def load(cls, path: Optional[Path]) -> "MetadataStore":
        """Load a metadata file or directory; a missing path yields an empty store."""
        if path is None:
            return cls()
        path = Path(path)
        if not path.exists():
            raise MetadataError("metadata path does not exist", path)
        if path.is_dir():
            files = sorted(p for p in path.rglob("*") if p.suffix in {".yml", ".yaml"})
        else:
            files = [path]

        records: Dict[str, MetadataRecord] = {}
        for file_path in files:
            for record in _load_file(file_path):
                existing = records.get(record.key)
                records[record.key] = merge(existing, record) if existing else record
        store = cls(records)
        store.logger.debug("Loaded %d metadata records from %s", len(records), path)
        return store

    merge = staticmethod(merge)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def keys(self) -> List[str]:
        return sorted(self._records)

    def get(self, key: str) -> Optional[MetadataRecord]:
        return self._records.get(key)

    def lookup(self, identity: Identity) -> Optional[MetadataRecord]:
        """Return the record for ``identity``; an exact key wins over a bare name."""
        exact = self._records.get(identity.key)
        bare_key = identity.bare_key
        bare = self._records.get(bare_key) if bare_key != identity.key else None
        if exact is not None and bare is not None:
            return merge(bare, exact)
        return exact or bare

    def struct_names(self) -> List[str]:
        """Enclosing types that carry a ``struct`` record."""
        return sorted(record.key for record in self._records.values() if record.kind == "struct")

    def stale_keys(self, identities: Iterable[Identity]) -> List[str]:
        """Keys whose identity matched no declaration in the current run."""
        used = set()
        for identity in identities:
            used.add(identity.key)
            used.add(identity.bare_key)
        return [key for key in self.keys() if key not in used]


def _load_file(path: Path) -> List[MetadataRecord]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise MetadataError(f"invalid YAML: {exc}", path) from exc
    except OSError as exc:
        raise MetadataError(f"cannot read metadata: {exc}", path) from exc
    if data is None:
        return []
    if not isinstance(data, dict):
        raise MetadataError("metadata root must be a mapping", path)

    # A file holding a single namespace may omit the namespace key (OS.yml).
    if data and set(data) <= _SECTION_KEYS:
        data = {path.stem: data}

    records: List[MetadataRecord] = []
    for namespace, sections in data.items():
        namespace = str(namespace)
        if not isinstance(sections, dict):
            raise MetadataError(f"namespace '{namespace}' must be a mapping", path)
        unknown = set(sections) - _SECTION_KEYS
        if unknown:
            raise MetadataError(
                f"namespace '{namespace}' has unknown sections: {', '.join(sorted(map(str, unknown)))}",
                path,
            )
        for name, entry in _as_mapping(sections.get("methods"), path, f"{namespace}.methods").items():
            records.append(_method_record(namespace, str(name), entry, path))
        for name, entry in _as_mapping(sections.get("fields"), path, f"{namespace}.fields").items():
            records.append(_field_record(namespace, str(name), entry, path))
        if "struct" in sections:
            records.append(_struct_record(namespace, sections.get("struct"), path))
    return records


def _method_record(namespace: str, name: str, entry: Any, path: Path) -> MetadataRecord:
    key = f"{namespace}.{name}"
    data = _as_mapping(entry, path, key)
    _check_keys(data, _METHOD_KEYS, path, key)

    def error(message: str) -> MetadataError:
        return MetadataError(f"{key}: {message}", path)

    params: Dict[str, ParamDirectives] = {}
    for ref, raw in _as_mapping(data.get("params"), path, f"{key}.params").items():
        params[str(ref)] = _param_directives(raw, path, f"{key}.params.{ref}")

    return MetadataRecord(
        key=key,
        kind="method",
        method=MethodDirectives(
            flags=parse_flags(MethodFlag, split_words(data.get("flags")), error),
            cast=_opt_str(data.get("cast")),
            accessor=_opt_str(data.get("accessor")),
        ),
        params=tuple(sorted(params.items())),
        fragments=CodeFragments(
            pre_call=_opt_str(data.get("pre_call")),
            post_call=_opt_str(data.get("post_call")),
            body=_opt_str(data.get("body")),
        ),
        replace=bool(data.get("replace", False)),
        origin=str(path),
    )


def _param_directives(raw: Any, path: Path, key: str) -> ParamDirectives:
    data = _as_mapping(raw, path, key)
    _check_keys(data, _PARAM_KEYS, path, key)

    def error(message: str) -> MetadataError:
        return MetadataError(f"{key}: {message}", path)

    words = split_words(data.get("flags"))
    ownership, remaining = parse_ownership(words, error)
    explicit = _opt_str(data.get("ownership"))
    if explicit is not None:
        try:
            explicit_ownership = Ownership(explicit)
        except ValueError:
            raise error(f"unknown ownership '{explicit}'") from None
        if ownership is not None and ownership is not explicit_ownership:
            raise error("ownership conflicts with flags")
        ownership = explicit_ownership
    length = data.get("length")
    return ParamDirectives(
        flags=parse_flags(ParamFlag, remaining, error),
        ownership=ownership,
        cast=_opt_str(data.get("cast")),
        length=str(length) if length is not None else None,
    )


def _field_record(namespace: str, name: str, entry: Any, path: Path) -> MetadataRecord:
    key = f"{namespace}#{name}"
    data = _as_mapping(entry, path, key)
    _check_keys(data, _FIELD_KEYS, path, key)

    def error(message: str) -> MetadataError:
        return MetadataError(f"{key}: {message}", path)

    offset = data.get("offset")
    if offset is not None and not isinstance(offset, int):
        raise error("offset must be an integer")
    platforms = split_words(data.get("platforms", data.get("platform")))
    return MetadataRecord(
        key=key,
        kind="field",
        field=FieldDirectives(
            flags=parse_flags(FieldFlag, split_words(data.get("flags")), error),
            cast=_opt_str(data.get("cast")),
            accessor=_opt_str(data.get("accessor")),
            platforms=platforms,
            offset=offset,
        ),
        replace=bool(data.get("replace", False)),
        origin=str(path),
    )


def _struct_record(namespace: str, entry: Any, path: Path) -> MetadataRecord:
    data = _as_mapping(entry, path, f"{namespace}.struct")
    _check_keys(data, _STRUCT_KEYS, path, namespace)

    def error(message: str) -> MetadataError:
        return MetadataError(f"{namespace}: {message}", path)

    return MetadataRecord(
        key=namespace,
        kind="struct",
        struct=StructDirectives(
            flags=parse_flags(StructFlag, split_words(data.get("flags")), error),
            accessor=_opt_str(data.get("accessor")),
            tagged=True,
        ),
        replace=bool(data.get("replace", False)),
        origin=str(path),
    )


def _merge_params(base: ParamDirectives, override: ParamDirectives) -> ParamDirectives:
    return ParamDirectives(
        flags=base.flags | override.flags,
        ownership=_pick(override.ownership, base.ownership),
        cast=_pick(override.cast, base.cast),
        length=_pick(override.length, base.length),
    )


def _pick(preferred, fallback):  # type: ignore[no-untyped-def]
    return preferred if preferred is not None else fallback


def _concat(base: Tuple[str, ...], extra: Tuple[str, ...]) -> Tuple[str, ...]:
    seen = list(base)
    for item in extra:
        if item not in seen:
            seen.append(item)
    return tuple(seen)


def _as_mapping(value: Any, path: Path, key: str) -> Dict[Any, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MetadataError(f"{key} must be a mapping", path)
    return value


def _check_keys(data: Mapping[Any, Any], allowed: set, path: Path, key: str) -> None:
    unknown = sorted(str(item) for item in data if item not in allowed)
    if unknown:
        raise MetadataError(f"{key}: unknown keys {', '.join(unknown)}", path)


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


__all__ = ["MetadataRecord", "MetadataStore", "merge"]

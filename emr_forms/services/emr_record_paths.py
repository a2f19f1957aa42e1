# FILE: emr_forms/services/emr_record_paths.py
"""
Path-addressed access to EMR record data.

Record data is a dict keyed by section code; inside a section, group items
nest sub-dicts keyed by the group key and leaf fields hold their values under
the field key. A path is the key sequence from the section root to a leaf.

`set_path` is copy-on-write: it never mutates its input and returns the new
root. Callers must use the return value.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from emr_forms.core.config import settings

logger = logging.getLogger(__name__)


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

PathLike = Union[str, Sequence[str]]


def as_path(path: Optional[PathLike]) -> Tuple[str, ...]:
    if path is None:
        return ()
    if isinstance(path, str):
        return (path,) if path else ()
    return tuple(str(p) for p in path)


def _legacy_enabled(legacy: Optional[bool]) -> bool:
    return settings.EMR_LEGACY_DOTTED_KEYS if legacy is None else bool(legacy)


def _lookup(data: Any, path: Tuple[str, ...], legacy: Optional[bool]) -> Any:
    if not path:
        return data

    cur = data
    for k in path:
        if isinstance(cur, Mapping) and k in cur:
            cur = cur[k]
        else:
            cur = MISSING
            break
    if cur is not MISSING:
        return cur

    # back-compat: answers saved under a literal "group.field" key
    if _legacy_enabled(legacy) and isinstance(data, Mapping):
        dotted = ".".join(path)
        if dotted in data:
            return data[dotted]
    return MISSING


def get_path(data: Any, path: Optional[PathLike], default: Any = None, *, legacy: Optional[bool] = None) -> Any:
    v = _lookup(data, as_path(path), legacy)
    return default if v is MISSING else v


def has_path(data: Any, path: Optional[PathLike], *, legacy: Optional[bool] = None) -> bool:
    return _lookup(data, as_path(path), legacy) is not MISSING


def set_path(data: Any, path: Optional[PathLike], value: Any) -> Any:
    """
    Returns a new root with `value` stored at `path`.
    Missing (or non-dict) intermediates become empty dicts.
    A zero-length path replaces the container itself.
    """
    keys = as_path(path)
    if not keys:
        return value

    root: Dict[str, Any] = dict(data) if isinstance(data, Mapping) else {}
    cur = root
    for k in keys[:-1]:
        nxt = cur.get(k)
        nxt = dict(nxt) if isinstance(nxt, Mapping) else {}
        cur[k] = nxt
        cur = nxt
    cur[keys[-1]] = value
    return root


def read_field_value(section: Any, path: Optional[PathLike], *, legacy: Optional[bool] = None) -> Any:
    """
    nested -> dotted -> flat same-key lookup.
    Returns MISSING when the field has no stored value.
    """
    keys = as_path(path)
    v = _lookup(section, keys, legacy)
    if v is not MISSING:
        return v

    # oldest drafts kept grouped answers flat at the section root
    if len(keys) > 1 and _legacy_enabled(legacy) and isinstance(section, Mapping):
        leaf = keys[-1]
        if leaf in section and not isinstance(section[leaf], Mapping):
            return section[leaf]
    return MISSING


def section_data(record: Any, code: str) -> Dict[str, Any]:
    """Never None: a missing or non-dict section reads as {}."""
    if isinstance(record, Mapping):
        v = record.get(code)
        if isinstance(v, Mapping):
            return dict(v)
    return {}


def ensure_section(record: Any, code: str) -> Dict[str, Any]:
    out: Dict[str, Any] = dict(record) if isinstance(record, Mapping) else {}
    if not isinstance(out.get(code), Mapping):
        if code in out:
            logger.debug("Replacing non-object section payload for %s", code)
        out[code] = {}
    return out

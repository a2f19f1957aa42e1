# FILE: emr_forms/services/emr_record_defaults.py
from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from emr_forms.schemas.emr_form import BOOLEAN_TYPES, LIST_TYPES, FieldItem, GroupItem
from emr_forms.services.emr_record_paths import MISSING, read_field_value, section_data, set_path
from emr_forms.services.emr_schema_normalizer import ensure_schema

logger = logging.getLogger(__name__)


def _declared_default(f: FieldItem) -> Any:
    meta = f.extra("meta")
    for v in (
        f.default_value,
        f.extra("default"),
        (f.ui.model_extra or {}).get("default"),
        meta.get("default") if isinstance(meta, dict) else None,
    ):
        if v is not None:
            return v
    return None


def _blocked(data: Dict[str, Any], path: Tuple[str, ...]) -> bool:
    # a scalar stored where a group object is expected is left alone
    cur: Any = data
    for k in path[:-1]:
        if not isinstance(cur, dict) or k not in cur:
            return False
        cur = cur[k]
        if not isinstance(cur, dict):
            return True
    return False


def default_for_field(f: FieldItem) -> Any:
    """Declared default (stored as-is, never evaluated), else a type default."""
    v = _declared_default(f)
    if v is not None:
        return copy.deepcopy(v)
    t = (f.type or "").lower()
    if t in BOOLEAN_TYPES:
        return False
    if t in LIST_TYPES:
        return []
    return ""


def iter_leaf_fields(
    items: List[Union[FieldItem, GroupItem]], prefix: Tuple[str, ...] = ()
) -> Iterator[Tuple[Tuple[str, ...], FieldItem]]:
    for it in items:
        path = prefix + (it.key,)
        if isinstance(it, GroupItem):
            yield from iter_leaf_fields(it.items, path)
        else:
            yield path, it


def initialize_record(schema: Any, existing: Optional[Dict[str, Any]] = None, *, legacy: Optional[bool] = None) -> Dict[str, Any]:
    """
    Fills every schema field that has no stored value.

    Existing answers are never overwritten (nested, dotted and flat legacy
    keys all count as existing). Sections in `existing` that the schema does
    not know are kept. `existing` is not mutated.
    """
    schema = ensure_schema(schema)
    out: Dict[str, Any] = dict(existing) if isinstance(existing, dict) else {}

    filled = 0
    for sec in schema.sections:
        data = section_data(out, sec.code)
        for path, f in iter_leaf_fields(sec.items):
            if read_field_value(data, path, legacy=legacy) is not MISSING or _blocked(data, path):
                continue
            data = set_path(data, path, default_for_field(f))
            filled += 1
        out[sec.code] = data

    logger.debug("Initialized %d field default(s) across %d section(s)", filled, len(schema.sections))
    return out

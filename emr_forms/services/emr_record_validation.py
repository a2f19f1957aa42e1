# FILE: emr_forms/services/emr_record_validation.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Mapping, NamedTuple, Optional, Tuple, Union

from emr_forms.schemas.emr_form import (
    BOOLEAN_TYPES,
    LIST_TYPES,
    FieldItem,
    FillCount,
    GroupItem,
    MissingField,
    Section,
    SectionProgress,
)
from emr_forms.services.emr_record_paths import MISSING, get_path, read_field_value, section_data
from emr_forms.services.emr_record_scope import flatten_scope, group_scope
from emr_forms.services.emr_schema_normalizer import ensure_schema
from emr_forms.services.emr_visibility import is_visible

logger = logging.getLogger(__name__)


class VisibleField(NamedTuple):
    section: Section
    path: Tuple[str, ...]
    field: FieldItem
    value: Any


def _blank(v: Any) -> bool:
    return not isinstance(v, str) or not v.strip()


def is_empty_value(field_type: str, value: Any) -> bool:
    """
    Type-aware emptiness used for required checks and progress.
    Unexpected shapes are coerced, never rejected.
    """
    t = (field_type or "").lower()
    if t in LIST_TYPES:
        return not (isinstance(value, list) and len(value) > 0)
    if t in BOOLEAN_TYPES:
        return False
    if value is MISSING or value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    if isinstance(value, Mapping):
        if not value:
            return True
        # signature / attachment payloads
        if "data_url" in value:
            return _blank(value.get("data_url"))
        if "name" in value:
            return _blank(value.get("name"))
        return False
    return False


def _walk(
    sec: Section,
    root: Dict[str, Any],
    items: List[Union[FieldItem, GroupItem]],
    prefix: Tuple[str, ...],
    scope: Mapping[str, Any],
    show_hidden: bool,
    legacy: Optional[bool],
) -> Iterator[VisibleField]:
    for it in items:
        # scope is a superset of the flattened section root
        if not is_visible(it, show_hidden, scope, None):
            continue
        path = prefix + (it.key,)
        if isinstance(it, GroupItem):
            local = get_path(root, path, legacy=legacy)
            yield from _walk(sec, root, it.items, path, group_scope(scope, local), show_hidden, legacy)
            continue
        yield VisibleField(sec, path, it, read_field_value(root, path, legacy=legacy))


def iter_visible_fields(
    schema: Any,
    data: Optional[Dict[str, Any]],
    *,
    show_hidden: bool = False,
    section_code: Optional[str] = None,
    legacy: Optional[bool] = None,
) -> Iterator[VisibleField]:
    """
    Visible leaf fields in schema order, with their stored values.
    A group hidden by `ui.hidden` or its rule hides its whole subtree.
    """
    schema = ensure_schema(schema)
    for sec in schema.sections:
        if section_code is not None and sec.code != section_code:
            continue
        root = section_data(data, sec.code)
        yield from _walk(sec, root, sec.items, (), flatten_scope(root), show_hidden, legacy)


def find_missing(schema: Any, data: Optional[Dict[str, Any]], *, legacy: Optional[bool] = None) -> List[MissingField]:
    """Every required, currently visible field with no answer."""
    out: List[MissingField] = []
    for vf in iter_visible_fields(schema, data, legacy=legacy):
        if not vf.field.required:
            continue
        if is_empty_value(vf.field.type, vf.value):
            out.append(MissingField(
                section_key=vf.section.code,
                section_title=vf.section.label or vf.section.code,
                field_key=vf.field.key,
                field_label=vf.field.label or vf.field.key,
                path=list(vf.path),
            ))
    if out:
        logger.debug("Record has %d missing required field(s)", len(out))
    return out


def calc_filled_count(
    schema: Any,
    data: Optional[Dict[str, Any]],
    section_code: Optional[str] = None,
    *,
    legacy: Optional[bool] = None,
) -> FillCount:
    filled = total = 0
    for vf in iter_visible_fields(schema, data, section_code=section_code, legacy=legacy):
        total += 1
        if not is_empty_value(vf.field.type, vf.value):
            filled += 1
    return FillCount(filled=filled, total=total)


def calc_section_progress(schema: Any, data: Optional[Dict[str, Any]], *, legacy: Optional[bool] = None) -> List[SectionProgress]:
    schema = ensure_schema(schema)
    out: List[SectionProgress] = []
    for sec in schema.sections:
        c = calc_filled_count(schema, data, sec.code, legacy=legacy)
        out.append(SectionProgress(
            section_key=sec.code,
            section_title=sec.label or sec.code,
            filled=c.filled,
            total=c.total,
            percent=int(c.filled * 100 / c.total + 0.5) if c.total else 100,
        ))
    return out

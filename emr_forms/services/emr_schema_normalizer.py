# FILE: emr_forms/services/emr_schema_normalizer.py
from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple, Union

from emr_forms.core.config import settings
from emr_forms.schemas.emr_form import (
    CHOICE_TYPES,
    FIELD_TYPES,
    FieldItem,
    FieldOption,
    FieldWidth,
    GroupItem,
    ItemRules,
    ItemUi,
    Rule,
    SchemaSummary,
    Section,
    SectionLayout,
    TemplateSchema,
)
from emr_forms.utils.text import norm_code, safe_str, slugify_key, unique_key

logger = logging.getLogger(__name__)

AnyItem = Union[FieldItem, GroupItem]

# where a template object may keep its schema payload, in priority order
PAYLOAD_KEYS: Tuple[Tuple[str, ...], ...] = (
    ("schema_json",),
    ("schema",),
    ("content", "schema_json"),
    ("content", "schema"),
)
SECTION_LIST_KEYS = ("sections", "section_defs")

LAYOUT_ALIASES = {
    "TWO_COLUMN": "GRID_2",
    "THREE_COLUMN": "GRID_3",
    "FOUR_COLUMN": "GRID_4",
    "GRID": "GRID_2",
}

ITEM_KEYS = {"kind", "key", "code", "label", "title", "name", "type", "required",
             "ui", "rules", "visible_when", "default_value", "options", "items", "fields"}
SECTION_KEYS = {"code", "key", "name", "label", "title", "layout", "items", "fields"}


def _loads_any(v: Any, default: Any):
    if v is None:
        return default
    if isinstance(v, (dict, list)):
        return v
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return default
        try:
            return json.loads(s)
        except ValueError:
            logger.debug("Ignoring malformed template JSON (%d chars)", len(s))
            return default
    return default


def _dumps_canon(obj: Any) -> str:
    # stable JSON for hashing
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), sort_keys=True, default=str)


def _extras(raw: Dict[str, Any], known: Set[str]) -> Dict[str, Any]:
    # "_rid" / "__x" are builder-only, "model_*" would clash with pydantic
    return {
        k: v for k, v in raw.items()
        if isinstance(k, str) and k not in known and not k.startswith("_") and not k.startswith("model_")
    }


class _Budget:
    """Running field/section counters shared across one normalization."""

    def __init__(self) -> None:
        self.fields = 0
        self.dropped = 0

    def take_field(self) -> bool:
        if self.fields >= settings.EMR_MAX_FIELDS:
            self.dropped += 1
            return False
        self.fields += 1
        return True


# -------------------------
# Item canonicalization
# -------------------------
def _norm_width(v: Any, default: FieldWidth) -> Union[FieldWidth, int, float]:
    if isinstance(v, bool):
        return default
    if isinstance(v, (int, float)):
        return v
    s = safe_str(v).upper()
    if s in FieldWidth.__members__:
        return FieldWidth[s]
    return default


def _norm_layout(v: Any) -> SectionLayout:
    s = safe_str(v).upper().replace("-", "_").replace(" ", "_")
    s = LAYOUT_ALIASES.get(s, s)
    if s in SectionLayout.__members__:
        return SectionLayout[s]
    return SectionLayout.STACK


def _norm_ui(raw: Any, default_width: FieldWidth) -> ItemUi:
    ui = raw if isinstance(raw, dict) else {}
    return ItemUi(
        hidden=bool(ui.get("hidden") or False),
        width=_norm_width(ui.get("width"), default_width),
        **_extras(ui, {"hidden", "width"}),
    )


def _norm_rule(raw: Any) -> Optional[Rule]:
    if not isinstance(raw, dict):
        return None
    key = raw.get("field_key")
    if key is None:
        key = raw.get("field")
    return Rule(
        op=safe_str(raw.get("op")).lower(),
        field_key=safe_str(key),
        value=raw.get("value"),
    )


def _norm_rules(it: Dict[str, Any]) -> ItemRules:
    rules = it.get("rules") if isinstance(it.get("rules"), dict) else {}
    vw = rules.get("visible_when")
    if vw is None:
        # legacy builder packs put visible_when on the item itself
        vw = it.get("visible_when")
    return ItemRules(visible_when=_norm_rule(vw), **_extras(rules, {"visible_when"}))


def _norm_options(raw: Any) -> Optional[List[FieldOption]]:
    if not isinstance(raw, list):
        return None
    out: List[FieldOption] = []
    for o in raw:
        if isinstance(o, dict):
            value = o.get("value")
            if value is None:
                value = o.get("code", o.get("key", o.get("label")))
            if value is None:
                continue
            label = safe_str(o.get("label")) or safe_str(value)
            out.append(FieldOption(value=value, label=label, **_extras(o, {"value", "label"})))
        elif o is not None and not isinstance(o, (list, dict)):
            out.append(FieldOption(value=o, label=safe_str(o)))
    return out


def _is_group(it: Dict[str, Any]) -> bool:
    kind = safe_str(it.get("kind")).lower()
    ftype = safe_str(it.get("type")).lower()
    if kind == "group" or ftype == "group":
        return True
    return not ftype and isinstance(it.get("items"), list)


def _item_key(it: Dict[str, Any], idx: int, taken: Set[str]) -> str:
    key = safe_str(it.get("key")) or safe_str(it.get("code"))
    if not key:
        key = slugify_key(it.get("label") or it.get("title") or it.get("name")) or f"field_{idx}"
    return unique_key(key, taken)


def _norm_items(raw_items: Any, budget: _Budget, *, default_type: str, default_width: FieldWidth) -> List[AnyItem]:
    out: List[AnyItem] = []
    taken: Set[str] = set()
    for idx, it in enumerate(raw_items if isinstance(raw_items, list) else [], start=1):
        if isinstance(it, str) and it.strip():
            it = {"label": it}
        if not isinstance(it, dict):
            continue
        item = _norm_item(it, idx, taken, budget, default_type=default_type, default_width=default_width)
        if item is not None:
            out.append(item)
    return out


def _norm_item(
    it: Dict[str, Any],
    idx: int,
    taken: Set[str],
    budget: _Budget,
    *,
    default_type: str,
    default_width: FieldWidth,
) -> Optional[AnyItem]:
    is_group = _is_group(it)
    if not is_group and not budget.take_field():
        return None

    key = _item_key(it, idx, taken)
    label = safe_str(it.get("label")) or safe_str(it.get("title")) or key
    common = dict(
        key=key,
        label=label,
        required=bool(it.get("required") or False),
        ui=_norm_ui(it.get("ui"), default_width),
        rules=_norm_rules(it),
    )

    if is_group:
        children = it.get("items")
        if children is None:
            children = it.get("fields")
        return GroupItem(
            items=_norm_items(children, budget, default_type=default_type, default_width=default_width),
            **common,
            **_extras(it, ITEM_KEYS),
        )

    return FieldItem(
        type=safe_str(it.get("type")).lower() or default_type,
        default_value=it.get("default_value"),
        options=_norm_options(it.get("options")),
        **common,
        **_extras(it, ITEM_KEYS),
    )


# -------------------------
# Section canonicalization
# -------------------------
def _notes_item(slug: str) -> FieldItem:
    return FieldItem(
        key=f"{slug}_notes",
        label="Notes",
        type="textarea",
        required=False,
        ui=ItemUi(width=FieldWidth.FULL),
    )


def _section_from_title(title: str, idx: int, taken: Set[str], budget: _Budget) -> Section:
    slug = slugify_key(title)
    code = unique_key(slug.upper() or f"SECTION_{idx}", taken)
    items = [_notes_item(slug or code.lower())] if budget.take_field() else []
    return Section(code=code, label=safe_str(title) or code, layout=SectionLayout.STACK, items=items)


def _section_from_object(
    s: Dict[str, Any], idx: int, taken: Set[str], budget: _Budget, *, notes_fallback: bool
) -> Section:
    explicit = s.get("code") or s.get("key") or s.get("name")
    code = unique_key(norm_code(explicit) or f"SECTION_{idx}", taken)
    label = safe_str(s.get("label")) or safe_str(s.get("title")) or safe_str(s.get("name")) or code

    if isinstance(s.get("items"), list):
        items = _norm_items(s["items"], budget, default_type="text", default_width=FieldWidth.FULL)
    elif isinstance(s.get("fields"), list):
        items = _norm_items(s["fields"], budget, default_type="textarea", default_width=FieldWidth.HALF)
    elif notes_fallback:
        slug = slugify_key(s.get("label") or s.get("title") or explicit) or code.lower()
        items = [_notes_item(slug)] if budget.take_field() else []
    else:
        items = []

    return Section(code=code, label=label, layout=_norm_layout(s.get("layout")), items=items, **_extras(s, SECTION_KEYS))


def _sections_from_list(raw_sections: List[Any], budget: _Budget, *, notes_fallback: bool) -> List[Section]:
    out: List[Section] = []
    taken: Set[str] = set()
    for idx, s in enumerate(raw_sections, start=1):
        if len(out) >= settings.EMR_MAX_SECTIONS:
            logger.warning("Template has more than %d sections; extra sections dropped", settings.EMR_MAX_SECTIONS)
            break
        if isinstance(s, str):
            if s.strip():
                out.append(_section_from_title(s, idx, taken, budget))
        elif isinstance(s, dict):
            out.append(_section_from_object(s, idx, taken, budget, notes_fallback=notes_fallback))
    return out


# -------------------------
# Payload resolution
# -------------------------
def _dig(obj: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    cur: Any = obj
    for k in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(k)
    return cur


def _is_full_schema(v: Any) -> bool:
    # an empty sections[] falls through to the template's own section list
    return isinstance(v, dict) and _is_section_list(_loads_any(v.get("sections"), None))


def _is_section_list(v: Any) -> bool:
    return isinstance(v, list) and len(v) > 0


def _looks_like_schema(obj: Dict[str, Any]) -> bool:
    secs = _loads_any(obj.get("sections"), None)
    if not isinstance(secs, list):
        return False
    if "schema_version" in obj:
        return True
    return any(isinstance(s, dict) and isinstance(s.get("items"), list) for s in secs)


def resolve_schema_payload(raw: Any) -> Any:
    """
    Locates the schema payload inside whatever the template service returned.

    Returns a full schema dict, a list of sections (titles or objects), or
    None when nothing usable is present. Never raises.
    """
    obj = _loads_any(raw, None)
    if isinstance(obj, list):
        return obj
    if not isinstance(obj, dict):
        return None

    for keys in PAYLOAD_KEYS:
        cand = _loads_any(_dig(obj, keys), None)
        if _is_full_schema(cand) or _is_section_list(cand):
            return cand

    if _looks_like_schema(obj):
        return obj

    for k in SECTION_LIST_KEYS:
        cand = _loads_any(obj.get(k), None)
        if _is_section_list(cand):
            return cand
    return None


def _schema_version(v: Any) -> int:
    try:
        return int(v or 1)
    except (TypeError, ValueError):
        return 1


def _build(payload: Any) -> TemplateSchema:
    budget = _Budget()
    if isinstance(payload, list):
        sections = _sections_from_list(payload, budget, notes_fallback=True)
        schema = TemplateSchema(sections=sections)
    elif isinstance(payload, dict):
        raw_sections = _loads_any(payload.get("sections"), [])
        sections = _sections_from_list(raw_sections if isinstance(raw_sections, list) else [], budget, notes_fallback=False)
        title = payload.get("title")
        schema = TemplateSchema(
            schema_version=_schema_version(payload.get("schema_version")),
            title=safe_str(title) or None,
            sections=sections,
        )
    else:
        return TemplateSchema()

    if budget.dropped:
        logger.warning("Template has more than %d fields; %d dropped", settings.EMR_MAX_FIELDS, budget.dropped)
    return schema


def normalize_template(raw: Any) -> TemplateSchema:
    """
    Canonical schema from any template shape:
      - a full schema object {"sections": [...]} (or a template row carrying
        one under schema_json / schema / content.*)
      - a list of section titles: ["History", "Examination"]
      - a list of section objects with "items" or flat "fields"

    Never raises; unusable input gives a schema with no sections.
    Normalizing an already canonical schema (`schema.as_raw()`) returns an
    equal schema.
    """
    if isinstance(raw, TemplateSchema):
        return raw.model_copy(deep=True)
    try:
        return _build(resolve_schema_payload(raw))
    except Exception:
        logger.exception("Template normalization failed; using empty schema")
        return TemplateSchema()


def ensure_schema(schema: Any) -> TemplateSchema:
    """Accepts a canonical schema or any raw template."""
    if isinstance(schema, TemplateSchema):
        return schema
    return normalize_template(schema)


# -------------------------
# Summary (stats / hash / warnings)
# -------------------------
def iter_items(items: List[AnyItem]) -> Iterator[AnyItem]:
    for it in items:
        yield it
        if isinstance(it, GroupItem):
            yield from iter_items(it.items)


def _hash_schema(schema: TemplateSchema) -> str:
    return hashlib.sha256(_dumps_canon(schema.as_raw()).encode("utf-8")).hexdigest()


def schema_summary(schema: Any) -> SchemaSummary:
    schema = ensure_schema(schema)
    fields = groups = required = 0
    types: Set[str] = set()
    warnings: List[str] = []

    for sec in schema.sections:
        known_keys: Set[str] = set()
        rule_refs: List[Tuple[str, str]] = []
        for it in iter_items(sec.items):
            known_keys.add(it.key)
            if it.rules.visible_when is not None and it.rules.visible_when.field_key:
                rule_refs.append((it.key, it.rules.visible_when.field_key))
            if isinstance(it, GroupItem):
                groups += 1
                continue
            fields += 1
            types.add(it.type)
            if it.required:
                required += 1
            if it.type not in FIELD_TYPES:
                warnings.append(f"Unknown field type '{it.type}' for '{it.key}' in {sec.code}")
            if it.type in CHOICE_TYPES and not it.options:
                warnings.append(f"Field '{it.key}' in {sec.code} has no options")

        for item_key, ref in rule_refs:
            group_path_known = ref.split(".")[-1] in known_keys
            if ref not in known_keys and not group_path_known:
                warnings.append(f"Rule on '{item_key}' in {sec.code} references unknown field '{ref}'")

    if fields == 0:
        warnings.append("No fields found. Add fields to make this template usable.")

    return SchemaSummary(
        sections=len(schema.sections),
        fields=fields,
        groups=groups,
        required=required,
        field_types=sorted(types),
        schema_hash=_hash_schema(schema),
        warnings=warnings,
    )

# FILE: emr_forms/services/emr_visibility.py
from __future__ import annotations

import logging
import math
from typing import Any, List, Mapping, Optional, Union

from emr_forms.schemas.emr_form import FieldItem, GroupItem, Rule
from emr_forms.services.emr_record_paths import MISSING
from emr_forms.services.emr_record_scope import flatten_scope

logger = logging.getLogger(__name__)


def js_truthy(v: Any) -> bool:
    """Browser-side truthiness: empty list/dict are truthy, 0/""/NaN/None are not."""
    if v is MISSING or v is None:
        return False
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return not (v == 0 or (isinstance(v, float) and math.isnan(v)))
    if isinstance(v, str):
        return v != ""
    return True


def strict_eq(a: Any, b: Any) -> bool:
    if a is MISSING:
        a = None
    if b is MISSING:
        b = None
    # True == 1 and "1" != 1 in the form layer
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if type(a) is not type(b):
        return False
    return a == b


def _as_list(v: Any) -> List[Any]:
    if v is None:
        return []
    if isinstance(v, (list, tuple, set)):
        return list(v)
    return [v]


def evaluate_rule(rule: Rule, value: Any) -> bool:
    """
    Applies `rule.op` to an already-resolved value.
    Unknown operators evaluate to True: a malformed rule never hides a field.
    """
    op = (rule.op or "").strip().lower()
    if op == "eq":
        return strict_eq(value, rule.value)
    if op == "ne":
        return not strict_eq(value, rule.value)
    if op == "truthy":
        return js_truthy(value)
    if op == "falsy":
        return not js_truthy(value)
    if op == "in":
        return any(strict_eq(value, x) for x in _as_list(rule.value))
    if op == "not_in":
        return not any(strict_eq(value, x) for x in _as_list(rule.value))
    if op == "exists":
        return value is not MISSING and value is not None and value != ""

    logger.debug("Unknown visibility operator %r on %r, leaving visible", rule.op, rule.field_key)
    return True


def _resolve(key: str, scope: Optional[Mapping[str, Any]], section_root: Any) -> Any:
    if scope and key in scope:
        return scope[key]
    if section_root is None:
        return MISSING
    return flatten_scope(section_root).get(key, MISSING)


def is_visible(
    item: Union[FieldItem, GroupItem],
    show_hidden: bool = False,
    scope: Optional[Mapping[str, Any]] = None,
    section_root: Any = None,
) -> bool:
    if item.ui.hidden and not show_hidden:
        return False

    rule = item.rules.visible_when
    if rule is None:
        return True

    key = (rule.field_key or "").strip()
    if not key:
        return True

    return evaluate_rule(rule, _resolve(key, scope, section_root))

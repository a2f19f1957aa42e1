# FILE: emr_forms/services/emr_record_scope.py
from __future__ import annotations

from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple


def _leaves(root: Mapping) -> Iterator[Tuple[Tuple[str, ...], Any]]:
    # explicit stack: record data can nest deeper than the recursion limit
    stack: List[Iterator] = [iter(root.items())]
    keys: List[str] = []
    while stack:
        nxt = next(stack[-1], None)
        if nxt is None:
            stack.pop()
            if keys:
                keys.pop()
            continue
        k, v = nxt
        if isinstance(v, Mapping):
            stack.append(iter(v.items()))
            keys.append(str(k))
            continue
        yield tuple(keys) + (str(k),), v


def flatten_scope(section: Any) -> Dict[str, Any]:
    """
    Flat lookup table for rule evaluation.

    Every leaf gets two entries: its own key (so a rule inside a group can
    reference a sibling without knowing the group key) and its dotted path
    from the section root (for disambiguating same-named fields across
    groups).

        {"visit_type": "NEW", "vitals": {"bp": "120/80"}}
        -> {"visit_type": "NEW", "bp": "120/80", "vitals.bp": "120/80"}
    """
    out: Dict[str, Any] = {}
    if isinstance(section, Mapping):
        for path, v in _leaves(section):
            out[path[-1]] = v            # bare key, last writer wins
            out[".".join(path)] = v      # section-qualified
    return out


def group_scope(section_scope: Mapping[str, Any], local_root: Optional[Any]) -> Dict[str, Any]:
    """
    Section scope with the enclosing group's bare keys layered on top.
    Dotted keys always stay section-qualified.
    """
    out = dict(section_scope or {})
    if isinstance(local_root, Mapping):
        for path, v in _leaves(local_root):
            out[path[-1]] = v
    return out

# FILE: emr_forms/utils/text.py
from __future__ import annotations

import re
from typing import Any, Optional, Set

from emr_forms.core.config import settings

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify_key(v: Any, max_len: Optional[int] = None) -> str:
    """
    Stable field identifier from free text.
    Example: "Blood Pressure (mmHg)" -> "blood_pressure_mmhg"
    """
    if v is None:
        return ""
    limit = int(max_len or settings.EMR_KEY_MAX_LEN)
    s = _NON_ALNUM.sub("_", str(v).strip().lower()).strip("_")
    return s[:limit].strip("_")


def norm_code(v: Any) -> str:
    return slugify_key(v).upper()


def safe_str(v: Any) -> str:
    if v is None:
        return ""
    return v.strip() if isinstance(v, str) else str(v).strip()


def unique_key(base: str, taken: Set[str], max_len: Optional[int] = None) -> str:
    """
    Returns base, or base_2 / base_3 ... when base is already taken.
    The chosen key is added to `taken`.
    """
    limit = int(max_len or settings.EMR_KEY_MAX_LEN)
    k = base
    i = 2
    while k in taken:
        suffix = f"_{i}"
        k = base[: max(limit - len(suffix), 1)].rstrip("_") + suffix
        i += 1
    taken.add(k)
    return k

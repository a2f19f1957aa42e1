# FILE: emr_forms/utils/respo.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def _envelope(ok_: bool, data: Any, status: int, **extra: Any) -> JSONResponse:
    body = {"ok": ok_, "data": data, **extra}
    return JSONResponse(status_code=int(status), content=jsonable_encoder(body))


def ok(data: Any, status: int = 200) -> JSONResponse:
    """Engine result under `data`; callers always pass a dict of results."""
    return _envelope(True, data, status)


def err(message: str, status: int = 400, *, code: Optional[str] = None, details: Any = None) -> JSONResponse:
    """
    Error envelope. `code` is a stable machine-readable tag (VALIDATION_ERROR
    for bad request bodies); `details` carries per-field errors when present.
    """
    error: Dict[str, Any] = {"msg": str(message)}
    if code:
        error["code"] = code
    if details is not None:
        error["details"] = details
    return _envelope(False, None, status, error=error, message=str(message))

# FILE: emr_forms/api/routes_emr_forms.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, HTTPException
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from emr_forms.services.emr_record_defaults import initialize_record
from emr_forms.services.emr_record_paths import ensure_section, section_data, set_path
from emr_forms.services.emr_record_validation import calc_filled_count, calc_section_progress, find_missing
from emr_forms.services.emr_schema_normalizer import normalize_template, schema_summary
from emr_forms.utils.respo import err, ok

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/emr/forms", tags=["EMR Forms"])


def as_record_obj(v: Any) -> Dict[str, Any]:
    """
    Accept dict directly or a JSON-string object; None/"" -> {}.
    Anything else is a client error (record data is never silently dropped).
    """
    if v is None:
        return {}
    if isinstance(v, dict):
        return v
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return {}
        try:
            parsed = json.loads(s)
        except ValueError:
            raise ValueError("data must be valid JSON")
        if isinstance(parsed, dict):
            return parsed
    raise ValueError("data must be an object keyed by section code")


# -----------------------
# Request Models
# -----------------------
class RecordIn(BaseModel):
    """
    Template can arrive as the template row itself, its schema_json,
    or a bare section list; any of these keys are accepted.
    """
    model_config = ConfigDict(extra="ignore")

    template: Any = Field(default=None, validation_alias=AliasChoices("template", "schema_json", "schema"))
    data: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("data", "record", "content"))

    @field_validator("data", mode="before")
    @classmethod
    def v_data(cls, v: Any) -> Dict[str, Any]:
        return as_record_obj(v)


class RecordSetIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("data", "record", "content"))
    section_code: str = Field(..., min_length=1, max_length=64)
    path: List[str] = Field(default_factory=list)
    value: Any = None

    @field_validator("data", mode="before")
    @classmethod
    def v_data(cls, v: Any) -> Dict[str, Any]:
        return as_record_obj(v)

    @field_validator("path", mode="before")
    @classmethod
    def v_path(cls, v: Any) -> List[str]:
        # "vitals.bp" is accepted as shorthand for ["vitals", "bp"]
        if v is None:
            return []
        if isinstance(v, str):
            return [p for p in v.split(".") if p]
        return v


# -----------------------
# Schema
# -----------------------
@router.post("/schema/normalize")
def api_schema_normalize(payload: Any = Body(default=None)):
    try:
        schema = normalize_template(payload)
        return ok({"schema": schema.as_raw(), "summary": schema_summary(schema).model_dump()}, 200)
    except HTTPException:
        raise
    except Exception as ex:
        logger.exception("Schema normalize failed")
        return err(f"Schema normalize failed: {ex}", 500)


# -----------------------
# Records
# -----------------------
@router.post("/records/init")
def api_record_init(payload: RecordIn):
    try:
        schema = normalize_template(payload.template)
        return ok({"data": initialize_record(schema, payload.data)}, 200)
    except HTTPException:
        raise
    except Exception as ex:
        logger.exception("Record init failed")
        return err(f"Record init failed: {ex}", 500)


@router.post("/records/set")
def api_record_set(payload: RecordSetIn):
    try:
        record = ensure_section(payload.data, payload.section_code)
        if not payload.path:
            raise HTTPException(status_code=422, detail="path is required")
        record[payload.section_code] = set_path(
            section_data(record, payload.section_code), payload.path, payload.value
        )
        return ok({"data": record}, 200)
    except HTTPException:
        raise
    except Exception as ex:
        logger.exception("Record set failed")
        return err(f"Record set failed: {ex}", 500)


@router.post("/records/validate")
def api_record_validate(payload: RecordIn):
    try:
        schema = normalize_template(payload.template)
        missing = find_missing(schema, payload.data)
        return ok({
            "missing": [m.model_dump() for m in missing],
            "can_save": len(missing) == 0,
            "progress": calc_filled_count(schema, payload.data).model_dump(),
        }, 200)
    except HTTPException:
        raise
    except Exception as ex:
        logger.exception("Record validate failed")
        return err(f"Record validate failed: {ex}", 500)


@router.post("/records/progress")
def api_record_progress(payload: RecordIn):
    try:
        schema = normalize_template(payload.template)
        total = calc_filled_count(schema, payload.data)
        sections = calc_section_progress(schema, payload.data)
        return ok({
            "filled": total.filled,
            "total": total.total,
            "sections": [s.model_dump() for s in sections],
        }, 200)
    except HTTPException:
        raise
    except Exception as ex:
        logger.exception("Record progress failed")
        return err(f"Record progress failed: {ex}", 500)

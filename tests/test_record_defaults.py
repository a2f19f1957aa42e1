"""Tests for default value initialization."""

import copy

from emr_forms.services.emr_record_defaults import default_for_field, initialize_record
from emr_forms.services.emr_schema_normalizer import normalize_template

SCHEMA = {
    "schema_version": 1,
    "sections": [
        {
            "code": "S1",
            "label": "Operation Notes",
            "items": [
                {"key": "diagnosis", "type": "text"},
                {"key": "cement_used", "type": "boolean"},
                {"key": "implants", "type": "table"},
                {"key": "symptoms", "type": "multiselect", "options": ["fever", "cough"]},
                {"key": "anaesthesia", "type": "select", "options": ["GA", "SA"], "default_value": "GA"},
                {"key": "position", "type": "text", "default": "Supine"},
                {"key": "side", "type": "text", "ui": {"default": "LEFT"}},
                {"key": "asa", "type": "number", "meta": {"default": 2}},
                {
                    "key": "vitals", "type": "group",
                    "items": [
                        {"key": "bp", "type": "text"},
                        {"key": "counts", "type": "group", "items": [
                            {"key": "swab_ok", "type": "checkbox"},
                        ]},
                    ],
                },
            ],
        },
        {"code": "S2", "items": [{"key": "notes", "type": "textarea", "default_value": ["a"]}]},
    ],
}


def test_fills_type_and_declared_defaults():
    out = initialize_record(SCHEMA, {})
    assert out["S1"] == {
        "diagnosis": "",
        "cement_used": False,
        "implants": [],
        "symptoms": [],
        "anaesthesia": "GA",
        "position": "Supine",
        "side": "LEFT",
        "asa": 2,
        "vitals": {"bp": "", "counts": {"swab_ok": False}},
    }
    assert out["S2"] == {"notes": ["a"]}


def test_default_values_are_copied():
    schema = normalize_template(SCHEMA)
    a = initialize_record(schema, {})
    b = initialize_record(schema, {})
    a["S2"]["notes"].append("b")
    assert b["S2"]["notes"] == ["a"]


def test_never_overwrites_existing_values():
    existing = {
        "S1": {
            "diagnosis": "Fracture",
            "cement_used": None,
            "symptoms": ["cough"],
            "vitals": {"bp": "120/80"},
        },
        "OTHER": {"keep": 1},
    }
    before = copy.deepcopy(existing)
    out = initialize_record(SCHEMA, existing)

    assert existing == before
    assert out["S1"]["diagnosis"] == "Fracture"
    assert out["S1"]["cement_used"] is None
    assert out["S1"]["symptoms"] == ["cough"]
    assert out["S1"]["vitals"]["bp"] == "120/80"
    assert out["S1"]["vitals"]["counts"] == {"swab_ok": False}
    assert out["OTHER"] == {"keep": 1}


def test_legacy_keys_count_as_existing():
    existing = {"S1": {"vitals.bp": "110/70", "swab_ok": True}}
    out = initialize_record(SCHEMA, existing)
    # both grouped fields already have answers, so no group object is created
    assert "vitals" not in out["S1"]
    assert out["S1"]["vitals.bp"] == "110/70"
    assert out["S1"]["swab_ok"] is True


def test_legacy_keys_ignored_when_disabled():
    existing = {"S1": {"vitals.bp": "110/70"}}
    out = initialize_record(SCHEMA, existing, legacy=False)
    assert out["S1"]["vitals"]["bp"] == ""


def test_scalar_group_payload_left_alone():
    out = initialize_record(SCHEMA, {"S1": {"vitals": "see scanned sheet"}})
    assert out["S1"]["vitals"] == "see scanned sheet"


def test_section_payload_created_lazily():
    out = initialize_record(SCHEMA, {"S1": None})
    assert isinstance(out["S1"], dict)
    assert isinstance(out["S2"], dict)


def test_accepts_raw_template_list():
    out = initialize_record(["History"], None)
    assert out == {"HISTORY": {"history_notes": ""}}


def test_default_for_field_precedence():
    schema = normalize_template({"sections": [{"code": "S", "items": [
        {"key": "a", "type": "text", "default_value": "dv", "default": "d", "ui": {"default": "u"}},
        {"key": "b", "type": "text", "default_value": None, "default": "d"},
        {"key": "c", "type": "boolean", "default_value": True},
    ]}]})
    a, b, c = schema.sections[0].items
    assert default_for_field(a) == "dv"
    assert default_for_field(b) == "d"
    assert default_for_field(c) is True

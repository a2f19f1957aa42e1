"""Tests for required-field validation and completion counts."""

import pytest

from emr_forms.services.emr_record_defaults import initialize_record
from emr_forms.services.emr_record_validation import (
    calc_filled_count,
    calc_section_progress,
    find_missing,
    is_empty_value,
    iter_visible_fields,
)
from emr_forms.services.emr_schema_normalizer import normalize_template


def _schema(*items, code="S1", label="Intake"):
    return normalize_template({"schema_version": 1, "sections": [{"code": code, "label": label, "items": list(items)}]})


CHIEF_COMPLAINT = {"key": "chief_complaint", "type": "text", "label": "Chief Complaint", "required": True}


def test_required_field_missing():
    missing = find_missing(_schema(CHIEF_COMPLAINT), {"S1": {}})
    assert len(missing) == 1
    m = missing[0]
    assert (m.section_key, m.section_title) == ("S1", "Intake")
    assert (m.field_key, m.field_label) == ("chief_complaint", "Chief Complaint")
    assert m.path == ["chief_complaint"]


def test_rule_hidden_field_is_not_missing():
    field = dict(CHIEF_COMPLAINT, rules={"visible_when": {"op": "eq", "field_key": "visit_type", "value": "FOLLOWUP"}})
    assert find_missing(_schema(field), {"S1": {"visit_type": "NEW"}}) == []
    assert len(find_missing(_schema(field), {"S1": {"visit_type": "FOLLOWUP"}})) == 1


def test_group_completion():
    schema = _schema({"key": "vitals", "type": "group", "items": [{"key": "bp", "type": "text", "required": True}]})
    count = calc_filled_count(schema, {"S1": {"vitals": {"bp": "120/80"}}})
    assert (count.filled, count.total) == (1, 1)
    assert find_missing(schema, {"S1": {"vitals": {"bp": "120/80"}}}) == []


def test_ui_hidden_field_excluded_from_counts():
    schema = _schema(
        {"key": "a", "type": "text", "required": True, "ui": {"hidden": True}},
        {"key": "b", "type": "text"},
    )
    count = calc_filled_count(schema, {"S1": {"a": "x", "b": ""}})
    assert (count.filled, count.total) == (0, 1)
    assert find_missing(schema, {"S1": {}}) == []


def test_hidden_group_hides_children():
    schema = _schema(
        {"key": "cement_used", "type": "boolean"},
        {
            "key": "cement_details", "type": "group",
            "rules": {"visible_when": {"op": "eq", "field_key": "cement_used", "value": True}},
            "items": [{"key": "cement_type", "type": "text", "required": True}],
        },
    )
    assert find_missing(schema, {"S1": {"cement_used": False}}) == []
    assert [m.field_key for m in find_missing(schema, {"S1": {"cement_used": True}})] == ["cement_type"]
    assert calc_filled_count(schema, {"S1": {"cement_used": False}}).total == 1


def test_group_rule_references_sibling_by_bare_key():
    schema = _schema({
        "key": "drain", "type": "group",
        "items": [
            {"key": "drain_used", "type": "boolean"},
            {"key": "drain_type", "type": "text", "required": True,
             "rules": {"visible_when": {"op": "truthy", "field_key": "drain_used"}}},
        ],
    })
    assert find_missing(schema, {"S1": {"drain": {"drain_used": False}}}) == []
    missing = find_missing(schema, {"S1": {"drain": {"drain_used": True}}})
    assert [m.path for m in missing] == [["drain", "drain_type"]]


def test_group_rule_falls_back_to_section_field():
    schema = _schema(
        {"key": "visit_type", "type": "select", "options": ["NEW", "FOLLOWUP"]},
        {"key": "followup", "type": "group", "items": [
            {"key": "last_visit", "type": "date", "required": True,
             "rules": {"visible_when": {"op": "eq", "field_key": "visit_type", "value": "FOLLOWUP"}}},
        ]},
    )
    assert find_missing(schema, {"S1": {"visit_type": "NEW"}}) == []
    assert len(find_missing(schema, {"S1": {"visit_type": "FOLLOWUP"}})) == 1


def test_legacy_flat_value_satisfies_required():
    schema = _schema({"key": "vitals", "type": "group", "items": [{"key": "bp", "type": "text", "required": True}]})
    assert find_missing(schema, {"S1": {"bp": "120/80"}}) == []
    assert find_missing(schema, {"S1": {"vitals.bp": "120/80"}}) == []
    assert len(find_missing(schema, {"S1": {"bp": "120/80"}}, legacy=False)) == 1


def test_missing_section_payload():
    assert len(find_missing(_schema(CHIEF_COMPLAINT), {})) == 1
    assert len(find_missing(_schema(CHIEF_COMPLAINT), None)) == 1


def test_boolean_required_never_missing():
    schema = _schema({"key": "consent", "type": "boolean", "required": True})
    assert find_missing(schema, {"S1": {}}) == []


@pytest.mark.parametrize("ftype,value,empty", [
    ("multiselect", [], True),
    ("multiselect", "fever", True),
    ("multiselect", ["fever"], False),
    ("table", [{"implant": "x"}], False),
    ("table", None, True),
    ("boolean", None, False),
    ("text", None, True),
    ("text", "   ", True),
    ("text", " x ", False),
    ("chips", [], True),
    ("chips", ["a"], False),
    ("signature", {}, True),
    ("signature", {"data_url": "  "}, True),
    ("signature", {"data_url": None}, True),
    ("signature", {"data_url": "data:image/png;base64,AAA"}, False),
    ("file", {"name": ""}, True),
    ("file", {"name": "scan.pdf"}, False),
    ("table", {"rows": 1}, True),
    ("text", {"any": 1}, False),
    ("number", 0, False),
    ("number", 12.5, False),
])
def test_is_empty_value(ftype, value, empty):
    assert is_empty_value(ftype, value) is empty


def test_completion_bound_and_total_matches_visible_walk():
    schema = _schema(
        {"key": "visit_type", "type": "select", "options": ["NEW", "FOLLOWUP"]},
        {"key": "notes", "type": "textarea", "ui": {"hidden": True}},
        {"key": "vitals", "type": "group", "items": [
            {"key": "bp", "type": "text"},
            {"key": "pulse", "type": "number",
             "rules": {"visible_when": {"op": "exists", "field_key": "bp"}}},
        ]},
    )
    for data in ({}, {"S1": {"visit_type": "NEW"}}, {"S1": {"vitals": {"bp": "120/80", "pulse": 72}}}):
        count = calc_filled_count(schema, data)
        assert 0 <= count.filled <= count.total
        assert count.total == len(list(iter_visible_fields(schema, data)))
    count = calc_filled_count(schema, {"S1": {"vitals": {"bp": "120/80", "pulse": 72}}})
    assert (count.filled, count.total) == (2, 3)


def test_initialized_record_counts():
    schema = _schema(CHIEF_COMPLAINT, {"key": "smoker", "type": "boolean"})
    data = initialize_record(schema, {})
    count = calc_filled_count(schema, data)
    # boolean defaults count as answered
    assert (count.filled, count.total) == (1, 2)
    assert [m.field_key for m in find_missing(schema, data)] == ["chief_complaint"]


def test_section_progress():
    schema = normalize_template({"sections": [
        {"code": "A", "label": "History", "items": [{"key": "x", "type": "text"}, {"key": "y", "type": "text"}]},
        {"code": "B", "label": "Empty", "items": []},
    ]})
    progress = calc_section_progress(schema, {"A": {"x": "done"}})
    assert [(p.section_key, p.filled, p.total, p.percent) for p in progress] == [("A", 1, 2, 50), ("B", 0, 0, 100)]
    assert calc_filled_count(schema, {"A": {"x": "done"}}, "A").total == 2


def test_percent_rounds_half_up():
    schema = _schema(*[{"key": f"f{i}", "type": "text"} for i in range(8)])
    progress = calc_section_progress(schema, {"S1": {"f0": "x"}})
    assert (progress[0].filled, progress[0].total, progress[0].percent) == (1, 8, 13)


def test_deeply_nested_answers():
    deep = {}
    cur = deep
    for _ in range(5000):
        cur["n"] = {}
        cur = cur["n"]
    cur["leaf"] = "x"
    schema = _schema(CHIEF_COMPLAINT, {"key": "n", "type": "text"})
    data = {"S1": {"chief_complaint": "Fever", "n": deep}}
    assert find_missing(schema, data) == []
    assert calc_filled_count(schema, data).total == 2


def test_nested_group_rule_keeps_section_qualified_key():
    schema = _schema(
        {"key": "b", "type": "group", "items": [{"key": "x", "type": "text"}]},
        {"key": "a", "type": "group", "items": [
            {"key": "b", "type": "group", "items": [{"key": "x", "type": "text"}]},
            {"key": "note", "type": "text", "required": True,
             "rules": {"visible_when": {"op": "eq", "field_key": "b.x", "value": "top"}}},
        ]},
    )
    data = {"S1": {"b": {"x": "top"}, "a": {"b": {"x": "inner"}}}}
    assert [m.field_key for m in find_missing(schema, data)] == ["note"]

"""Tests for definition and dashboard content validation."""

import yaml

from flowsync.models.resources import ResourceKey, ResourceKind
from flowsync.validation import validate_dashboard, validate_definition
from flowsync.validation.schema import DEFINITION_SCHEMA
from flowsync.validation.schema_validator import validate_against


def _definition(**overrides) -> str:
    data = {
        "id": "hello",
        "namespace": "company.team",
        "tasks": [{"id": "log", "type": "io.kestra.plugin.core.log.Log", "message": "hi"}],
    }
    data.update(overrides)
    return yaml.dump(data)


# --- Definition Tests ---


def test_valid_definition():
    result = validate_definition(_definition())
    assert result.passed
    assert result.summary() == "valid"


def test_valid_definition_matches_key():
    key = ResourceKey("company.team", "hello", ResourceKind.DEFINITION)
    assert validate_definition(_definition(), key).passed


def test_definition_bytes_accepted():
    assert validate_definition(_definition().encode("utf-8")).passed


def test_definition_missing_required_fields():
    result = validate_definition("id: hello\n")
    assert not result.passed
    assert any("namespace" in i for i in result.issues)
    assert any("tasks" in i for i in result.issues)


def test_definition_empty_tasks():
    result = validate_definition(_definition(tasks=[]))
    assert any("array too short" in i for i in result.issues)


def test_definition_task_without_type():
    result = validate_definition(_definition(tasks=[{"id": "log"}]))
    assert result.issues == [".tasks[0]: missing required property 'type'"]


def test_definition_bad_identifier():
    result = validate_definition(_definition(id="has space"))
    assert any("pattern" in i for i in result.issues)


def test_definition_wrong_type():
    result = validate_definition(_definition(disabled="yes"))
    assert any(".disabled: expected type 'boolean'" in i for i in result.issues)


def test_definition_identity_mismatch():
    key = ResourceKey("company.other", "renamed", ResourceKind.DEFINITION)
    result = validate_definition(_definition(), key)
    assert len(result.issues) == 2
    assert "does not match 'renamed'" in result.issues[0]
    assert "does not match 'company.other'" in result.issues[1]


def test_definition_yaml_error():
    result = validate_definition("id: [unclosed\n")
    assert len(result.issues) == 1
    assert result.issues[0].startswith("/: YAML parse error")


def test_definition_empty_document():
    assert validate_definition("").issues == ["/: document is empty"]


def test_definition_not_utf8():
    result = validate_definition(b"\xff\xfe")
    assert result.issues[0].startswith("/: content is not valid UTF-8")


def test_definition_not_a_mapping():
    result = validate_definition("- a\n- b\n")
    assert result.issues == ["/: expected type 'object', got list"]


def test_summary_joins_issues():
    result = validate_definition("id: hello\n")
    assert result.summary() == "; ".join(result.issues)


# --- Dashboard Tests ---


def test_valid_dashboard():
    content = "id: overview\ntitle: Overview\ncharts:\n  - id: runs\n    type: io.kestra.plugin.core.dashboard.chart.TimeSeries\n"
    key = ResourceKey("", "overview", ResourceKind.DASHBOARD)
    assert validate_dashboard(content, key).passed


def test_dashboard_missing_title():
    result = validate_dashboard("id: overview\n")
    assert result.issues == ["/: missing required property 'title'"]


def test_dashboard_id_mismatch():
    key = ResourceKey("", "other", ResourceKind.DASHBOARD)
    result = validate_dashboard("id: overview\ntitle: Overview\n", key)
    assert result.issues == ["/: id 'overview' does not match 'other'"]


# --- Schema Validator Tests ---


def test_validate_against_nested_paths():
    data = {"id": "x", "namespace": "y", "tasks": [{"id": "a", "type": "t"}, {"id": 5, "type": "t"}]}
    issues = validate_against(data, DEFINITION_SCHEMA)
    assert issues == [".tasks[1].id: expected type 'string', got int"]


def test_validate_against_enum():
    issues = validate_against("c", {"type": "string", "enum": ["a", "b"]})
    assert issues == ["/: value 'c' not in allowed values ['a', 'b']"]


def test_validate_against_bool_is_not_integer():
    assert validate_against(True, {"type": "integer"})

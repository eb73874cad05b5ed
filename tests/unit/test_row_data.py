from __future__ import annotations

from filefeed.models.row_data import ProcessedRow, ValidationFinding
from filefeed.models.schema import UNSET, Field, Severity, ValidationRule
from filefeed.validation.fields import validate_field


def test_primary_error_prefers_error_over_earlier_warning():
    code = Field(
        key="code",
        label="Code",
        rules=(
            ValidationRule(kind="max_length", severity=Severity.WARNING, params={"value": 3}),
            ValidationRule(kind="pattern", params={"pattern": "^[0-9]+$"}),
        ),
    )
    findings = validate_field("abcdef", code)
    row = ProcessedRow(id="row-0", data={"code": "abcdef"}, errors=tuple(findings))

    assert [f.severity for f in row.errors_for("code")] == [Severity.WARNING, Severity.ERROR]
    shown = row.primary_error("code")
    assert shown is not None
    assert shown.severity is Severity.ERROR
    assert shown.message == "Code does not match the expected format"
    assert row.is_valid is False


def test_primary_error_falls_back_to_first_warning():
    row = ProcessedRow(
        id="row-0",
        data={"age": 200},
        errors=(
            ValidationFinding("age", "first", Severity.WARNING),
            ValidationFinding("age", "second", Severity.WARNING),
        ),
    )
    assert row.primary_error("age").message == "first"
    assert row.primary_error("email") is None
    assert row.is_valid is True


def test_to_dict_serializes_unset_as_none():
    row = ProcessedRow(id="row-2", data={"age": UNSET}, errors=(ValidationFinding("age", "bad", Severity.ERROR),))
    assert row.to_dict() == {
        "id": "row-2",
        "data": {"age": None},
        "errors": [{"field": "age", "message": "bad", "severity": "error"}],
        "isValid": False,
    }

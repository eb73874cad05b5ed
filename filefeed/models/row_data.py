from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from .schema import UNSET, Severity

"""Row level models for the import pipeline.

ImportedData is what the import adapter (or a host) hands to the pipeline:
source headers plus raw rows indexed by header position. ProcessedRow is the
result of coercion and validation for one raw row.
"""

__all__ = [
    "ImportedData",
    "FieldMapping",
    "ValidationFinding",
    "ProcessedRow",
    "serialize_value",
]


@dataclass(frozen=True)
class ImportedData:
    """Tokenized rows from a file import, in source order."""
    headers: list[str]
    rows: list[Sequence[Any]]
    source_name: str | None = None  # ファイル名 (任意)


@dataclass(frozen=True)
class FieldMapping:
    """Canonical source column -> target field pair."""
    source: str
    target: str | None
    transform: str | None = None


@dataclass(frozen=True)
class ValidationFinding:
    """One severity-tagged result of checking a value against a field."""
    field: str
    message: str
    severity: Severity

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message, "severity": self.severity.value}


@dataclass(frozen=True)
class ProcessedRow:
    """A row after coercion and validation.

    ``id`` is assigned once from the row's original position and is the join
    key for every later edit or delete. ``is_valid`` is derived from
    ``errors`` and never set independently.
    """
    id: str
    data: dict[str, Any]
    errors: tuple[ValidationFinding, ...] = ()
    is_valid: bool = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "errors", tuple(self.errors))
        object.__setattr__(self, "is_valid", not any(e.is_error for e in self.errors))

    def errors_for(self, field_key: str) -> list[ValidationFinding]:
        return [e for e in self.errors if e.field == field_key]

    def primary_error(self, field_key: str) -> ValidationFinding | None:
        """Finding shown for a cell: first error, else first warning."""
        findings = self.errors_for(field_key)
        for f in findings:
            if f.is_error:
                return f
        return findings[0] if findings else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "data": {k: serialize_value(v) for k, v in self.data.items()},
            "errors": [e.to_dict() for e in self.errors],
            "isValid": self.is_valid,
        }


def serialize_value(value: Any) -> Any:
    """JSON friendly form of a coerced value (UNSET -> None, dates -> ISO)."""
    if value is UNSET:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {k: serialize_value(v) for k, v in value.items()}
    return value

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

"""Schema model for the workbook import pipeline.

A sheet configuration is a read-only list of Field definitions. Each Field
declares its value type, whether it is required, and an ordered list of
ValidationRule entries evaluated by filefeed.validation.fields.

These objects are created once per configuration load (see
filefeed.config.loader) and never mutated afterwards.
"""

__all__ = [
    "UNSET",
    "FieldType",
    "Severity",
    "ValidationRule",
    "Field",
    "SheetConfig",
    "WorkbookConfig",
    "RULE_KINDS",
]


class _Unset:
    """Sentinel for a coerced value that is absent (distinct from 0/False/"")."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "unset"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Unset:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Unset:
        return self

    def __reduce__(self) -> str:
        return "UNSET"


UNSET = _Unset()


class FieldType(Enum):
    """Declared value type of a target field."""
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


class Severity(Enum):
    """Finding severity. Only ERROR affects row validity."""
    ERROR = "error"
    WARNING = "warning"


# rule kind -> 必須パラメータ
RULE_KINDS: dict[str, tuple[str, ...]] = {
    "pattern": ("pattern",),
    "email": (),
    "min": ("value",),
    "max": ("value",),
    "min_length": ("value",),
    "max_length": ("value",),
    "one_of": ("values",),
    "not_blank": (),
}


@dataclass(frozen=True)
class ValidationRule:
    """A named check with a severity and a message template.

    The template may reference {field}, {label}, {value}, {row} and any key
    of ``params``.
    """
    kind: str
    severity: Severity = Severity.ERROR
    message: str | None = None
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Field:
    """Target-schema column definition."""
    key: str
    label: str
    type: FieldType = FieldType.STRING
    required: bool = False
    rules: tuple[ValidationRule, ...] = ()
    transform: str | None = None  # transform registry identifier


@dataclass(frozen=True)
class SheetConfig:
    """One target sheet: a slug, a display name and its fields."""
    slug: str
    name: str
    fields: tuple[Field, ...]

    def field_by_key(self, key: str) -> Field | None:
        for f in self.fields:
            if f.key == key:
                return f
        return None


@dataclass(frozen=True)
class WorkbookConfig:
    """Root configuration: ordered sheets (the first one is active on start)."""
    name: str
    sheets: tuple[SheetConfig, ...]

    def sheet(self, slug: str) -> SheetConfig | None:
        for s in self.sheets:
            if s.slug == slug:
                return s
        return None

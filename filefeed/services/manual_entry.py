from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Literal

from ..models.row_data import ProcessedRow, ValidationFinding
from ..models.schema import Field
from ..transform.values import is_blank_raw, transform_value
from ..validation.fields import validate_field

"""Manual entry engine: rows typed by the user without a file import.

A manual row exists only once at least one of its fields holds a non-blank
value. Empty slots are never validated, counted or submitted.

Validation is incremental: when a row first appears all of its fields are
validated, afterwards an edit re-validates only the edited field. Rows are
keyed "manual-<index>" where index is the slot the row was created in; the
submitted output is sorted by that index, not by edit order.
"""

__all__ = [
    "ManualEntryEngine",
    "ManualFilter",
    "manual_key",
]

logger = logging.getLogger(__name__)

ManualFilter = Literal["all", "valid", "invalid"]


def manual_key(row_index: int) -> str:
    return f"manual-{row_index}"


def _index_of(key: str) -> int:
    try:
        return int(key.removeprefix("manual-"))
    except ValueError:
        return 0


class ManualEntryEngine:
    """Sparse row store for manual data entry sharing the sheet's fields."""

    def __init__(self, fields: Sequence[Field] | None = None) -> None:
        self._fields: tuple[Field, ...] = tuple(fields or ())
        self._data: dict[str, dict[str, Any]] = {}
        # row key -> field key -> findings
        self._errors: dict[str, dict[str, list[ValidationFinding]]] = {}
        self.selected_filter: ManualFilter = "all"

    @property
    def fields(self) -> tuple[Field, ...]:
        return self._fields

    def set_fields(self, fields: Sequence[Field] | None) -> None:
        """Switch schema; existing entries are dropped."""
        self._fields = tuple(fields or ())
        self.reset()

    def _field(self, key: str) -> Field | None:
        for f in self._fields:
            if f.key == key:
                return f
        return None

    def _validate_cell(self, key: str, f: Field, row_index: int) -> list[ValidationFinding]:
        raw = self._data[key].get(f.key)
        return validate_field(transform_value(raw, f.type), f, row_index)

    def set_value(self, row_index: int, field_key: str, raw: Any) -> None:
        """Record a typed value for (row, field) and update that row's findings."""
        f = self._field(field_key)
        if f is None:
            logger.warning(f"manual entry: unknown field '{field_key}' ignored")
            return
        key = manual_key(row_index)
        is_new = key not in self._data
        row = self._data.setdefault(key, {})
        row[field_key] = raw

        if all(is_blank_raw(v) for v in row.values()):
            # 全フィールド空 -> 行として存在しない
            del self._data[key]
            self._errors.pop(key, None)
            return

        if is_new:
            self._errors[key] = {fld.key: self._validate_cell(key, fld, row_index) for fld in self._fields}
        else:
            self._errors.setdefault(key, {})[field_key] = self._validate_cell(key, f, row_index)

    def errors_for(self, row_index: int) -> dict[str, list[ValidationFinding]]:
        return {k: list(v) for k, v in self._errors.get(manual_key(row_index), {}).items()}

    def _row_is_valid(self, key: str) -> bool:
        return not any(e.is_error for findings in self._errors.get(key, {}).values() for e in findings)

    @property
    def total_rows(self) -> int:
        return len(self._data)

    @property
    def valid_rows(self) -> int:
        return sum(1 for key in self._data if self._row_is_valid(key))

    @property
    def invalid_rows(self) -> int:
        return self.total_rows - self.valid_rows

    def is_row_visible(self, row_index: int) -> bool:
        """Filter predicate for the manual grid; empty slots show only under "all"."""
        if self.selected_filter == "all":
            return True
        key = manual_key(row_index)
        if key not in self._data:
            return False
        valid = self._row_is_valid(key)
        return valid if self.selected_filter == "valid" else not valid

    def build_rows(self) -> list[ProcessedRow]:
        """Processed rows of every non-empty manual row, in creation order."""
        rows: list[ProcessedRow] = []
        for key in sorted(self._data, key=_index_of):
            index = _index_of(key)
            raw = self._data[key]
            data: dict[str, Any] = {}
            errors: list[ValidationFinding] = []
            for f in self._fields:
                value = transform_value(raw.get(f.key), f.type)
                data[f.key] = value
                errors.extend(validate_field(value, f, index))
            rows.append(ProcessedRow(id=f"manual-row-{index}", data=data, errors=tuple(errors)))
        return rows

    def reset(self) -> None:
        self._data.clear()
        self._errors.clear()
        self.selected_filter = "all"

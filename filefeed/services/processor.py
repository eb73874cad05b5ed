from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from ..models.row_data import FieldMapping, ImportedData, ProcessedRow, ValidationFinding
from ..models.schema import UNSET, Field, Severity
from ..transform.values import TransformFn, is_blank_raw, transform_value
from ..validation.fields import validate_field

"""Row processor: mapping + coercion + validation over a whole row set.

process_rows() is deterministic: the same raw rows and mappings always give
the same ids, data and findings. Ids come from the row's position in the
original raw sequence ("row-<index>").

A bad cell never aborts its row or the batch. Only a missing raw row
collection aborts the pass, and then the result is empty (never partial).
"""

__all__ = [
    "ResolvedMapping",
    "resolve_mappings",
    "process_rows",
    "coerce_cell",
    "reprocess_cell",
    "row_id_for",
]

logger = logging.getLogger(__name__)

ProgressFn = Callable[[int], None]


class ResolvedMapping:
    """A canonical mapping joined with its target Field and column position."""

    __slots__ = ("mapping", "field", "column")

    def __init__(self, mapping: FieldMapping, field: Field, column: int | None) -> None:
        self.mapping = mapping
        self.field = field
        self.column = column

    @property
    def transform_id(self) -> str | None:
        # マッピング側の指定が Field 側より優先
        return self.mapping.transform or self.field.transform


def row_id_for(index: int) -> str:
    return f"row-{index}"


def resolve_mappings(
    headers: Sequence[str], field_mappings: Sequence[FieldMapping], fields: Sequence[Field]
) -> list[ResolvedMapping]:
    """Join mappings to fields; unknown targets and duplicate targets are dropped."""
    by_key = {f.key: f for f in fields}
    positions: dict[str, int] = {}
    for i, header in enumerate(headers):
        positions.setdefault(str(header), i)

    resolved: list[ResolvedMapping] = []
    seen: set[str] = set()
    for m in field_mappings:
        if not m.target:
            continue
        f = by_key.get(m.target)
        if f is None:
            logger.debug(f"mapping target not in schema, skipped: {m.source} -> {m.target}")
            continue
        if m.target in seen:
            logger.debug(f"duplicate mapping target skipped: {m.source} -> {m.target}")
            continue
        seen.add(m.target)
        resolved.append(ResolvedMapping(m, f, positions.get(m.source)))
    return resolved


def _raw_cell(row: Any, rm: ResolvedMapping) -> Any:
    if isinstance(row, Mapping):
        return row.get(rm.mapping.source)
    if rm.column is None or rm.column >= len(row):
        return None
    return row[rm.column]


def coerce_cell(
    raw: Any,
    field: Field,
    transform_id: str | None = None,
    transform_registry: Mapping[str, TransformFn] | None = None,
) -> tuple[Any, list[ValidationFinding]]:
    """Coerce one raw value for ``field``.

    Returns the coerced value plus coercion findings (warnings only): a
    non-blank value that could not be parsed, or a registry transform that
    failed. Validation findings are not included.
    """
    if transform_id is not None:
        fn = (transform_registry or {}).get(transform_id)
        if fn is None:
            # validate_pipeline_config で弾かれていない未登録変換
            return UNSET, [
                ValidationFinding(field.key, f"unknown transform '{transform_id}'", Severity.WARNING)
            ]
        try:
            value = fn(raw)
        except Exception as e:
            logger.warning(f"transform '{transform_id}' failed for field '{field.key}': {e}")
            return UNSET, [
                ValidationFinding(field.key, f"transform '{transform_id}' failed: {e}", Severity.WARNING)
            ]
        return (UNSET if value is None else value), []

    value = transform_value(raw, field.type)
    if value is UNSET and not is_blank_raw(raw):
        return value, [
            ValidationFinding(
                field.key,
                f"{field.label} could not be parsed as {field.type.value}: {str(raw).strip()!r}",
                Severity.WARNING,
            )
        ]
    return value, []


def _process_cell(
    raw: Any,
    rm: ResolvedMapping,
    row_index: int,
    transform_registry: Mapping[str, TransformFn] | None,
) -> tuple[Any, list[ValidationFinding]]:
    value, findings = coerce_cell(raw, rm.field, rm.transform_id, transform_registry)
    return value, validate_field(value, rm.field, row_index) + findings


def process_rows(
    imported: ImportedData | None,
    field_mappings: Sequence[FieldMapping],
    fields: Sequence[Field],
    transform_registry: Mapping[str, TransformFn] | None = None,
    progress: ProgressFn | None = None,
) -> list[ProcessedRow]:
    """Process every raw row into a ProcessedRow.

    Parameters
    ----------
    imported: headers + raw rows; None aborts the pass with an empty result
    field_mappings: canonical mappings (unmapped entries are ignored)
    fields: schema of the current sheet
    transform_registry: named transforms referenced by fields/mappings
    progress: optional callback receiving the number of rows just processed

    Returns
    -------
    One ProcessedRow per raw row in source order. ``data`` holds exactly the
    mapped field keys.
    """
    if imported is None or imported.rows is None:
        logger.warning("no raw rows to process; returning empty result")
        return []

    resolved = resolve_mappings(imported.headers, field_mappings, fields)
    result: list[ProcessedRow] = []
    for index, row in enumerate(imported.rows):
        data: dict[str, Any] = {}
        errors: list[ValidationFinding] = []
        for rm in resolved:
            value, findings = _process_cell(_raw_cell(row, rm), rm, index, transform_registry)
            data[rm.field.key] = value
            errors.extend(findings)
        result.append(ProcessedRow(id=row_id_for(index), data=data, errors=tuple(errors)))
        if progress is not None:
            progress(1)

    logger.debug(
        f"processed rows={len(result)} mapped_fields={len(resolved)} "
        f"invalid={sum(1 for r in result if not r.is_valid)}"
    )
    return result


def reprocess_cell(
    row: ProcessedRow,
    field: Field,
    raw: Any,
    row_index: int = 0,
    transform_registry: Mapping[str, TransformFn] | None = None,
    transform_id: str | None = None,
) -> ProcessedRow:
    """Return ``row`` with one field re-coerced and re-validated.

    Findings of the other fields are kept as they are; the edited field's
    findings are replaced in place (field order of ``row.data``).
    """
    value, findings = coerce_cell(raw, field, transform_id or field.transform, transform_registry)
    findings = validate_field(value, field, row_index) + findings

    data = dict(row.data)
    data[field.key] = value
    errors: list[ValidationFinding] = []
    for key in data:
        if key == field.key:
            errors.extend(findings)
        else:
            errors.extend(e for e in row.errors if e.field == key)
    return replace(row, data=data, errors=tuple(errors))

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from ..models.processing_result import ReviewCounts
from ..models.row_data import FieldMapping, ImportedData, ProcessedRow
from ..models.schema import Field, SheetConfig, WorkbookConfig
from ..models.workbook_step import ALLOWED_TRANSITIONS, WorkbookStep
from ..mapping.resolver import (
    MappingState,
    suggest_mapping,
    to_canonical_field_mappings,
    validate_pipeline_config,
)
from ..transform.values import TransformFn
from .events import WorkbookEvents
from .manual_entry import ManualEntryEngine
from .processor import ProgressFn, process_rows, reprocess_cell

"""Workbook store: single owner of one import session.

The store holds the current sheet, the imported raw rows, the mapping, the
processed rows and the busy flag. All mutations go through its methods and
run one at a time (single writer, no locking).

Processing is split into begin_processing() / ProcessingTicket.run() /
complete_processing() so a host may run the pass outside the caller's
stack. Every new pass and every structural change (sheet switch, re-import,
clear, reset) bumps a generation counter; completing a ticket from an older
generation is discarded. Cell edits arriving while a pass is in flight are
queued and replayed on the committed rows; deletes are rejected while busy.
"""

__all__ = [
    "WorkbookStateError",
    "ProcessingTicket",
    "WorkbookStore",
    "ReviewFilter",
]

logger = logging.getLogger(__name__)

ReviewFilter = Literal["all", "valid", "invalid"]


class WorkbookStateError(Exception):
    """Raised on an operation that is not allowed in the current step."""


@dataclass(frozen=True)
class ProcessingTicket:
    """Snapshot of the inputs of one processing pass."""
    generation: int
    imported: ImportedData | None
    field_mappings: tuple[FieldMapping, ...]
    fields: tuple[Field, ...]
    transform_registry: Mapping[str, TransformFn] | None = None
    progress: ProgressFn | None = field(default=None, compare=False)

    def run(self) -> list[ProcessedRow]:
        return process_rows(
            self.imported,
            list(self.field_mappings),
            self.fields,
            self.transform_registry,
            progress=self.progress,
        )


class WorkbookStore:
    """Session state for one sheet at a time.

    Parameters
    ----------
    config: workbook configuration (the first sheet becomes current)
    transform_registry: host supplied named transforms
    events: host callbacks
    """

    def __init__(
        self,
        config: WorkbookConfig,
        transform_registry: Mapping[str, TransformFn] | None = None,
        events: WorkbookEvents | None = None,
    ) -> None:
        if not config.sheets:
            raise WorkbookStateError("workbook config has no sheets")
        self.config = config
        self.transform_registry = transform_registry
        self.events = events or WorkbookEvents()

        self.current_sheet: str = config.sheets[0].slug
        self.imported_data: ImportedData | None = None
        self.mapping_state = MappingState()
        self.field_mappings: list[FieldMapping] | None = None  # 明示パイプライン設定
        self.is_loading = False
        self.step = WorkbookStep.IMPORT
        self.manual_mode = False
        self.manual_entry = ManualEntryEngine(self.sheet_config.fields)

        self._rows: dict[str, ProcessedRow] = {}
        self._row_positions: dict[str, int] = {}  # id -> 元の行位置 (メッセージ用)
        self._applied_mappings: dict[str, FieldMapping] = {}  # 前回パスの target -> mapping
        self._generation = 0
        self._pending_edits: list[tuple[str, str, Any]] = []

    # ------------------------------------------------------------------
    # read side
    # ------------------------------------------------------------------
    @property
    def sheet_config(self) -> SheetConfig:
        sheet = self.config.sheet(self.current_sheet)
        if sheet is None:
            raise WorkbookStateError(f"unknown sheet: {self.current_sheet}")
        return sheet

    @property
    def fields(self) -> tuple[Field, ...]:
        return self.sheet_config.fields

    @property
    def processed_data(self) -> list[ProcessedRow]:
        return list(self._rows.values())

    def get_row(self, row_id: str) -> ProcessedRow | None:
        return self._rows.get(row_id)

    def pipeline_mappings(self) -> list[FieldMapping]:
        """Explicit pipeline mappings if set, else derived from the mapping state."""
        if self.field_mappings is not None:
            return list(self.field_mappings)
        return to_canonical_field_mappings(self.mapping_state)

    def mapping_errors(self) -> list[str]:
        available = list(self.transform_registry) if self.transform_registry is not None else None
        return validate_pipeline_config(self.fields, self.pipeline_mappings(), available)

    def can_proceed_to_review(self) -> bool:
        return not self.mapping_errors()

    def review_counts(self) -> ReviewCounts:
        total = len(self._rows)
        valid = sum(1 for r in self._rows.values() if r.is_valid)
        return ReviewCounts(all=total, valid=valid, invalid=total - valid)

    def visible_rows(self, row_filter: ReviewFilter = "all", editing_row_id: str | None = None) -> list[ProcessedRow]:
        """Rows for the review grid under ``row_filter``.

        Under "invalid" the row being edited stays listed (pinned first) even
        after it becomes valid, so it does not vanish mid-edit.
        """
        rows = self.processed_data
        if row_filter == "valid":
            rows = [r for r in rows if r.is_valid]
        elif row_filter == "invalid":
            rows = [r for r in rows if not r.is_valid]
            if editing_row_id is not None:
                editing = self._rows.get(editing_row_id)
                if editing is not None and editing.is_valid:
                    rows = [editing, *rows]
        return rows

    # ------------------------------------------------------------------
    # step machine
    # ------------------------------------------------------------------
    def _transition(self, target: WorkbookStep) -> None:
        if target not in ALLOWED_TRANSITIONS[self.step]:
            raise WorkbookStateError(f"cannot move from {self.step.value} to {target.value}")
        if target is self.step:
            return
        logger.debug(f"step {self.step.value} -> {target.value}")
        self.step = target
        self.events.fire("on_step_change", target)

    def _invalidate(self) -> None:
        self._generation += 1
        self._pending_edits.clear()
        self.is_loading = False

    def _clear_session(self) -> None:
        self._invalidate()
        self.imported_data = None
        self.mapping_state.clear()
        self.field_mappings = None
        self._rows = {}
        self._row_positions = {}
        self._applied_mappings = {}

    # ------------------------------------------------------------------
    # sheet / import / mapping
    # ------------------------------------------------------------------
    def set_current_sheet(self, slug: str) -> None:
        if self.config.sheet(slug) is None:
            raise WorkbookStateError(f"unknown sheet: {slug}")
        if slug == self.current_sheet:
            return
        self.reset()
        self.current_sheet = slug
        self.manual_entry.set_fields(self.sheet_config.fields)
        logger.info(f"sheet switched to '{slug}'")

    def set_imported_data(self, data: ImportedData) -> None:
        """Replace raw rows wholesale and move to the mapping step."""
        if self.step is WorkbookStep.SUBMITTED:
            raise WorkbookStateError("workbook already submitted; reset first")
        self._clear_session()
        self.imported_data = data
        self.mapping_state.update(suggest_mapping(data.headers, self.fields))
        if self.manual_mode:
            self.manual_mode = False
            self.manual_entry.reset()
        logger.info(f"imported rows={len(data.rows)} columns={len(data.headers)}")
        if self.step is not WorkbookStep.MAPPING:
            self._transition(WorkbookStep.MAPPING)
        self.events.fire("on_data_imported", data)

    def update_mapping(self, source: str, target: str | None) -> None:
        """Assign one source column; rows are not reprocessed here."""
        self.mapping_state.set_mapping(source, target)
        self.events.fire("on_mapping_changed", self.pipeline_mappings())

    def apply_mapping_change(self, payload: Mapping[str, str | None]) -> None:
        """Apply a bulk mapping-change payload (validated once by MappingState)."""
        self.mapping_state.update(payload)
        self.events.fire("on_mapping_changed", self.pipeline_mappings())

    def set_field_mappings(self, mappings: Sequence[FieldMapping] | None) -> None:
        self.field_mappings = list(mappings) if mappings is not None else None

    # ------------------------------------------------------------------
    # processing
    # ------------------------------------------------------------------
    def begin_processing(self, progress: ProgressFn | None = None) -> ProcessingTicket:
        """Snapshot inputs for a pass and mark the store busy.

        Each call starts a new generation, so only the newest ticket can commit
        and the store stays busy until it does. Queued edits are kept.
        """
        self._generation += 1
        self.is_loading = True
        return ProcessingTicket(
            generation=self._generation,
            imported=self.imported_data,
            field_mappings=tuple(self.pipeline_mappings()),
            fields=self.fields,
            transform_registry=self.transform_registry,
            progress=progress,
        )

    def complete_processing(self, ticket: ProcessingTicket, rows: Sequence[ProcessedRow]) -> bool:
        """Commit the rows of ``ticket``; stale tickets are dropped.

        Returns:
            True when the rows replaced ``processed_data``.
        """
        if ticket.generation != self._generation:
            logger.debug(f"stale processing result discarded (gen {ticket.generation} != {self._generation})")
            return False
        self._rows = {r.id: r for r in rows}
        self._row_positions = {r.id: i for i, r in enumerate(rows)}
        self._applied_mappings = {m.target: m for m in ticket.field_mappings if m.target}
        self.is_loading = False

        pending, self._pending_edits = self._pending_edits, []
        for row_id, field_key, raw in pending:
            self.update_row_data(row_id, field_key, raw)
        return True

    def abort_processing(self, ticket: ProcessingTicket) -> None:
        """Clear the busy flag after a failed pass, keeping the previous rows."""
        if ticket.generation == self._generation:
            self.is_loading = False
            self._pending_edits.clear()

    def process_on_continue(self, progress: ProgressFn | None = None) -> list[ProcessedRow]:
        """Run the Row Processor over the imported data and replace processed rows."""
        ticket = self.begin_processing(progress)
        try:
            rows = ticket.run()
        except Exception:
            self.abort_processing(ticket)
            raise
        self.complete_processing(ticket, rows)
        return self.processed_data

    def continue_to_review(self, progress: ProgressFn | None = None) -> list[str]:
        """Gate on mapping errors, process, and enter the review step.

        Returns:
            The mapping errors; when non-empty nothing was processed.
        """
        if self.step is not WorkbookStep.MAPPING:
            raise WorkbookStateError(f"continue requires mapping step (current: {self.step.value})")
        errors = self.mapping_errors()
        if errors:
            for e in errors:
                logger.info(f"mapping: {e}")
            return errors
        self.process_on_continue(progress)
        self._transition(WorkbookStep.REVIEW)
        return []

    def back_to_mapping(self) -> None:
        if self.step is not WorkbookStep.REVIEW:
            raise WorkbookStateError(f"back requires review step (current: {self.step.value})")
        self._transition(WorkbookStep.MAPPING)

    # ------------------------------------------------------------------
    # row mutations
    # ------------------------------------------------------------------
    def update_row_data(self, row_id: str, field_key: str, raw: Any) -> bool:
        """Re-coerce and re-validate exactly one cell.

        Returns:
            True when the edit was applied or queued behind an in-flight pass.
        """
        if self.is_loading:
            self._pending_edits.append((row_id, field_key, raw))
            return True
        row = self._rows.get(row_id)
        if row is None:
            logger.warning(f"edit ignored: unknown row '{row_id}'")
            return False
        if field_key not in row.data:
            logger.warning(f"edit ignored: field '{field_key}' is not mapped")
            return False
        f = self.sheet_config.field_by_key(field_key)
        if f is None:
            logger.warning(f"edit ignored: field '{field_key}' not in sheet '{self.current_sheet}'")
            return False
        mapping = self._applied_mappings.get(field_key)
        self._rows[row_id] = reprocess_cell(
            row,
            f,
            raw,
            row_index=self._row_positions.get(row_id, 0),
            transform_registry=self.transform_registry,
            transform_id=mapping.transform if mapping is not None else None,
        )
        return True

    def delete_row(self, row_id: str) -> bool:
        if self.is_loading:
            logger.warning(f"delete rejected while processing: '{row_id}'")
            return False
        if self._rows.pop(row_id, None) is None:
            logger.debug(f"delete: unknown row '{row_id}'")
            return False
        return True

    def delete_invalid_rows(self) -> int:
        """Remove every invalid row; returns how many were removed."""
        if self.is_loading:
            logger.warning("delete invalid rejected while processing")
            return 0
        kept = {row_id: r for row_id, r in self._rows.items() if r.is_valid}
        removed = len(self._rows) - len(kept)
        if removed:
            self._rows = kept
            logger.info(f"deleted invalid rows={removed}")
        return removed

    # ------------------------------------------------------------------
    # manual entry / submit / reset
    # ------------------------------------------------------------------
    def enter_manual_mode(self) -> None:
        """Leave any file import behind and collect rows by manual entry."""
        if self.step not in (WorkbookStep.IMPORT, WorkbookStep.MAPPING, WorkbookStep.REVIEW):
            raise WorkbookStateError(f"manual entry not available in step {self.step.value}")
        self.clear_imported_data()
        if self.step is not WorkbookStep.IMPORT:
            self.step = WorkbookStep.IMPORT
            self.events.fire("on_step_change", WorkbookStep.IMPORT)
        self.manual_entry.reset()
        self.manual_mode = True

    def submit(self) -> list[ProcessedRow]:
        """Hand the final rows to the host and enter the submitted step."""
        if self.manual_mode and self.step is WorkbookStep.IMPORT:
            if self.manual_entry.total_rows == 0:
                raise WorkbookStateError("no manual rows entered")
            rows = self.manual_entry.build_rows()
        elif self.step is WorkbookStep.REVIEW:
            if self.is_loading:
                raise WorkbookStateError("cannot submit while processing")
            rows = self.processed_data
        else:
            raise WorkbookStateError(f"cannot submit from step {self.step.value}")
        self._transition(WorkbookStep.SUBMITTED)
        logger.info(f"submitted rows={len(rows)}")
        self.events.fire("on_workbook_complete", rows)
        return rows

    def clear_imported_data(self) -> None:
        """Drop raw rows, mapping and processed rows (step unchanged)."""
        self._clear_session()

    def reset(self) -> None:
        """Return to an empty session in the import step."""
        self._clear_session()
        self.manual_mode = False
        self.manual_entry.reset()
        if self.step is not WorkbookStep.IMPORT:
            self.step = WorkbookStep.IMPORT
            self.events.fire("on_step_change", WorkbookStep.IMPORT)
        self.events.fire("on_reset")

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..models.row_data import FieldMapping, ImportedData, ProcessedRow
from ..models.workbook_step import WorkbookStep

"""Host callbacks fired by the workbook store at well-defined points only."""

__all__ = [
    "WorkbookEvents",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkbookEvents:
    """Optional host callbacks. Every callback is fired synchronously."""
    on_data_imported: Callable[[ImportedData], None] | None = None
    on_mapping_changed: Callable[[list[FieldMapping]], None] | None = None
    on_workbook_complete: Callable[[list[ProcessedRow]], None] | None = None
    on_reset: Callable[[], None] | None = None
    on_step_change: Callable[[WorkbookStep], None] | None = None

    def fire(self, name: str, *args: Any) -> None:
        callback = getattr(self, name)
        if callback is None:
            return
        logger.debug(f"event {name}")
        callback(*args)

from __future__ import annotations

from enum import Enum

"""WorkbookStep enum for the import session lifecycle.

State transitions: import → mapping → review → (mapping | submitted)

No step is entered implicitly; filefeed.services.workbook_store performs
every transition through an explicit operation.
"""

__all__ = [
    "WorkbookStep",
    "ALLOWED_TRANSITIONS",
]


class WorkbookStep(Enum):
    """Step of one import session.

    - IMPORT: waiting for a file import or manual entry
    - MAPPING: raw rows ingested, user assigns source columns to fields
    - REVIEW: rows processed, user edits/deletes before submitting
    - SUBMITTED: host received the final rows
    """
    IMPORT = "import"
    MAPPING = "mapping"
    REVIEW = "review"
    SUBMITTED = "submitted"


# reset() は常に IMPORT に戻るためここには含めない
ALLOWED_TRANSITIONS: dict[WorkbookStep, frozenset[WorkbookStep]] = {
    WorkbookStep.IMPORT: frozenset({WorkbookStep.MAPPING, WorkbookStep.SUBMITTED}),
    WorkbookStep.MAPPING: frozenset({WorkbookStep.MAPPING, WorkbookStep.REVIEW}),
    WorkbookStep.REVIEW: frozenset({WorkbookStep.MAPPING, WorkbookStep.SUBMITTED}),
    WorkbookStep.SUBMITTED: frozenset(),
}

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from .row_data import ValidationFinding

"""FindingRecord model for the validation findings log.

Each record describes one validation finding of one processed row, written
as a single JSON Lines entry by filefeed.logging.error_log. The key set is
fixed by filefeed/config/finding_log_schema.json (no extra keys).
"""

__all__ = [
    "FindingRecord",
]


@dataclass(frozen=True)
class FindingRecord:
    """Structured finding record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Imported file name ("" for manual entry)
        sheet: Sheet slug
        row_id: Stable ProcessedRow id
        field: Target field key
        severity: "error" or "warning"
        message: Rendered finding message
    """
    timestamp: str  # ISO8601 UTC
    file: str
    sheet: str
    row_id: str
    field: str
    severity: str
    message: str

    @staticmethod
    def create(file: str, sheet: str, row_id: str, finding: ValidationFinding) -> FindingRecord:
        """Create a new FindingRecord with current UTC timestamp."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return FindingRecord(
            timestamp=ts,
            file=file,
            sheet=sheet,
            row_id=row_id,
            field=finding.field,
            severity=finding.severity.value,
            message=finding.message,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from ..models.error_record import FindingRecord

"""Validation findings log: buffered JSON Lines output.

- fixed record schema (no extra keys, see FindingRecord)
- one `findings-YYYYMMDD-HHMMSS.log` (UTC) per run, created on first flush
- records are buffered and written per file by the CLI
"""

__all__ = [
    "FindingRecord",
    "ErrorLogBuffer",
    "DEFAULT_LOGS_DIR",
]

DEFAULT_LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer for finding records. Flush appends JSON Lines.

    Single writer; no thread safety needed.
    """
    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[FindingRecord] = []
        self._file_path: Path | None = None
        self._logs_dir = logs_dir or DEFAULT_LOGS_DIR

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"findings-{stamp}.log"
        return self._file_path

    def append(self, record: FindingRecord) -> None:
        self._records.append(record)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Write buffered records; returns the log path, or None when nothing was written."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

"""Processing result models for the import pipeline.

ReviewCounts backs the all/valid/invalid filter of the review step;
ProcessingResult aggregates a CLI run for the SUMMARY line.
"""


@dataclass(frozen=True)
class ReviewCounts:
    """Row counts shown next to the review filter."""
    all: int
    valid: int
    invalid: int


@dataclass(frozen=True)
class FileStat:
    """Per-file processing statistics (internal helper for ProcessingResult)."""
    file_name: str
    status: str  # success/failed
    total_rows: int
    valid_rows: int
    invalid_rows: int
    elapsed_seconds: float
    error: str | None = None  # 失敗理由


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated results and summary output for one CLI run."""
    success_files: int
    failed_files: int
    total_rows: int
    valid_rows: int
    invalid_rows: int
    warning_count: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    throughput_rows_per_sec: float
    file_stats: list[FileStat] | None = None

from __future__ import annotations

from ..models.processing_result import ProcessingResult

"""SUMMARY line rendering for the CLI.

Format:
SUMMARY files={total}/{total} success={success} failed={failed} rows={rows}
valid={valid} invalid={invalid} warnings={warnings} elapsed_sec={elapsed}
throughput_rps={throughput}
"""


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # 指数表記を避ける
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(round(value, 3))


def render_summary_line(total_files: int, result: ProcessingResult) -> str:
    """Render a SUMMARY line from ProcessingResult.

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2023, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2023, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> result = ProcessingResult(
        ...     success_files=1, failed_files=0, total_rows=1000, valid_rows=990,
        ...     invalid_rows=10, warning_count=3, start_time=start, end_time=end,
        ...     elapsed_seconds=2.0, throughput_rows_per_sec=500.0
        ... )
        >>> render_summary_line(1, result)  # doctest: +ELLIPSIS
        'SUMMARY files=1/1 success=1 failed=0 rows=1000 valid=990 invalid=10 warnings=3 elapsed_sec=2 ...'
    """
    return (
        f"SUMMARY files={total_files}/{total_files} "
        f"success={result.success_files} "
        f"failed={result.failed_files} "
        f"rows={result.total_rows} "
        f"valid={result.valid_rows} "
        f"invalid={result.invalid_rows} "
        f"warnings={result.warning_count} "
        f"elapsed_sec={_format_number(result.elapsed_seconds)} "
        f"throughput_rps={_format_number(result.throughput_rows_per_sec)}"
    )

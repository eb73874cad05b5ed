from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

In non-TTY environments (CI, pipes) no bar is created so the labeled log
lines are not interleaved with ANSI control sequences.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """True if stdout is a TTY and progress should be displayed."""
    return sys.stdout.isatty()


class ProgressTracker:
    """Progress bar over imported files, with a per-file row counter."""

    def __init__(self, total_files: int, *, description: str = "Importing files") -> None:
        self.total_files = total_files
        self.description = description
        self.current_file = 0
        self.rows_in_file = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_files,
                desc=description,
                unit="file",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def start_file(self, file_path: Path) -> None:
        self.current_file += 1
        self.rows_in_file = 0
        if self.enabled and self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({file_path.name})")

    def advance_rows(self, count: int = 1) -> None:
        """Row callback for the Row Processor."""
        self.rows_in_file += count
        # 1000 行ごとに表示更新 (スパム抑止)
        if self.enabled and self.pbar is not None and self.rows_in_file % 1000 == 0:
            self.pbar.set_postfix(rows=self.rows_in_file)

    def finish_file(self, success: bool = True) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_postfix(rows=self.rows_in_file, ok=success)
            self.pbar.set_description(self.description)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

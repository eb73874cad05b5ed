from __future__ import annotations

from pathlib import Path

import pandas as pd

from ..models.row_data import ImportedData

"""Import adapter used by the CLI: CSV / Excel file -> ImportedData.

The first row is the header row, every following row is a raw row. All
cells are read as text so coercion stays with the value transformer;
empty cells become "" and fully empty rows are skipped.
"""

__all__ = [
    "SheetHeaderError",
    "UnsupportedFileError",
    "SUPPORTED_SUFFIXES",
    "read_table_file",
    "frame_to_imported_data",
]

SUPPORTED_SUFFIXES = (".csv", ".xlsx")


class SheetHeaderError(Exception):
    """Raised when the header row is missing or empty."""


class UnsupportedFileError(Exception):
    """Raised for file suffixes the adapter cannot read."""


def frame_to_imported_data(df: pd.DataFrame, source_name: str | None = None) -> ImportedData:
    """Convert a header-less raw DataFrame (row 0 = header) to ImportedData."""
    if df.shape[0] < 1:
        raise SheetHeaderError(f"'{source_name}' has no header row")
    headers = ["" if pd.isna(c) else str(c).strip() for c in df.iloc[0].tolist()]
    if not any(headers):
        raise SheetHeaderError(f"'{source_name}' header row is empty")

    rows: list[list[str]] = []
    for _, raw in df.iloc[1:].iterrows():
        # 全セル空の行はスキップ
        if raw.isna().all():
            continue
        values = ["" if pd.isna(v) else str(v) for v in raw.tolist()]
        if all(v.strip() == "" for v in values):
            continue
        rows.append(values)
    return ImportedData(headers=headers, rows=rows, source_name=source_name)


def read_table_file(path: Path, sheet_name: str | int = 0) -> ImportedData:
    """Read a CSV or Excel file.

    Parameters
    ----------
    path: file to read
    sheet_name: Excel sheet (name or position), ignored for CSV
    """
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise UnsupportedFileError(f"unsupported file type: {path.name}")
    # 文字列のまま読み込み、NA 変換は行わない
    if suffix == ".csv":
        df = pd.read_csv(path, header=None, dtype=str, keep_default_na=False, skip_blank_lines=True)
    else:
        df = pd.read_excel(
            path, sheet_name=sheet_name, header=None, dtype=str, keep_default_na=False, engine="openpyxl"
        )
    return frame_to_imported_data(df, source_name=path.name)

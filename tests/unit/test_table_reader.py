from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from filefeed.excel.reader import (
    SheetHeaderError,
    UnsupportedFileError,
    frame_to_imported_data,
    read_table_file,
)


def test_read_csv_keeps_text(tmp_path: Path):
    p = tmp_path / "contacts.csv"
    p.write_text("Email,Age\na@b.com,007\n,\nc@d.com,\n", encoding="utf-8")
    data = read_table_file(p)
    assert data.headers == ["Email", "Age"]
    # 全セル空の行は除外、先頭ゼロは保持
    assert data.rows == [["a@b.com", "007"], ["c@d.com", ""]]
    assert data.source_name == "contacts.csv"


def test_read_xlsx(tmp_path: Path):
    p = tmp_path / "contacts.xlsx"
    df = pd.DataFrame({"Email": ["a@b.com", "c@d.com"], "Age": ["30", "41"]})
    with pd.ExcelWriter(p, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Sheet1")
    data = read_table_file(p)
    assert data.headers == ["Email", "Age"]
    assert data.rows == [["a@b.com", "30"], ["c@d.com", "41"]]


def test_unsupported_suffix(tmp_path: Path):
    p = tmp_path / "notes.txt"
    p.write_text("x", encoding="utf-8")
    with pytest.raises(UnsupportedFileError):
        read_table_file(p)


def test_frame_without_header_row():
    with pytest.raises(SheetHeaderError):
        frame_to_imported_data(pd.DataFrame(), "empty.csv")


def test_frame_with_blank_header_row():
    df = pd.DataFrame([["", ""], ["a", "b"]])
    with pytest.raises(SheetHeaderError):
        frame_to_imported_data(df, "blank.csv")


def test_frame_strips_headers_and_maps_nan_to_empty():
    df = pd.DataFrame([[" Email ", "Age"], ["a@b.com", None]])
    data = frame_to_imported_data(df)
    assert data.headers == ["Email", "Age"]
    assert data.rows == [["a@b.com", ""]]


def test_legacy_xls_is_unsupported(tmp_path: Path):
    p = tmp_path / "legacy.xls"
    # OLE2 ヘッダのみ
    p.write_bytes(bytes.fromhex("d0cf11e0a1b11ae1") + b"\x00" * 504)
    with pytest.raises(UnsupportedFileError):
        read_table_file(p)

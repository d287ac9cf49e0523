"""Tests for the streaming spreadsheet reader."""

from datetime import datetime

import numpy as np
import pandas as pd
import pytest

from processing.errors import CorruptSheetError, ReaderError, SheetNotFoundError, UnsupportedFormatError
from processing.spreadsheet_reader import normalize_cell, open_sheet


def test_headers_and_rows_from_workbook(make_workbook):
    path = make_workbook(
        [
            ("Email", "Product", "Qty"),
            ("a@x.com", "Widget", 2),
            ("b@x.com", "Gadget", 3.5),
        ]
    )

    with open_sheet(path) as sheet:
        assert sheet.headers == ["Email", "Product", "Qty"]
        assert sheet.file_name == "data.xlsx"
        rows = list(sheet.rows())

    assert rows == [("a@x.com", "Widget", 2), ("b@x.com", "Gadget", 3.5)]


def test_rows_are_padded_and_truncated_to_header_width(make_workbook):
    path = make_workbook(
        [
            ("A", "B", "C"),
            ("1",),
            ("1", "2", "3", "extra"),
        ]
    )

    with open_sheet(path) as sheet:
        rows = list(sheet.rows())

    assert rows == [("1", None, None), ("1", "2", "3")]


def test_blank_headers_get_positional_names(make_workbook):
    path = make_workbook([("Name", None, "Total", None), ("x", 1, 2)])

    with open_sheet(path) as sheet:
        assert sheet.headers == ["Name", "Column2", "Total"]


def test_interior_blank_rows_kept_trailing_dropped(make_workbook):
    path = make_workbook(
        [
            ("A", "B"),
            ("1", "2"),
            (None, None),
            ("3", "4"),
            (None, None),
            (None, None),
        ]
    )

    with open_sheet(path) as sheet:
        rows = list(sheet.rows())

    assert rows == [("1", "2"), (None, None), ("3", "4")]


def test_named_sheet_selection(make_workbook, tmp_path):
    path = make_workbook([("A",), ("first",)], sheet_title="Orders")

    with open_sheet(path, sheet_name="Orders") as sheet:
        assert list(sheet.rows()) == [("first",)]

    with pytest.raises(ReaderError, match="Worksheet 'Missing' not found"):
        open_sheet(path, sheet_name="Missing")


def test_date_cells_are_datetimes(make_workbook):
    path = make_workbook([("When",), (datetime(2024, 5, 6, 7, 8),)])

    with open_sheet(path) as sheet:
        (row,) = list(sheet.rows())

    assert row == (datetime(2024, 5, 6, 7, 8),)


def test_rows_are_single_pass(make_workbook):
    path = make_workbook([("A",), ("1",)])

    with open_sheet(path) as sheet:
        list(sheet.rows())
        with pytest.raises(ReaderError, match="already read"):
            sheet.rows()


def test_csv_source_reads_text_cells(tmp_path):
    path = tmp_path / "orders.csv"
    path.write_text("Email,Qty,Note\na@x.com,2,\nb@x.com,,hello\n", encoding="utf-8")

    with open_sheet(path, csv_chunk_size=1) as sheet:
        assert sheet.headers == ["Email", "Qty", "Note"]
        rows = list(sheet.rows())

    assert rows == [("a@x.com", "2", None), ("b@x.com", None, "hello")]


def test_missing_file(tmp_path):
    with pytest.raises(SheetNotFoundError):
        open_sheet(tmp_path / "nope.xlsx")


def test_unsupported_extension(tmp_path):
    path = tmp_path / "data.json"
    path.write_text("{}")

    with pytest.raises(UnsupportedFormatError, match="Unsupported spreadsheet format '.json'"):
        open_sheet(path)


def test_corrupt_workbook(tmp_path):
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"this is not a zip archive")

    with pytest.raises(CorruptSheetError):
        open_sheet(path)


def test_empty_csv_has_no_header(tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("", encoding="utf-8")

    with pytest.raises(CorruptSheetError, match="no header row"):
        open_sheet(path)


@pytest.mark.parametrize(
    "value, expected",
    [
        (np.int64(4), 4),
        (np.float64(2.5), 2.5),
        (float("nan"), None),
        ("", None),
        (pd.NaT, None),
        (pd.Timestamp("2024-01-02"), datetime(2024, 1, 2)),
    ],
)
def test_normalize_cell(value, expected):
    assert normalize_cell(value) == expected

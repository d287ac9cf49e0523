"""Streaming spreadsheet reader.

Opens a source file and exposes its header names plus a lazy, single-pass
sequence of rows. Cells are normalized to ``None``, ``str``, ``int``,
``float``, ``bool`` or ``datetime``.

Usage:
    with open_sheet("orders.xlsx") as sheet:
        print(sheet.headers)
        for row in sheet.rows():
            ...
"""

from __future__ import annotations

import logging
import math
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import openpyxl
import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from .errors import CorruptSheetError, ReaderError, SheetNotFoundError, UnsupportedFormatError

logger = logging.getLogger(__name__)

CellValue = Union[None, str, int, float, bool, datetime]
RawRow = Tuple[CellValue, ...]

OPENPYXL_EXTENSIONS = {".xlsx", ".xlsm"}
SUPPORTED_EXTENSIONS = OPENPYXL_EXTENSIONS | {".xls", ".csv"}
DEFAULT_CSV_CHUNK_SIZE = 1000


def normalize_cell(value: Any) -> CellValue:
    """Map library-specific cell values onto the reader's cell types."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, str) and value == "":
        return None
    if isinstance(value, (str, int, float, bool, datetime)):
        return value
    # time-of-day cells and anything exotic are carried as text
    return str(value)


def _build_headers(raw_headers: Sequence[Any]) -> List[str]:
    headers = [normalize_cell(value) for value in raw_headers]
    while headers and headers[-1] is None:
        headers.pop()
    return [
        str(value).strip() if value is not None and str(value).strip() else f"Column{position}"
        for position, value in enumerate(headers, start=1)
    ]


class SheetHandle:
    """Open spreadsheet: headers plus a single-pass row stream."""

    def __init__(
        self,
        path: Path,
        headers: List[str],
        source: Iterator[Sequence[Any]],
        closer: Optional[Callable[[], None]] = None,
    ) -> None:
        self.path = path
        self._headers = headers
        self._source = source
        self._closer = closer
        self._consumed = False
        self._closed = False

    @property
    def headers(self) -> List[str]:
        return list(self._headers)

    @property
    def file_name(self) -> str:
        return self.path.name

    def rows(self) -> Iterator[RawRow]:
        """Yield rows padded or truncated to the header width.

        Empty rows between data rows are kept so row positions match the
        sheet; empty rows after the last data row are dropped.
        """
        if self._consumed:
            raise ReaderError(self.path, f"Rows of '{self.path.name}' were already read; re-open the sheet")
        self._consumed = True
        return self._iter_rows()

    def _iter_rows(self) -> Iterator[RawRow]:
        width = len(self._headers)
        pending_blank: List[RawRow] = []
        while True:
            try:
                raw = next(self._source)
            except StopIteration:
                break
            except Exception as exc:
                raise CorruptSheetError(self.path, f"Error reading '{self.path.name}': {exc}") from exc

            row = tuple(normalize_cell(value) for value in list(raw)[:width])
            if len(row) < width:
                row = row + (None,) * (width - len(row))

            if all(cell is None for cell in row):
                pending_blank.append(row)
                continue

            if pending_blank:
                yield from pending_blank
                pending_blank.clear()
            yield row

        if pending_blank:
            logger.debug("Dropped %d trailing empty rows from %s", len(pending_blank), self.path.name)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._closer is not None:
            self._closer()

    def __enter__(self) -> "SheetHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_sheet(
    path: Union[str, Path],
    sheet_name: Optional[str] = None,
    csv_chunk_size: int = DEFAULT_CSV_CHUNK_SIZE,
) -> SheetHandle:
    """Open a spreadsheet and read its header row.

    Raises:
        SheetNotFoundError: The file does not exist.
        UnsupportedFormatError: The extension is not a supported spreadsheet format.
        CorruptSheetError: The file cannot be parsed or has no header row.
        ReaderError: The requested worksheet does not exist.
    """
    file_path = Path(path)
    if not file_path.exists() or not file_path.is_file():
        raise SheetNotFoundError(file_path, f"Spreadsheet not found: {file_path}")

    extension = file_path.suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(
            file_path,
            f"Unsupported spreadsheet format '{extension or file_path.name}'. "
            f"Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}",
        )

    if extension in OPENPYXL_EXTENSIONS:
        return _open_workbook(file_path, sheet_name)
    if extension == ".csv":
        return _open_csv(file_path, csv_chunk_size)
    return _open_legacy_excel(file_path, sheet_name)


def _open_workbook(path: Path, sheet_name: Optional[str]) -> SheetHandle:
    try:
        workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise CorruptSheetError(path, f"Cannot open '{path.name}' as a workbook: {exc}") from exc

    try:
        if sheet_name is not None:
            if sheet_name not in workbook.sheetnames:
                raise ReaderError(path, f"Worksheet '{sheet_name}' not found in '{path.name}'")
            worksheet = workbook[sheet_name]
        elif workbook.worksheets:
            worksheet = workbook.worksheets[0]
        else:
            raise CorruptSheetError(path, f"No worksheets found in '{path.name}'")

        source = worksheet.iter_rows(values_only=True)
        header_row = next(source, None)
        if header_row is None or not _build_headers(header_row):
            raise CorruptSheetError(path, f"'{path.name}' has no header row")
    except Exception:
        workbook.close()
        raise

    logger.debug("Opened workbook %s (sheet=%s)", path.name, worksheet.title)
    return SheetHandle(path, _build_headers(header_row), source, workbook.close)


def _open_csv(path: Path, chunk_size: int) -> SheetHandle:
    try:
        reader = pd.read_csv(
            path,
            header=None,
            dtype=str,
            keep_default_na=False,
            chunksize=chunk_size,
        )
    except pd.errors.EmptyDataError as exc:
        raise CorruptSheetError(path, f"'{path.name}' has no header row") from exc
    except (pd.errors.ParserError, UnicodeDecodeError, OSError) as exc:
        raise CorruptSheetError(path, f"Cannot read '{path.name}' as CSV: {exc}") from exc

    def _records() -> Iterator[Tuple[Any, ...]]:
        for chunk in reader:
            yield from chunk.itertuples(index=False, name=None)

    source = _records()
    try:
        header_row = next(source, None)
    except pd.errors.EmptyDataError:
        header_row = None
    except (pd.errors.ParserError, UnicodeDecodeError) as exc:
        reader.close()
        raise CorruptSheetError(path, f"Cannot read '{path.name}' as CSV: {exc}") from exc

    if header_row is None or not _build_headers(header_row):
        reader.close()
        raise CorruptSheetError(path, f"'{path.name}' has no header row")

    return SheetHandle(path, _build_headers(header_row), source, reader.close)


def _open_legacy_excel(path: Path, sheet_name: Optional[str]) -> SheetHandle:
    # .xls has no streaming reader; pandas loads the sheet and rows are iterated from memory
    try:
        frame = pd.read_excel(path, sheet_name=sheet_name or 0, header=None, dtype=object)
    except Exception as exc:
        raise CorruptSheetError(path, f"Cannot open '{path.name}' as a workbook: {exc}") from exc

    if frame.empty:
        raise CorruptSheetError(path, f"'{path.name}' has no header row")

    source = frame.itertuples(index=False, name=None)
    header_row = next(source)
    if not _build_headers(header_row):
        raise CorruptSheetError(path, f"'{path.name}' has no header row")
    return SheetHandle(path, _build_headers(header_row), source)


__all__ = [
    "CellValue",
    "RawRow",
    "SUPPORTED_EXTENSIONS",
    "SheetHandle",
    "normalize_cell",
    "open_sheet",
]

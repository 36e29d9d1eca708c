"""Read uploaded bank statements (xlsx / xls / csv) into a grid of raw cell values."""
from __future__ import annotations

import csv
import io
from datetime import date, datetime, time
from xml.etree.ElementTree import ParseError
from zipfile import BadZipFile

import xlrd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from fintrack.core.errors import InsufficientRowsError, ValidationError
from fintrack.schemas.statement import RawCell, RawGrid

EXCEL_EXTENSIONS = (".xlsx", ".xlsm", ".xltx", ".xltm")
LEGACY_EXCEL_EXTENSIONS = (".xls",)
OLE2_MAGIC = b"\xd0\xcf\x11\xe0"

WORKBOOK_ERRORS = (InvalidFileException, BadZipFile, ParseError, KeyError, OSError, TypeError, ValueError)


def normalize_cell(value: object) -> RawCell:
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.isoformat()
    text = str(value).strip()
    return text or None


def _trim_row(row: list[RawCell]) -> list[RawCell]:
    end = len(row)
    while end > 0 and row[end - 1] is None:
        end -= 1
    return row[:end]


def _finish(rows: list[list[RawCell]]) -> RawGrid:
    # Drop trailing blank rows only; inner blank rows keep sheet row indexes aligned.
    while rows and not rows[-1]:
        rows.pop()
    if len(rows) < 2:
        raise InsufficientRowsError()
    return rows


def _read_csv(content: bytes) -> RawGrid:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = content.decode("cp1252", errors="replace")
    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel
    try:
        rows = [_trim_row([normalize_cell(c) for c in row]) for row in csv.reader(io.StringIO(text), dialect)]
    except csv.Error as e:
        raise ValidationError(f"Could not read the CSV file: {e!s}") from e
    return _finish(rows)


def _read_workbook(content: bytes) -> RawGrid:
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except WORKBOOK_ERRORS as e:
        raise ValidationError(f"Could not read the spreadsheet: {e!s}") from e
    try:
        ws = wb.worksheets[0] if wb.worksheets else None
        if ws is None:
            raise InsufficientRowsError()
        rows = [_trim_row([normalize_cell(c) for c in row]) for row in ws.iter_rows(values_only=True)]
    except WORKBOOK_ERRORS as e:
        raise ValidationError(f"Could not read the spreadsheet: {e!s}") from e
    finally:
        wb.close()
    return _finish(rows)


def xls_cell_value(cell: xlrd.sheet.Cell, datemode: int) -> RawCell:
    """BIFF cell -> the same values openpyxl yields (xlrd stores every number as float)."""
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
        return None
    if cell.ctype == xlrd.XL_CELL_DATE:
        try:
            return normalize_cell(xlrd.xldate.xldate_as_datetime(cell.value, datemode))
        except (xlrd.xldate.XLDateError, OverflowError):
            return normalize_cell(cell.value)
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return normalize_cell(bool(cell.value))
    if cell.ctype == xlrd.XL_CELL_NUMBER and float(cell.value).is_integer():
        return int(cell.value)
    return normalize_cell(cell.value)


def _read_legacy_workbook(content: bytes) -> RawGrid:
    try:
        book = xlrd.open_workbook(file_contents=content, on_demand=True)
    except (xlrd.XLRDError, xlrd.compdoc.CompDocError, *WORKBOOK_ERRORS) as e:
        raise ValidationError(f"Could not read the spreadsheet: {e!s}") from e
    try:
        if book.nsheets < 1:
            raise InsufficientRowsError()
        sheet = book.sheet_by_index(0)
        rows = [
            _trim_row([xls_cell_value(c, book.datemode) for c in sheet.row(r)])
            for r in range(sheet.nrows)
        ]
    except (xlrd.XLRDError, xlrd.compdoc.CompDocError, *WORKBOOK_ERRORS) as e:
        raise ValidationError(f"Could not read the spreadsheet: {e!s}") from e
    finally:
        book.release_resources()
    return _finish(rows)


def read_grid(content: bytes, filename: str | None = None) -> RawGrid:
    """Return rows x columns of str / number / None cells. Needs at least two rows."""
    if not content:
        raise InsufficientRowsError()
    name = (filename or "").lower()
    if name.endswith((".csv", ".txt")):
        return _read_csv(content)
    if content[:2] == b"PK":
        return _read_workbook(content)
    if name.endswith(LEGACY_EXCEL_EXTENSIONS) or content[:4] == OLE2_MAGIC:
        return _read_legacy_workbook(content)
    if name.endswith(EXCEL_EXTENSIONS):
        return _read_workbook(content)
    raise ValidationError("Unsupported file type. Upload an .xlsx, .xls or .csv bank statement.")

"""
Spreadsheet Parser — Turns an uploaded CSV / XLS / XLSX byte stream into
chunks of {canonical_column: raw_value} dicts.

The first row is always the header; header names are slugified once and every
data row is keyed by those slugs. Values come back as strings (or None for
empty cells) in file order. CSV and XLSX are streamed row by row so memory
stays bounded by the chunk size; legacy XLS has no streaming reader and is
loaded whole by xlrd.
"""

import csv
import io
import logging
import zipfile
from datetime import date, datetime
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

import openpyxl
import xlrd
from openpyxl.utils.exceptions import InvalidFileException

from adperf.exceptions import EmptyFileError, UploadValidationError
from adperf.utils import slugify_header

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("csv", "xls", "xlsx")
DEFAULT_CHUNK_SIZE = 1000


def detect_format(filename: Optional[str]) -> str:
    """File format from the extension; raises UploadValidationError for anything else."""
    suffix = Path(filename or "").suffix.lower().lstrip(".")
    if suffix not in SUPPORTED_FORMATS:
        raise UploadValidationError(
            f"Unsupported file type '{suffix or filename}'. Upload an xlsx, xls or csv file."
        )
    return suffix


def normalize_cell(value) -> Optional[str]:
    """Native cell value → string, None for empty. Integral floats lose their '.0'."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.hour == value.minute == value.second == value.microsecond == 0:
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return str(value)
    text = str(value).strip()
    return text or None


# ── Raw row readers (header included) ─────────────────────────────────

def _csv_rows(stream: BinaryIO) -> Iterator[list]:
    text = io.TextIOWrapper(stream, encoding="utf-8-sig", newline="")
    try:
        yield from csv.reader(text)
    except UnicodeDecodeError as e:
        raise UploadValidationError(
            "CSV file is not UTF-8 encoded. Re-export it as 'CSV UTF-8' and upload again."
        ) from e
    except csv.Error as e:
        raise UploadValidationError(f"File could not be read as CSV: {e}") from e
    finally:
        text.detach()  # leave the caller's stream open


def _xlsx_rows(stream: BinaryIO) -> Iterator[tuple]:
    try:
        wb = openpyxl.load_workbook(stream, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise UploadValidationError(f"File could not be read as an xlsx workbook: {e}") from e
    try:
        ws = wb.active
        yield from ws.iter_rows(values_only=True)
    finally:
        wb.close()


def _xls_rows(stream: BinaryIO) -> Iterator[list]:
    try:
        book = xlrd.open_workbook(file_contents=stream.read(), on_demand=True)
    except xlrd.XLRDError as e:
        raise UploadValidationError(f"File could not be read as an xls workbook: {e}") from e
    try:
        sheet = book.sheet_by_index(0)
        for rx in range(sheet.nrows):
            values = []
            for cell in sheet.row(rx):
                if cell.ctype == xlrd.XL_CELL_DATE:
                    values.append(xlrd.xldate_as_datetime(cell.value, book.datemode))
                elif cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
                    values.append(None)
                else:
                    values.append(cell.value)
            yield values
    finally:
        book.release_resources()


_READERS = {
    "csv": _csv_rows,
    "xlsx": _xlsx_rows,
    "xls": _xls_rows,
}


def iter_raw_rows(stream: BinaryIO, file_format: str) -> Iterator[list]:
    """Every sheet row, header first, as a list of native cell values."""
    try:
        reader = _READERS[file_format]
    except KeyError:
        raise UploadValidationError(f"Unsupported file format: {file_format}")
    return reader(stream)


# ── Canonical rows ────────────────────────────────────────────────────

def parse_header(cells) -> list[Optional[str]]:
    """
    Slug per column. Blank header cells and repeated slugs map to None so
    their values are dropped (first column with a given name wins).
    """
    seen = set()
    header = []
    for cell in cells:
        slug = slugify_header(normalize_cell(cell))
        if not slug or slug in seen:
            header.append(None)
            continue
        seen.add(slug)
        header.append(slug)
    return header


def iter_row_chunks(
    stream: BinaryIO,
    file_format: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[list[dict]]:
    """
    Yield lists of up to chunk_size row dicts keyed by header slug.

    Raises EmptyFileError when the sheet has no rows at all, or only a header.
    Fully blank rows are skipped.
    """
    rows = iter_raw_rows(stream, file_format)
    try:
        yield from _chunk_rows(rows, chunk_size)
    finally:
        rows.close()


def _chunk_rows(rows: Iterator[list], chunk_size: int) -> Iterator[list[dict]]:
    first = next(rows, None)
    if first is None:
        raise EmptyFileError("The uploaded sheet is empty (no header row).")
    header = parse_header(first)
    if not any(header):
        raise EmptyFileError("The uploaded sheet has no usable header row.")

    chunk: list[dict] = []
    data_rows = 0
    for cells in rows:
        values = [normalize_cell(c) for c in cells]
        if not any(v is not None for v in values):
            continue
        row = {}
        for idx, key in enumerate(header):
            if key is None:
                continue
            row[key] = values[idx] if idx < len(values) else None
        chunk.append(row)
        data_rows += 1
        if len(chunk) >= chunk_size:
            yield chunk
            chunk = []

    if chunk:
        yield chunk
    if data_rows == 0:
        raise EmptyFileError("The uploaded sheet has a header row but no data rows.")
    logger.debug(f"Parsed {data_rows} data rows")


def read_header(path: Path, file_format: str) -> list[str]:
    """
    Open a stored upload, confirm it holds at least one data row and return
    its canonical column names. Used before an import is queued.
    """
    with open(path, "rb") as stream:
        chunks = iter_row_chunks(stream, file_format, chunk_size=1)
        try:
            first = next(chunks)
        finally:
            chunks.close()
    return list(first[0].keys())

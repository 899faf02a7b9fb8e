"""
Spreadsheet decoding for marketplace exports.

Returns rows positionally (header row first) so header normalization and
field mapping stay in one place. CSV cells come back as text; Excel cells
keep their native types (numbers, datetimes).
"""
import csv
import io
import logging
import zipfile
from typing import Any, List

from services.errors import UnsupportedFileTypeError

logger = logging.getLogger(__name__)

EXCEL_EXTENSIONS = (".xlsx", ".xlsm")


def _row_is_empty(row: List[Any]) -> bool:
    return not any(c is not None and str(c).strip() for c in row)


def _read_csv(content: bytes) -> List[List[Any]]:
    text = content.decode("utf-8-sig", errors="replace")
    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel
    return [row for row in csv.reader(io.StringIO(text), dialect) if not _row_is_empty(row)]


def _read_excel(content: bytes) -> List[List[Any]]:
    import openpyxl
    from openpyxl.utils.exceptions import InvalidFileException

    try:
        wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (zipfile.BadZipFile, InvalidFileException, KeyError) as e:
        raise UnsupportedFileTypeError(f"Could not read Excel workbook: {e}") from e
    try:
        ws = wb.worksheets[0]
        rows = []
        for values in ws.iter_rows(values_only=True):
            row = ["" if v is None else v for v in values]
            if not _row_is_empty(row):
                rows.append(row)
        return rows
    finally:
        wb.close()


def read_sheet_rows(content: bytes, filename: str) -> List[List[Any]]:
    """Decode the first sheet of an uploaded CSV/Excel file into header + data rows."""
    fname = (filename or "").lower()
    if fname.endswith(EXCEL_EXTENSIONS):
        rows = _read_excel(content)
    elif fname.endswith((".csv", ".tsv", ".txt")):
        rows = _read_csv(content)
    else:
        raise UnsupportedFileTypeError(
            f"Unsupported file type for {filename!r}. Upload an Excel (.xlsx) or CSV file."
        )
    logger.info(f"Decoded {filename!r}: {len(rows)} rows (including header)")
    return rows

from __future__ import annotations

import csv
import io
import os
from typing import IO, List, Optional, Sequence, Tuple

from utils.errors import FileProcessingError

ALLOWED_EXT = {"csv", "xlsx", "xls"}
CSV_ENCODINGS = ("utf-8-sig", "utf-8", "cp1252", "iso-8859-1")

Table = Tuple[List[str], List[Sequence]]


def file_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lstrip(".").lower()


def validate_upload(filename: str, size: int, max_bytes: int, mime: Optional[str] = None) -> None:
    """Reject uploads that are too large or not CSV/XLSX/XLS."""
    if size > max_bytes:
        raise FileProcessingError(
            f"File size {size} exceeds maximum allowed size of {max_bytes}",
            f"Ukuran file terlalu besar. Maksimal ukuran file adalah {max_bytes // (1024 * 1024)}MB.",
            filename,
            size,
            mime,
        )
    ext = file_extension(filename)
    if ext not in ALLOWED_EXT:
        raise FileProcessingError(
            f"File extension '{ext}' is not allowed",
            "Format file tidak didukung. Gunakan file CSV, XLSX, atau XLS.",
            filename,
            size,
            mime,
        )
    if size <= 0:
        raise FileProcessingError(
            "File is empty",
            "File tidak dapat dibaca. Pastikan file tidak rusak.",
            filename,
            size,
            mime,
        )


def _strip_trailing_blank(rows: List[Sequence]) -> List[Sequence]:
    def blank(row):
        return all(c is None or (isinstance(c, str) and not c.strip()) for c in row)

    while rows and blank(rows[-1]):
        rows.pop()
    return rows


def _decode(raw: bytes, filename: str) -> str:
    for encoding in CSV_ENCODINGS:
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise FileProcessingError(
        "Could not decode file with any supported encoding",
        "File tidak dapat dibaca. Pastikan file CSV menggunakan encoding UTF-8.",
        filename,
        len(raw),
        "text/csv",
    )


def _read_csv(raw: bytes, filename: str) -> List[Sequence]:
    content = _decode(raw, filename)
    sample = content[:4096]
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel
    return [row for row in csv.reader(io.StringIO(content), dialect)]


def _read_xlsx(raw: bytes) -> List[Sequence]:
    from openpyxl import load_workbook

    wb = load_workbook(io.BytesIO(raw), read_only=True, data_only=True)
    try:
        ws = wb.active
        return [tuple(row) for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def _read_xls(raw: bytes) -> List[Sequence]:
    import xlrd

    book = xlrd.open_workbook(file_contents=raw)
    sheet = book.sheet_by_index(0)
    rows = []
    for r in range(sheet.nrows):
        values = []
        for c in range(sheet.ncols):
            cell = sheet.cell(r, c)
            if cell.ctype == xlrd.XL_CELL_DATE:
                values.append(xlrd.xldate.xldate_as_datetime(cell.value, book.datemode))
            elif cell.ctype == xlrd.XL_CELL_EMPTY:
                values.append(None)
            else:
                values.append(cell.value)
        rows.append(tuple(values))
    return rows


def read_table(stream: IO[bytes], filename: str) -> Table:
    """Read the first sheet (or CSV body) into ``(header, data_rows)``.

    Header cells are returned as text; data rows keep native cell values
    (numbers, datetimes) so the field parsers can use them directly.
    """
    raw = stream.read()
    ext = file_extension(filename)
    try:
        if ext == "csv":
            rows = _read_csv(raw, filename)
        elif ext == "xlsx":
            rows = _read_xlsx(raw)
        elif ext == "xls":
            rows = _read_xls(raw)
        else:
            raise FileProcessingError(
                f"Unsupported extension '{ext}'",
                "Format file tidak didukung. Gunakan file CSV, XLSX, atau XLS.",
                filename,
                len(raw),
            )
    except FileProcessingError:
        raise
    except Exception as e:
        raise FileProcessingError(
            f"Could not read {ext} file: {e}",
            "Terjadi kesalahan saat memproses file. Pastikan file tidak rusak dan formatnya benar.",
            filename,
            len(raw),
            ext,
            context={"original_error": str(e)},
        ) from e

    rows = _strip_trailing_blank(list(rows))
    if not rows:
        return [], []
    header = ["" if c is None else str(c) for c in rows[0]]
    return header, rows[1:]

"""Cell-level parsing shared by the file importers and the CRUD endpoints."""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Optional

from dateutil import parser as date_parser

from utils.errors import RekonImportError

MONTH_NAMES = {
    1: "Januari", 2: "Februari", 3: "Maret", 4: "April", 5: "Mei", 6: "Juni",
    7: "Juli", 8: "Agustus", 9: "September", 10: "Oktober", 11: "November", 12: "Desember",
}
SHORT_MONTH_NAMES = {
    1: "Jan", 2: "Feb", 3: "Mar", 4: "Apr", 5: "Mei", 6: "Jun",
    7: "Jul", 8: "Ags", 9: "Sep", 10: "Okt", 11: "Nov", 12: "Des",
}

DATE_FORMATS = (
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
    "%d/%m/%y",
    "%d-%b-%Y",
)

YEAR_FIRST_RE = re.compile(r"\d{4}[-/.]")

YEAR_MIN = 2000
YEAR_MAX = 2100


def month_name(month: Any) -> str:
    try:
        return MONTH_NAMES[int(month)]
    except (KeyError, TypeError, ValueError):
        return str(month)


def short_month_name(month: Any) -> str:
    try:
        return SHORT_MONTH_NAMES[int(month)]
    except (KeyError, TypeError, ValueError):
        return str(month)


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def text(value: Any) -> str:
    """Cell value as trimmed text; integral floats lose their ``.0``."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y %H:%M:%S")
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    return str(value).strip()


def clean_header(name: Any) -> str:
    """Normalise an SPP-template header: ``"Nama Siswa"`` -> ``NAMA_SISWA``."""
    cleaned = text(name)
    for ch in (" ", ".", "-"):
        cleaned = cleaned.replace(ch, "_")
    return cleaned.upper().strip()


def clean_bank_header(name: Any) -> str:
    """Normalise a bank-export header: ``"No. Tagihan"`` -> ``NO_TAGIHAN``."""
    cleaned = text(name).upper()
    cleaned = cleaned.replace(".", " ").replace("-", " ")
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned.replace(" ", "_")


def parse_number(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    raw = str(value).strip()
    if not raw:
        return 0
    try:
        return int(float(raw))
    except ValueError:
        digits = re.sub(r"[^0-9]", "", raw)
        return int(digits) if digits else 0


def parse_int(value: Any, default: int) -> int:
    if is_blank(value):
        return default
    try:
        return int(float(str(value).strip()))
    except ValueError:
        return default


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return None


def parse_year(value: Any, row_number: Optional[int] = None) -> int:
    year = _to_int(value)
    if year is None or year < YEAR_MIN or year > YEAR_MAX:
        raise RekonImportError(
            f"Invalid year value: {value}",
            "Tahun tidak valid. Gunakan format tahun 4 digit (contoh: 2024).",
            row_number,
            "tahun",
        )
    return year


def parse_month(value: Any, row_number: Optional[int] = None) -> int:
    month = _to_int(value)
    if month is None or month < 1 or month > 12:
        raise RekonImportError(
            f"Invalid month value: {value}",
            "Bulan tidak valid. Gunakan angka 1-12.",
            row_number,
            "bulan",
        )
    return month


def _check_year_range(parsed: datetime, row_number: Optional[int], today: date) -> datetime:
    lo, hi = today.year - 10, today.year + 2
    if parsed.year < lo or parsed.year > hi:
        raise RekonImportError(
            f"Date year out of range: {parsed.year}",
            f"Tanggal tidak valid. Tahun harus antara {lo} dan {hi}",
            row_number,
            "tgl_tx",
        )
    return parsed


def parse_date(value: Any, row_number: Optional[int] = None, today: Optional[date] = None) -> datetime:
    """Parse a transaction date.

    Empty cells fall back to now. Known formats are tried in order before a
    free-form parse, which reads a leading four-digit year as year-first; the year must be within ten years back
    and two years ahead.
    """
    today = today or date.today()
    if is_blank(value) or (isinstance(value, str) and value.strip() == "-"):
        return datetime.now()
    if isinstance(value, datetime):
        return _check_year_range(value, row_number, today)
    if isinstance(value, date):
        return _check_year_range(datetime(value.year, value.month, value.day), row_number, today)

    raw = text(value)
    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(raw, fmt)
        except ValueError:
            continue
        if parsed.year < 100:
            # "%Y" happily reads "24" as year 24; leave it to "%d/%m/%y"
            continue
        return _check_year_range(parsed, row_number, today)

    try:
        if YEAR_FIRST_RE.match(raw):
            parsed = date_parser.parse(raw, yearfirst=True)
        else:
            parsed = date_parser.parse(raw, dayfirst=True)
    except (ValueError, OverflowError) as e:
        raise RekonImportError(
            f"Unable to parse date: {raw}",
            "Format tanggal tidak valid. Gunakan format: DD/MM/YYYY atau YYYY-MM-DD.",
            row_number,
            "tgl_tx",
            context={"original_value": raw, "original_error": str(e)},
        ) from e
    return _check_year_range(parsed.replace(tzinfo=None), row_number, today)


def format_date(value: Optional[datetime]) -> str:
    return value.strftime("%d/%m/%Y") if value else "-"

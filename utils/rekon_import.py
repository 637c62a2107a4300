"""Spreadsheet imports into ``rekon_data``.

Two header dialects are supported:

* the SPP template (``SEKOLAH``, ``ID_SISWA``, ``NAMA_SISWA`` ...), imported
  row by row as-is;
* the bank export (``Instansi``, ``No. Tagihan``, ``Nama`` ...), where only
  rows with status "Terbayar" are stored and ``No. Bukti`` must be unique.

A bad row never aborts the file: its error is collected as
``"Baris N: <message>"`` and the import carries on.
"""
from __future__ import annotations

import time
import traceback
from datetime import date
from typing import IO, Any, Callable, Dict, List, Optional, Sequence

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import RekonData
from utils.errors import (
    DatabaseError,
    FileProcessingError,
    RekonImportError,
    SppRekonError,
)
from utils.parsing import (
    clean_bank_header,
    clean_header,
    is_blank,
    parse_date,
    parse_int,
    parse_month,
    parse_number,
    parse_year,
    text,
)
from utils.rekon_log import new_id, rate, rekon_logger as logger
from utils.spreadsheet import read_table, validate_upload

LEGACY = "legacy"
BANK_CSV = "bank_csv"

EXPECTED_COLUMNS = (
    "SEKOLAH", "ID_SISWA", "NAMA_SISWA", "ALAMAT", "KELAS", "JURUSAN",
    "JUM_TAGIHAN", "BIAYA_ADM", "TAGIHAN_LAIN", "KET_TAGIHAN_LAIN", "KETERANGAN",
    "TAHUN", "BULAN", "DANA_MASYARAKAT", "TGL_TX", "STS_BAYAR", "KD_CAB",
    "KD_USER", "STS_REVERSAL", "NO_BUKTI",
)

BANK_COLUMNS = (
    "NAMA", "TAGIHAN", "BIAYA_ADM", "TAGIHAN_LAIN", "KET_TAGIHAN_LAIN",
    "ALAMAT", "KELAS", "JURUSAN", "TAHUN", "BULAN", "DANA_MASYARAKAT",
    "KETERANGAN", "KODE_CABANG", "USER", "STATUS_REVERSAL", "NO_BUKTI",
)
# Headers matched by substring, checked before the exact names above
BANK_FUZZY_COLUMNS = ("INSTANSI", "NO_TAGIHAN", "TANGGAL_TRANSAKSI", "STATUS_BAYAR")

PROGRESS_EVERY = 100


class _Row:
    """Positional row with column-name access through the header mapping."""

    def __init__(self, values: Sequence, mapping: Dict[str, int]):
        self.values = values
        self.mapping = mapping

    def get(self, column: str, default: Any = None) -> Any:
        idx = self.mapping.get(column)
        if idx is None or idx >= len(self.values):
            return default
        value = self.values[idx]
        return default if value is None else value

    def text(self, column: str, default: str = "") -> str:
        return text(self.get(column, default))


# -----------------------------
# Header mapping
# -----------------------------

def map_columns(header: Sequence[str]) -> Dict[str, int]:
    mapping: Dict[str, int] = {}
    for idx, name in enumerate(header):
        clean = clean_header(name)
        if clean in EXPECTED_COLUMNS and clean not in mapping:
            mapping[clean] = idx
    return mapping


def map_bank_columns(header: Sequence[str]) -> Dict[str, int]:
    mapping: Dict[str, int] = {}
    for idx, name in enumerate(header):
        clean = clean_bank_header(name)
        fuzzy = next((key for key in BANK_FUZZY_COLUMNS if key in clean), None)
        if fuzzy:
            mapping.setdefault(fuzzy, idx)
        elif clean in BANK_COLUMNS:
            mapping.setdefault(clean, idx)
        else:
            logger.debug("Column not mapped", {"index": idx, "name": clean})
    logger.debug("Final bank column mapping", {"mapping": mapping})
    return mapping


# -----------------------------
# Row extraction
# -----------------------------

def extract_row(values: Sequence, mapping: Dict[str, int], row_number: int) -> Dict[str, Any]:
    """Build a ``rekon_data`` payload from an SPP-template row."""
    row = _Row(values, mapping)
    missing = [
        field for field in ("sekolah", "id_siswa", "nama_siswa", "tahun", "bulan")
        if is_blank(row.get(field.upper())) or row.text(field.upper()) == "0"
    ]
    if missing:
        raise RekonImportError(
            f"Missing required fields: {', '.join(missing)}",
            "Data tidak lengkap pada baris ini. Pastikan kolom wajib terisi.",
            row_number,
            ", ".join(missing),
        )

    try:
        raw_date = row.get("TGL_TX")
        return {
            "sekolah": row.text("SEKOLAH"),
            "id_siswa": row.text("ID_SISWA"),
            "nama_siswa": row.text("NAMA_SISWA"),
            "alamat": row.text("ALAMAT"),
            "kelas": row.text("KELAS"),
            "jurusan": row.text("JURUSAN"),
            "jum_tagihan": parse_number(row.get("JUM_TAGIHAN", 0)),
            "biaya_adm": parse_number(row.get("BIAYA_ADM", 0)),
            "tagihan_lain": parse_number(row.get("TAGIHAN_LAIN", 0)),
            "ket_tagihan_lain": row.text("KET_TAGIHAN_LAIN"),
            "keterangan": row.text("KETERANGAN"),
            "tahun": parse_year(row.get("TAHUN"), row_number),
            "bulan": parse_month(row.get("BULAN"), row_number),
            "dana_masyarakat": row.text("DANA_MASYARAKAT"),
            "tgl_tx": parse_date(raw_date, row_number),
            "tgl_tx_formatted": text(raw_date),
            "sts_bayar": parse_int(row.get("STS_BAYAR"), 1),
            "kd_cab": row.text("KD_CAB"),
            "kd_user": row.text("KD_USER") or "system",
            "sts_reversal": parse_int(row.get("STS_REVERSAL"), 0),
            "no_bukti": row.text("NO_BUKTI"),
        }
    except RekonImportError:
        raise
    except Exception as e:
        raise RekonImportError(
            f"Error extracting row data: {e}",
            "Format data pada baris ini tidak valid. Periksa kembali format setiap kolom.",
            row_number,
            context={"original_error": str(e)},
        ) from e


def extract_bank_row(values: Sequence, mapping: Dict[str, int], row_number: int,
                     today: Optional[date] = None) -> Dict[str, Any]:
    """Build a ``rekon_data`` payload from a bank-export row.

    The returned dict carries an extra ``status_bayar`` key (the raw status
    text) which callers use to decide whether the row is stored.
    """
    today = today or date.today()
    row = _Row(values, mapping)
    try:
        status = row.text("STATUS_BAYAR")
        raw_date = row.get("TANGGAL_TRANSAKSI")
        data = {
            "sekolah": row.text("INSTANSI"),
            "id_siswa": row.text("NO_TAGIHAN"),
            "nama_siswa": row.text("NAMA"),
            "alamat": row.text("ALAMAT"),
            "kelas": row.text("KELAS"),
            "jurusan": row.text("JURUSAN"),
            "jum_tagihan": parse_number(row.get("TAGIHAN", 0)),
            "biaya_adm": parse_number(row.get("BIAYA_ADM", 0)),
            "tagihan_lain": parse_number(row.get("TAGIHAN_LAIN", 0)),
            "ket_tagihan_lain": row.text("KET_TAGIHAN_LAIN"),
            "keterangan": row.text("KETERANGAN"),
            "tahun": parse_year(row.get("TAHUN", today.year), row_number),
            "bulan": parse_month(row.get("BULAN", today.month), row_number),
            "dana_masyarakat": row.text("DANA_MASYARAKAT"),
            "tgl_tx": parse_date(raw_date, row_number, today),
            "tgl_tx_formatted": text(raw_date),
            "status_bayar": status,
            "kd_cab": row.text("KODE_CABANG"),
            "kd_user": row.text("USER") or "system",
            "sts_reversal": 0 if row.text("STATUS_REVERSAL") in ("", "-") else 1,
            "no_bukti": row.text("NO_BUKTI"),
            "sts_bayar": 1 if status.lower() == "terbayar" else 0,
        }
    except RekonImportError:
        raise
    except Exception as e:
        logger.error("Error extracting row data", {"row_number": row_number, "error_message": str(e)})
        raise RekonImportError(
            f"Error extracting row data: {e}",
            "Format data pada baris ini tidak valid. Periksa kembali format setiap kolom.",
            row_number,
            context={"original_error": str(e)},
        ) from e

    missing = [f for f in ("sekolah", "id_siswa", "nama_siswa") if not data[f]]
    if missing:
        raise RekonImportError(
            f"Missing required fields: {', '.join(missing)}",
            "Data tidak lengkap pada baris ini. Pastikan kolom Sekolah, No. Tagihan, dan Nama terisi.",
            row_number,
            ", ".join(missing),
        )
    if not data["no_bukti"]:
        raise RekonImportError(
            "No. Bukti is empty",
            "No. Bukti tidak boleh kosong. Ini diperlukan untuk mencegah duplikasi data.",
            row_number,
            "no_bukti",
        )
    if data["tahun"] < today.year - 5 or data["tahun"] > today.year + 5:
        raise RekonImportError(
            f"Invalid year: {data['tahun']}",
            f"Tahun tidak valid. Gunakan tahun antara {today.year - 5} dan {today.year + 5}",
            row_number,
            "tahun",
        )
    return data


# -----------------------------
# Persistence
# -----------------------------

def _insert(data: Dict[str, Any], row_number: int) -> RekonData:
    record = RekonData(**{k: v for k, v in data.items() if k in RekonData.FIELDS})
    try:
        db.session.add(record)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DatabaseError(
            f"Failed to insert RekonData record: {e}",
            f"Gagal menyimpan data pada baris {row_number}. Periksa format data.",
            "insert",
            "rekon_data",
            context={"row_data": {k: str(v) for k, v in data.items()}},
        ) from e
    return record


# -----------------------------
# Import runner
# -----------------------------

def _load(stream: IO[bytes], filename: str, size: int):
    max_bytes = current_app.config.get("MAX_IMPORT_BYTES", 50 * 1024 * 1024)
    validate_upload(filename, size, max_bytes)
    return read_table(stream, filename)


def _run(
    kind: str,
    batch_id: str,
    filename: str,
    size: int,
    rows: List[Sequence],
    handle_row: Callable[[Sequence, int, Dict[str, int]], None],
    counters: Dict[str, int],
) -> Dict[str, Any]:
    started = time.monotonic()
    errors: List[str] = []
    total = len(rows)
    batch = logger.create_batch_context(batch_id, f"{kind}_import")

    for offset, values in enumerate(rows):
        row_number = offset + 2  # row 1 is the header
        try:
            handle_row(values, row_number, counters)
        except RekonImportError as e:
            errors.append(f"Baris {row_number}: {e.user_message}")
            logger.warning("Row processing failed", {
                "batch_id": batch_id,
                "row": row_number,
                "error": e.message,
                "user_message": e.user_message,
            })
        except SppRekonError as e:
            errors.append(f"Baris {row_number}: {e.user_message}")
            logger.log_at(e.log_level, "Row processing failed", {
                "batch_id": batch_id,
                "row": row_number,
                "error": e.message,
                "error_code": e.error_code,
            })
        except Exception as e:
            errors.append(f"Baris {row_number}: {e}")
            logger.error("Unexpected error processing row", {
                "batch_id": batch_id,
                "row": row_number,
                "error": str(e),
                "trace": traceback.format_exc(limit=5),
            })
        if row_number % PROGRESS_EVERY == 0:
            logger.update_batch_progress(batch, row_number - 1, total)

    duration_ms = round((time.monotonic() - started) * 1000, 2)
    result: Dict[str, Any] = {"success": True, **counters}
    result.update({
        "total_rows": total,
        "errors": errors,
        "error_count": len(errors),
        "duration_ms": duration_ms,
        "batch_id": batch_id,
    })
    logger.complete_batch(batch, result)
    logger.log_file_import(filename, size, kind, result)
    logger.log_performance(f"{kind}_import", {
        "duration_ms": duration_ms,
        "rows_processed": total,
        "rows_per_second": rate(total, duration_ms),
        "success_rate": round(counters.get("imported", 0) / total * 100, 2) if total else 0.0,
    })
    return result


def _guarded(kind: str, batch_id: str, filename: str, size: int, body: Callable[[], Dict[str, Any]]):
    try:
        return body()
    except SppRekonError as e:
        logger.log_at(e.log_level, "Import failed", {
            "batch_id": batch_id,
            "type": kind,
            "error": e.message,
            "error_code": e.error_code,
            "context": e.context,
        })
        raise
    except Exception as e:
        logger.error("Unexpected import error", {
            "batch_id": batch_id,
            "type": kind,
            "error": str(e),
            "trace": traceback.format_exc(limit=5),
        })
        raise FileProcessingError(
            f"Error importing data: {e}",
            "Terjadi kesalahan saat memproses file. Pastikan file tidak rusak dan formatnya benar.",
            filename,
            size,
            context={"original_error": str(e)},
        ) from e


def import_rekon_file(stream: IO[bytes], filename: str, size: int) -> Dict[str, Any]:
    """Import an SPP-template spreadsheet. Returns the import summary."""
    batch_id = new_id("legacy_import")

    def body():
        header, rows = _load(stream, filename, size)
        logger.info("Starting legacy file import", {"batch_id": batch_id, "file_name": filename, "file_size": size})
        mapping = map_columns(header)
        if not mapping:
            raise RekonImportError(
                "Format file tidak sesuai. Pastikan kolom: SEKOLAH, ID_SISWA, NAMA_SISWA, KELAS, "
                "JURUSAN, TAHUN, BULAN, DANA_MASYARAKAT",
                "Format file tidak valid. Pastikan file memiliki header yang sesuai dengan format SPP Rekon.",
                1,
                file_name=filename,
            )

        def handle(values, row_number, counters):
            data = extract_row(values, mapping, row_number)
            _insert(data, row_number)
            counters["imported"] += 1

        return _run(LEGACY, batch_id, filename, size, rows, handle, {"imported": 0})

    return _guarded(LEGACY, batch_id, filename, size, body)


def import_bank_file(stream: IO[bytes], filename: str, size: int) -> Dict[str, Any]:
    """Import a bank export; only "Terbayar" rows with a new No. Bukti are stored."""
    batch_id = new_id("bank_csv")

    def body():
        header, rows = _load(stream, filename, size)
        logger.info("Starting bank CSV import", {"batch_id": batch_id, "file_name": filename, "file_size": size})
        mapping = map_bank_columns(header)
        if not mapping:
            raise RekonImportError(
                "Format CSV Bank tidak sesuai. Pastikan kolom: Instansi, No. Tagihan, Nama, Tagihan, "
                "Tanggal Transaksi, Status Bayar, Tahun, Bulan",
                "Format file CSV Bank tidak valid. Pastikan file memiliki header yang sesuai.",
                1,
                file_name=filename,
            )
        seen = set()

        def handle(values, row_number, counters):
            data = extract_bank_row(values, mapping, row_number)
            no_bukti = data["no_bukti"]
            if no_bukti in seen or RekonData.query.filter_by(no_bukti=no_bukti).first() is not None:
                counters["duplicates"] += 1
                logger.debug("Duplicate no_bukti", {"row": row_number, "no_bukti": no_bukti})
                return
            if data["status_bayar"].lower() != "terbayar":
                counters["skipped"] += 1
                return
            _insert(data, row_number)
            seen.add(no_bukti)
            counters["imported"] += 1

        return _run(BANK_CSV, batch_id, filename, size, rows, handle,
                    {"imported": 0, "duplicates": 0, "skipped": 0})

    return _guarded(BANK_CSV, batch_id, filename, size, body)


IMPORTERS = {
    LEGACY: import_rekon_file,
    BANK_CSV: import_bank_file,
}

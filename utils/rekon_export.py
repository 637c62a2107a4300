from __future__ import annotations

import csv
import os
import time
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import RekonData
from utils.errors import DatabaseError, FileProcessingError
from utils.parsing import short_month_name
from utils.reports import class_report
from utils.rekon_log import new_id, rate, rekon_logger as logger

EXPORT_HEADERS = [
    "No", "Sekolah", "ID Siswa", "Nama Siswa", "Alamat", "Kelas", "Jurusan",
    "Jumlah Tagihan", "Biaya Admin", "Tagihan Lain", "Ket. Tagihan Lain", "Keterangan",
    "Tahun", "Bulan", "Dana Masyarakat", "Tanggal Transaksi", "Status Bayar", "Kode Cabang",
    "Kode User", "Status Reversal", "No. Bukti",
]


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d_%H-%M-%S")


def export_dir() -> str:
    path = current_app.config["EXPORT_DIR"]
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise FileProcessingError(
            f"Failed to create directory: {path}",
            "Gagal membuat folder untuk menyimpan file. Periksa izin akses folder.",
            file_path=path,
            context={"original_error": str(e)},
        ) from e
    return path


def _clean_filters(filters: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep non-empty sekolah/tahun/bulan and check their ranges."""
    cleaned: Dict[str, Any] = {}
    sekolah = str(filters.get("sekolah") or "").strip()
    if sekolah:
        cleaned["sekolah"] = sekolah

    max_year = date.today().year + 5
    tahun = filters.get("tahun")
    if tahun not in (None, ""):
        try:
            year = int(tahun)
        except (TypeError, ValueError):
            year = 0
        if year < 2000 or year > max_year:
            raise FileProcessingError(
                f"Invalid year filter: {tahun}",
                f"Filter tahun tidak valid. Gunakan tahun antara 2000 dan {max_year}",
                context={"filter_type": "tahun", "value": tahun},
            )
        cleaned["tahun"] = year

    bulan = filters.get("bulan")
    if bulan not in (None, ""):
        try:
            month = int(bulan)
        except (TypeError, ValueError):
            month = 0
        if month < 1 or month > 12:
            raise FileProcessingError(
                f"Invalid month filter: {bulan}",
                "Filter bulan tidak valid. Gunakan angka 1-12.",
                context={"filter_type": "bulan", "value": bulan},
            )
        cleaned["bulan"] = month
    return cleaned


def _fetch(filters: Dict[str, Any]) -> List[RekonData]:
    query = RekonData.query
    if "sekolah" in filters:
        query = query.filter(RekonData.sekolah == filters["sekolah"])
    if "tahun" in filters:
        query = query.filter(RekonData.tahun == filters["tahun"])
    if "bulan" in filters:
        query = query.filter(RekonData.bulan == filters["bulan"])
    try:
        return query.order_by(RekonData.created_at.desc(), RekonData.id.desc()).all()
    except SQLAlchemyError as e:
        raise DatabaseError(
            f"Database query failed: {e}",
            "Gagal mengambil data dari database. Silakan coba lagi atau hubungi administrator.",
            "select",
            "rekon_data",
            context={"filters": filters, "original_error": str(e)},
        ) from e


def _row(index: int, item: RekonData) -> list:
    return [
        index,
        item.sekolah,
        item.id_siswa,
        item.nama_siswa,
        item.alamat,
        item.kelas,
        item.jurusan,
        item.jum_tagihan,
        item.biaya_adm,
        item.tagihan_lain,
        item.ket_tagihan_lain,
        item.keterangan,
        item.tahun,
        item.bulan,
        item.dana_masyarakat,
        item.tgl_tx_formatted,
        item.sts_bayar,
        item.kd_cab,
        item.kd_user,
        item.sts_reversal,
        item.no_bukti,
    ]


def _result(filename: str, path: str, total: int, started: float, export_id: str) -> Dict[str, Any]:
    duration = (time.monotonic() - started) * 1000
    return {
        "success": True,
        "filename": filename,
        "download_url": f"/exports/{filename}",
        "total_records": total,
        "file_size_mb": round(os.path.getsize(path) / 1024 / 1024, 2),
        "duration_ms": round(duration, 2),
        "export_id": export_id,
    }


def export_records_xlsx(filters: Mapping[str, Any]) -> Dict[str, Any]:
    from openpyxl.workbook import Workbook

    started = time.monotonic()
    export_id = new_id("excel_export")
    cleaned = _clean_filters(filters)
    logger.info("Starting Excel export", {"export_id": export_id, "filters": cleaned})

    data = _fetch(cleaned)
    if not data:
        raise FileProcessingError(
            "No data found for the specified filters",
            "Tidak ada data yang ditemukan untuk filter yang dipilih.",
            context={"filters": cleaned},
        )

    wb = Workbook()
    ws = wb.active
    ws.title = "Laporan Rekon SPP"
    ws.append(EXPORT_HEADERS)
    total = len(data)
    for index, item in enumerate(data, start=1):
        ws.append(_row(index, item))
        if index % 1000 == 0:
            logger.info("Export progress", {
                "export_id": export_id,
                "processed": index,
                "total": total,
                "progress_percent": round(index / total * 100, 2),
            })

    filename = f"laporan_rekon_spp_{_timestamp()}.xlsx"
    path = os.path.join(export_dir(), filename)
    try:
        wb.save(path)
    except OSError as e:
        raise FileProcessingError(
            f"File was not created: {path}",
            "Gagal menyimpan file Excel. Periksa ruang penyimpanan yang tersedia.",
            file_path=path,
            context={"original_error": str(e)},
        ) from e

    result = _result(filename, path, total, started, export_id)
    logger.log_performance("excel_export", {
        "duration_ms": result["duration_ms"],
        "records_processed": total,
        "records_per_second": rate(total, result["duration_ms"]),
        "file_size_mb": result["file_size_mb"],
    })
    return result


def export_records_csv(filters: Mapping[str, Any]) -> Dict[str, Any]:
    started = time.monotonic()
    export_id = new_id("csv_export")
    cleaned = _clean_filters(filters)
    data = _fetch(cleaned)

    filename = f"laporan_rekon_spp_{_timestamp()}.csv"
    path = os.path.join(export_dir(), filename)
    try:
        with open(path, "w", newline="", encoding="utf-8") as fh:
            writer = csv.writer(fh)
            writer.writerow(EXPORT_HEADERS)
            for index, item in enumerate(data, start=1):
                writer.writerow(_row(index, item))
    except OSError as e:
        raise FileProcessingError(
            f"Error creating CSV file: {e}",
            "Gagal menyimpan file CSV. Periksa ruang penyimpanan yang tersedia.",
            file_path=path,
        ) from e

    result = _result(filename, path, len(data), started, export_id)
    logger.log_performance("csv_export", {
        "duration_ms": result["duration_ms"],
        "records_processed": len(data),
        "file_size_mb": result["file_size_mb"],
    })
    return result


def _class_report_filename(kelas: str, angkatan: int, ext: str) -> str:
    return f"Laporan_Kelas_{kelas.replace('.', '_')}_Angkatan_{angkatan}_{_timestamp()}.{ext}"


def export_class_report_xlsx(sekolah: str, kelas: str, angkatan: int,
                             today: Optional[date] = None) -> Dict[str, Any]:
    from openpyxl.styles import Font
    from openpyxl.workbook import Workbook

    started = time.monotonic()
    report = class_report(sekolah, kelas, angkatan, today)

    wb = Workbook()
    ws = wb.active
    # Excel caps sheet titles at 31 chars and rejects a few symbols
    ws.title = "".join(ch for ch in f"Laporan Kelas {kelas}" if ch not in "[]:*?/\\")[:31]
    ws["A1"] = f"Kelas : {kelas}"
    ws["A2"] = f"Angkatan : {angkatan}"

    header_row = ["No", "NIS", "Nama"] + [f"{h['label']} {h['year']}" for h in report["headers"]]
    for col, value in enumerate(header_row, start=1):
        ws.cell(row=4, column=col, value=value).font = Font(bold=True)
    ws["A1"].font = Font(bold=True)
    ws["A2"].font = Font(bold=True)

    for offset, siswa in enumerate(report["siswa"]):
        values = [siswa["no"], siswa["nis"], siswa["nama"]] + siswa["pembayaran"]
        for col, value in enumerate(values, start=1):
            ws.cell(row=5 + offset, column=col, value=value)

    filename = _class_report_filename(kelas, angkatan, "xlsx")
    path = os.path.join(export_dir(), filename)
    wb.save(path)
    result = _result(filename, path, report["total_siswa"], started, new_id("class_export"))
    logger.info("Class report exported", {"filename": filename, "sekolah": sekolah, "kelas": kelas})
    return result


def export_class_report_pdf(sekolah: str, kelas: str, angkatan: int,
                            today: Optional[date] = None) -> Dict[str, Any]:
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import A4, landscape
    from reportlab.lib.styles import getSampleStyleSheet
    from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

    started = time.monotonic()
    report = class_report(sekolah, kelas, angkatan, today)
    filename = _class_report_filename(kelas, angkatan, "pdf")
    path = os.path.join(export_dir(), filename)

    doc = SimpleDocTemplate(
        path,
        pagesize=landscape(A4),
        leftMargin=24,
        rightMargin=24,
        topMargin=24,
        bottomMargin=24,
    )
    styles = getSampleStyleSheet()
    elements = [
        Paragraph(f"Laporan Kelas {kelas} - {sekolah}", styles["Title"]),
        Paragraph(f"Kelas : {kelas}<br/>Angkatan : {angkatan}", styles["Normal"]),
        Spacer(1, 12),
    ]

    rows = [["No", "NIS", "Nama"] + [f"{short_month_name(h['month'])} {h['year']}" for h in report["headers"]]]
    for siswa in report["siswa"]:
        rows.append([siswa["no"], siswa["nis"], siswa["nama"]] + siswa["pembayaran"])

    table = Table(rows, repeatRows=1, hAlign="LEFT")
    table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ("BACKGROUND", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 6),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("LEFTPADDING", (0, 0), (-1, -1), 2),
        ("RIGHTPADDING", (0, 0), (-1, -1), 2),
    ]))
    elements.append(table)
    doc.build(elements)

    result = _result(filename, path, report["total_siswa"], started, new_id("class_pdf"))
    logger.info("Class report PDF exported", {"filename": filename, "sekolah": sekolah, "kelas": kelas})
    return result

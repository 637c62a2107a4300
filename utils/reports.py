"""Reconciliation pivots: one row per student, one column per billing month."""
from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, or_

from extensions import db
from models import RekonData
from utils.errors import NotFoundError, RequestValidationError
from utils.parsing import format_date, month_name, short_month_name

# School year starts in July
ACADEMIC_MONTHS = (7, 8, 9, 10, 11, 12, 1, 2, 3, 4, 5, 6)
TAHUN_AJARAN_RE = re.compile(r"^(\d{4})/(\d{4})$")


def validate_class_params(args) -> Tuple[str, str, int]:
    errors: Dict[str, List[str]] = {}
    sekolah = str(args.get("sekolah") or "").strip()
    kelas = str(args.get("kelas") or "").strip()
    if not sekolah:
        errors["sekolah"] = ["The sekolah field is required."]
    if not kelas:
        errors["kelas"] = ["The kelas field is required."]
    raw = args.get("angkatan")
    angkatan = None
    try:
        angkatan = int(str(raw).strip())
    except (TypeError, ValueError):
        errors["angkatan"] = ["The angkatan field must be an integer."]
    else:
        if angkatan < 2000 or angkatan > 2100:
            errors["angkatan"] = ["The angkatan field must be between 2000 and 2100."]
    if errors:
        raise RequestValidationError(errors, "Validasi error")
    return sekolah, kelas, angkatan


def class_headers(angkatan: int, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Month-major header list: every July across the years, then every August, ..."""
    end_year = (today or date.today()).year + 1
    return [
        {"year": year, "month": month, "label": month_name(month)}
        for month in ACADEMIC_MONTHS
        for year in range(angkatan, end_year + 1)
    ]


def _class_students(sekolah: str, kelas: str, angkatan: int):
    return (
        db.session.query(RekonData.id_siswa, RekonData.nama_siswa, RekonData.kelas)
        .filter(
            RekonData.sekolah == sekolah,
            RekonData.kelas == kelas,
            RekonData.tahun >= angkatan,
        )
        .distinct()
        .order_by(RekonData.id_siswa)
        .all()
    )


def _paid_dates(sekolah: str, nis_list: List[str], angkatan: int) -> Dict[Tuple[str, int, int], str]:
    """``(nis, year, month) -> d/m/Y`` for the first paid record of each slot."""
    if not nis_list:
        return {}
    rows = (
        RekonData.query
        .filter(
            RekonData.sekolah == sekolah,
            RekonData.id_siswa.in_(nis_list),
            RekonData.tahun >= angkatan,
            RekonData.sts_bayar == 1,
        )
        .order_by(RekonData.id)
        .all()
    )
    paid: Dict[Tuple[str, int, int], str] = {}
    for row in rows:
        paid.setdefault((row.id_siswa, int(row.tahun), int(row.bulan)), format_date(row.tgl_tx))
    return paid


def class_report(sekolah: str, kelas: str, angkatan: int, today: Optional[date] = None) -> Dict[str, Any]:
    students = _class_students(sekolah, kelas, angkatan)
    if not students:
        raise NotFoundError(
            f"No students for {sekolah}/{kelas}/{angkatan}",
            "Data siswa untuk kelas tersebut tidak ditemukan",
            {"sekolah": sekolah, "kelas": kelas, "angkatan": angkatan},
        )

    headers = class_headers(angkatan, today)
    paid = _paid_dates(sekolah, [s.id_siswa for s in students], angkatan)
    siswa = []
    for index, student in enumerate(students, start=1):
        siswa.append({
            "no": index,
            "nis": student.id_siswa,
            "nama": student.nama_siswa,
            "pembayaran": [
                paid.get((student.id_siswa, h["year"], h["month"]), "-") for h in headers
            ],
        })

    return {
        "kelas": kelas,
        "angkatan": angkatan,
        "sekolah": sekolah,
        "headers": headers,
        "siswa": siswa,
        "total_siswa": len(siswa),
    }


def parse_tahun_ajaran(value: str) -> Tuple[int, int]:
    match = TAHUN_AJARAN_RE.match((value or "").strip())
    if not match:
        raise RequestValidationError(
            {"tahun_ajaran": ["Use the format YYYY/YYYY, e.g. 2024/2025."]},
            "Format tahun ajaran tidak valid. Gunakan format 2024/2025.",
        )
    return int(match.group(1)), int(match.group(2))


def academic_periode(tahun1: int, tahun2: int) -> List[Dict[str, Any]]:
    periode = []
    for month in ACADEMIC_MONTHS:
        year = tahun1 if month >= 7 else tahun2
        periode.append({"tahun": year, "bulan": month, "label": f"{short_month_name(month)} {year}"})
    return periode


def academic_year_report(kelas: str, tahun_ajaran: str, jurusan: str = "", sekolah: str = "") -> Dict[str, Any]:
    """Payment grid for one class over an academic year (July .. June)."""
    tahun1, tahun2 = parse_tahun_ajaran(tahun_ajaran)
    periode = academic_periode(tahun1, tahun2)

    query = RekonData.query.filter(
        RekonData.kelas == kelas,
        or_(
            and_(RekonData.tahun == tahun1, RekonData.bulan >= 7),
            and_(RekonData.tahun == tahun2, RekonData.bulan <= 6),
        ),
    )
    if jurusan:
        query = query.filter(RekonData.jurusan == jurusan)
    if sekolah:
        query = query.filter(RekonData.sekolah == sekolah)
    transactions = query.order_by(RekonData.nama_siswa, RekonData.tahun, RekonData.bulan).all()

    students: Dict[str, Dict[str, Any]] = {}
    for tx in transactions:
        student = students.setdefault(tx.id_siswa, {
            "nis": tx.id_siswa,
            "nama": tx.nama_siswa,
            "alamat": tx.alamat,
            "pembayaran": {},
            "total_bayar": 0,
            "total_tunggak": 0,
        })
        if tx.sts_bayar == 1:
            student["pembayaran"][f"{tx.tahun}-{tx.bulan}"] = tx.tgl_tx_formatted or format_date(tx.tgl_tx)
            student["total_bayar"] += 1

    for student in students.values():
        student["total_tunggak"] = len(periode) - student["total_bayar"]

    data = sorted(students.values(), key=lambda s: (s["nama"] or "").lower())
    total_siswa = len(data)
    per_bulan = {}
    for p in periode:
        key = f"{p['tahun']}-{p['bulan']}"
        bayar = sum(1 for s in data if s["pembayaran"].get(key))
        per_bulan[key] = {"bayar": bayar, "tunggak": total_siswa - bayar}

    return {
        "kelas": kelas,
        "jurusan": jurusan or "Semua",
        "tahun_ajaran": tahun_ajaran,
        "periode": periode,
        "data": data,
        "summary": {
            "total_siswa": total_siswa,
            "total_transaksi": len(transactions),
            "total_dana": sum(tx.dana_amount for tx in transactions),
            "per_bulan": per_bulan,
        },
    }


def _distinct(column) -> List[Any]:
    return [value for (value,) in db.session.query(column).distinct().order_by(column).all()]


def report_filters() -> Dict[str, List[Any]]:
    years = _distinct(RekonData.tahun)
    options = set()
    for year in years:
        options.add((year - 1, year))  # Jan..Jun rows
        options.add((year, year + 1))  # Jul..Dec rows
    tahun_ajaran = [f"{a}/{b}" for a, b in sorted(options, reverse=True)]
    return {
        "kelas": _distinct(RekonData.kelas),
        "jurusan": _distinct(RekonData.jurusan),
        "tahun_ajaran": tahun_ajaran,
        "sekolah": _distinct(RekonData.sekolah),
    }

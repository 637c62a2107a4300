"""Lookups over ``rekon_data`` keyed by (school, year, month).

``find_payment`` is the spreadsheet ``INDEX/MATCH`` replacement: the newest
active, non-reversed record for the three keys.
"""
from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from flask import current_app
from sqlalchemy import or_

from models import RekonData
from utils.errors import RequestValidationError

SCHOOL_RE = re.compile(r"^[a-zA-Z0-9_\-\s]+$")
SCHOOL_FILTER_RE = re.compile(r"^[a-zA-Z0-9_\-\s]{2,100}$")
VALUE_FIELDS = ("nama_siswa", "dana_masyarakat", "jum_tagihan", "no_bukti")
NUMERIC_FIELDS = ("dana_masyarakat", "jum_tagihan")


def _as_int(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def validate_criteria(args: Mapping[str, Any], extra_fields: bool = False) -> Dict[str, Any]:
    """Validate ``sekolah``/``tahun``/``bulan`` (and ``field`` when asked)."""
    errors: Dict[str, List[str]] = {}
    max_year = date.today().year + 5

    sekolah = str(args.get("sekolah") or "").strip()
    if not sekolah:
        errors.setdefault("sekolah", []).append("School name is required.")
    elif len(sekolah) < 2 or len(sekolah) > 100:
        errors.setdefault("sekolah", []).append("School name must be between 2 and 100 characters.")
    elif not SCHOOL_RE.match(sekolah):
        errors.setdefault("sekolah", []).append("School name contains invalid characters.")

    tahun = _as_int(args.get("tahun"))
    if args.get("tahun") in (None, ""):
        errors.setdefault("tahun", []).append("Year is required.")
    elif tahun is None:
        errors.setdefault("tahun", []).append("Year must be an integer.")
    elif tahun < 2000:
        errors.setdefault("tahun", []).append("Year must be 2000 or later.")
    elif tahun > max_year:
        errors.setdefault("tahun", []).append("Year cannot be more than 5 years in the future.")

    bulan = _as_int(args.get("bulan"))
    if args.get("bulan") in (None, ""):
        errors.setdefault("bulan", []).append("Month is required.")
    elif bulan is None or bulan < 1 or bulan > 12:
        errors.setdefault("bulan", []).append("Month must be between 1 and 12.")

    result: Dict[str, Any] = {"sekolah": sekolah, "tahun": tahun, "bulan": bulan}

    if extra_fields:
        field = str(args.get("field") or "").strip().lower()
        if not field:
            errors.setdefault("field", []).append("Field name is required.")
        elif field not in VALUE_FIELDS:
            errors.setdefault("field", []).append(
                "Invalid field specified. Allowed fields: " + ", ".join(VALUE_FIELDS)
            )
        result["field"] = field

    if errors:
        raise RequestValidationError(errors)
    return result


def search(sekolah: str, tahun: int, bulan: int) -> Optional[Dict[str, Any]]:
    """Every record for the three keys plus a summary block; ``None`` when empty."""
    limit = int(current_app.config.get("SEARCH_LIMIT", 1000))
    rows = RekonData.by_kriteria(sekolah, tahun, bulan).order_by(RekonData.id).limit(limit).all()
    if not rows:
        return None
    data = [r.to_summary() for r in rows]
    return {
        "data": data,
        "summary": {
            "total_records": len(rows),
            "total_dana_masyarakat": sum(item["dana_masyarakat"] for item in data),
            "unique_students": len({r.id_siswa for r in rows}),
            "query_params": {"sekolah": sekolah, "tahun": tahun, "bulan": bulan},
        },
    }


def get_value(sekolah: str, tahun: int, bulan: int, field: str) -> Optional[Any]:
    if field not in VALUE_FIELDS:
        raise RequestValidationError({"field": [f"Invalid field: {field}"]})
    row = RekonData.by_kriteria(sekolah, tahun, bulan).order_by(RekonData.id).first()
    if row is None:
        return None
    value = getattr(row, field)
    if field in NUMERIC_FIELDS:
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0
    return value


def find_payment(sekolah: str, tahun: int, bulan: int) -> Optional[RekonData]:
    return (
        RekonData.by_kriteria(sekolah, tahun, bulan)
        .filter(RekonData.sts_bayar == 1, RekonData.sts_reversal == 0)
        .order_by(RekonData.created_at.desc(), RekonData.id.desc())
        .first()
    )


def payment_view(row: RekonData) -> Dict[str, Any]:
    return {
        "sekolah": row.sekolah,
        "id_siswa": row.id_siswa,
        "nama_siswa": row.nama_siswa,
        "kelas": row.kelas,
        "jurusan": row.jurusan,
        "jum_tagihan": row.jum_tagihan,
        "dana_masyarakat": row.dana_masyarakat,
        "no_bukti": row.no_bukti,
        "tgl_tx": row.tgl_tx_formatted,
        "keterangan": row.keterangan,
    }


def paginate_records(page: int, per_page: int, school: Optional[str] = None) -> Dict[str, Any]:
    max_per_page = int(current_app.config.get("MAX_PER_PAGE", 100))
    per_page = max(1, min(per_page, max_per_page))
    page = max(1, page)
    if school and not SCHOOL_FILTER_RE.match(school):
        raise RequestValidationError(
            {"school": ["Invalid school filter parameter."]},
            "Invalid school filter parameter.",
        )

    query = RekonData.query.order_by(RekonData.created_at.desc(), RekonData.id.desc())
    if school:
        query = query.filter(RekonData.sekolah.like(f"%{school}%"))
    total = query.count()
    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    last_page = max(1, -(-total // per_page))
    return {
        "data": {
            "current_page": page,
            "data": [r.to_summary() for r in rows],
            "per_page": per_page,
            "total": total,
            "last_page": last_page,
        },
        "meta": {"per_page": per_page, "school_filter": school or None},
    }


def filter_records(args: Mapping[str, Any]) -> Dict[str, Any]:
    """Filtered listing with limit/offset pagination."""
    max_per_page = int(current_app.config.get("MAX_PER_PAGE", 100))
    limit = max(1, min(_as_int(args.get("limit")) or 50, max_per_page))
    offset = max(0, _as_int(args.get("offset")) or 0)

    query = RekonData.query
    if args.get("sekolah"):
        query = query.filter(RekonData.sekolah == args["sekolah"])
    tahun = _as_int(args.get("tahun"))
    if tahun:
        query = query.filter(RekonData.tahun == tahun)
    bulan = _as_int(args.get("bulan"))
    if bulan:
        query = query.filter(RekonData.bulan == bulan)
    if args.get("kelas"):
        query = query.filter(RekonData.kelas.contains(args["kelas"]))
    term = (args.get("search") or "").strip()
    if term:
        query = query.filter(or_(RekonData.nama_siswa.contains(term), RekonData.id_siswa.contains(term)))

    total = query.count()
    rows = (
        query.order_by(RekonData.created_at.desc(), RekonData.tahun.desc(), RekonData.bulan.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return {
        "data": [r.to_dict() for r in rows],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + limit < total,
        },
    }

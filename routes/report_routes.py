from __future__ import annotations

from flask import Blueprint, jsonify, request

from utils.errors import RequestValidationError
from utils.rekon_export import (
    export_class_report_pdf,
    export_class_report_xlsx,
    export_records_csv,
    export_records_xlsx,
)
from utils.reports import academic_year_report, class_report, report_filters, validate_class_params

report_bp = Blueprint("rekon_report", __name__, url_prefix="/api/rekon")


def _export_filters():
    return {name: request.args.get(name) for name in ("sekolah", "tahun", "bulan")}


@report_bp.route("/laporan-kelas", methods=["GET"])
def laporan_kelas():
    sekolah, kelas, angkatan = validate_class_params(request.args)
    return jsonify({"success": True, "data": class_report(sekolah, kelas, angkatan)})


@report_bp.route("/laporan-kelas/export", methods=["GET"])
def export_laporan_kelas():
    sekolah, kelas, angkatan = validate_class_params(request.args)
    fmt = (request.args.get("format") or "xlsx").lower()
    if fmt == "xlsx":
        result = export_class_report_xlsx(sekolah, kelas, angkatan)
        message = "File Excel laporan kelas berhasil dibuat"
    elif fmt == "pdf":
        result = export_class_report_pdf(sekolah, kelas, angkatan)
        message = "File PDF laporan kelas berhasil dibuat"
    else:
        raise RequestValidationError({"format": ["Format must be xlsx or pdf."]})
    return jsonify({
        "success": True,
        "message": message,
        "download_url": result["download_url"],
        "filename": result["filename"],
        "total_records": result["total_records"],
    })


@report_bp.route("/laporan-tahun-ajaran", methods=["GET"])
def laporan_tahun_ajaran():
    kelas = (request.args.get("kelas") or "").strip()
    if not kelas:
        raise RequestValidationError({"kelas": ["The kelas field is required."]}, "Validasi error")
    report = academic_year_report(
        kelas,
        request.args.get("tahun_ajaran") or "",
        (request.args.get("jurusan") or "").strip(),
        (request.args.get("sekolah") or "").strip(),
    )
    return jsonify({"success": True, **report})


@report_bp.route("/laporan/filters", methods=["GET"])
def laporan_filters():
    return jsonify({"success": True, "filters": report_filters()})


@report_bp.route("/export/excel", methods=["GET"])
def export_excel():
    result = export_records_xlsx(_export_filters())
    return jsonify({"message": "File Excel berhasil dibuat", **result})


@report_bp.route("/export/csv", methods=["GET"])
def export_csv():
    result = export_records_csv(_export_filters())
    return jsonify({"message": "File CSV berhasil dibuat", **result})

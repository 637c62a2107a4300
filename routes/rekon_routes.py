from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import RekonData
from utils import int_arg, json_body
from utils.errors import DatabaseError, NotFoundError, RekonImportError, RequestValidationError
from utils.lookup import (
    filter_records,
    find_payment,
    get_value,
    paginate_records,
    payment_view,
    search,
    validate_criteria,
)
from utils.rekon_import import extract_row
from utils.rekon_log import rekon_logger as logger

rekon_bp = Blueprint("rekon", __name__, url_prefix="/api/rekon")

NOT_FOUND = "Data tidak ditemukan"


def _get_record(record_id: int) -> RekonData:
    record = db.session.get(RekonData, record_id)
    if record is None:
        raise NotFoundError(f"rekon_data {record_id} not found", NOT_FOUND, {"id": record_id})
    return record


def _clean_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Run a JSON record through the same field rules as a file row."""
    keys = [k for k in RekonData.FIELDS if k in payload and k != "tgl_tx_formatted"]
    mapping = {k.upper(): i for i, k in enumerate(keys)}
    values = [payload[k] for k in keys]
    try:
        return extract_row(values, mapping, 0)
    except RekonImportError as e:
        raise RequestValidationError({e.column or "data": [e.user_message]}, e.user_message) from e


def _commit(operation: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DatabaseError(
            f"Failed to {operation} rekon_data: {e}",
            "Gagal menyimpan data. Silakan coba lagi atau hubungi administrator.",
            operation,
            "rekon_data",
        ) from e


# -----------------------------
# Lookups
# -----------------------------

@rekon_bp.route("/search", methods=["GET"])
def search_records():
    criteria = validate_criteria(request.args)
    found = search(criteria["sekolah"], criteria["tahun"], criteria["bulan"])
    if found is None:
        return jsonify({"success": False, "message": NOT_FOUND, "data": "-"}), 404
    logger.debug("Search hit", {**criteria, "total": found["summary"]["total_records"]})
    return jsonify({"success": True, "message": "Data ditemukan", **found})


@rekon_bp.route("/get-value", methods=["GET"])
def get_value_route():
    criteria = validate_criteria(request.args, extra_fields=True)
    value = get_value(criteria["sekolah"], criteria["tahun"], criteria["bulan"], criteria["field"])
    if value is None:
        return jsonify({"success": False, "message": NOT_FOUND, "value": "-"}), 404
    return jsonify({"success": True, "message": "Data ditemukan", "value": value, "field": criteria["field"]})


@rekon_bp.route("/lookup", methods=["POST"])
def lookup_payment():
    criteria = validate_criteria(json_body())
    row = find_payment(criteria["sekolah"], criteria["tahun"], criteria["bulan"])
    if row is None:
        return jsonify({"success": False, "message": NOT_FOUND, "dana": "-"}), 404
    return jsonify({"success": True, "message": "Data ditemukan", "data": payment_view(row), "dana": row.dana_masyarakat})


@rekon_bp.route("", methods=["GET"])
def list_records():
    page = int_arg("page", 1)
    per_page = int_arg("per_page", 50)
    school = (request.args.get("school") or "").strip() or None
    return jsonify({"success": True, **paginate_records(page, per_page, school)})


@rekon_bp.route("/records", methods=["GET"])
def filtered_records():
    return jsonify({"success": True, **filter_records(request.args)})


# -----------------------------
# CRUD
# -----------------------------

@rekon_bp.route("", methods=["POST"])
def create_record():
    data = _clean_payload(json_body())
    record = RekonData(**data)
    db.session.add(record)
    _commit("insert")
    logger.info("Rekon record created", {"id": record.id, "sekolah": record.sekolah, "id_siswa": record.id_siswa})
    return jsonify({"success": True, "message": "Data berhasil disimpan", "data": record.to_dict()}), 201


@rekon_bp.route("/<int:record_id>", methods=["GET"])
def show_record(record_id: int):
    return jsonify({"success": True, "data": _get_record(record_id).to_dict()})


@rekon_bp.route("/<int:record_id>", methods=["PUT", "PATCH"])
def update_record(record_id: int):
    record = _get_record(record_id)
    payload = json_body()
    merged = {name: getattr(record, name) for name in RekonData.FIELDS}
    merged.update({k: v for k, v in payload.items() if k in RekonData.FIELDS})
    if "tgl_tx" not in payload:
        # stored dates are not re-checked against the import window
        merged.pop("tgl_tx", None)
    data = _clean_payload(merged)
    if "tgl_tx" not in payload:
        # keep the original file text rather than the re-rendered datetime
        data["tgl_tx"] = record.tgl_tx
        data["tgl_tx_formatted"] = record.tgl_tx_formatted
    for name, value in data.items():
        setattr(record, name, value)
    _commit("update")
    logger.info("Rekon record updated", {"id": record.id, "fields": sorted(payload)})
    return jsonify({"success": True, "message": "Data berhasil diperbarui", "data": record.to_dict()})


@rekon_bp.route("/<int:record_id>", methods=["DELETE"])
def delete_record(record_id: int):
    record = _get_record(record_id)
    db.session.delete(record)
    _commit("delete")
    logger.info("Rekon record deleted", {"id": record_id})
    return jsonify({"success": True, "message": "Data berhasil dihapus"})

from __future__ import annotations

import os
import time
import uuid

from flask import Blueprint, current_app, jsonify, request

from utils import int_arg
from utils.errors import RequestValidationError
from utils.import_jobs import (
    estimate_processing_time,
    import_history,
    job_status,
    queue_import,
    record_import,
    should_queue,
)
from utils.rekon_import import BANK_CSV, IMPORTERS, LEGACY
from utils.rekon_log import rekon_logger as logger
from utils.spreadsheet import validate_upload

import_bp = Blueprint("rekon_import", __name__, url_prefix="/api/rekon")

SUCCESS_MESSAGES = {
    LEGACY: "Berhasil mengimport {imported} data",
    BANK_CSV: "Berhasil mengimport {imported} data dari CSV Bank",
}


def _uploaded_file():
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise RequestValidationError({"file": ["File harus diunggah."]}, "File harus diunggah.")
    stream = upload.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return upload, size


def _handle_import(kind: str):
    request_id = f"req_{uuid.uuid4().hex[:13]}"
    started = time.monotonic()
    upload, size = _uploaded_file()
    validate_upload(upload.filename, size, current_app.config["MAX_IMPORT_BYTES"], upload.mimetype)
    logger.info("Import request received", {
        "request_id": request_id,
        "type": kind,
        "file_name": upload.filename,
        "file_size": size,
    })

    if should_queue(size):
        job = queue_import(upload, size, kind)
        return jsonify({
            "success": True,
            "message": "File besar terdeteksi. Import akan diproses di background.",
            "queued": True,
            "job_id": job.id,
            "file_name": upload.filename,
            "estimated_time": estimate_processing_time(size, kind),
            "request_id": request_id,
        })

    result = IMPORTERS[kind](upload.stream, upload.filename, size)
    record_import(kind, upload.filename, size, result)
    response = {
        "success": True,
        "message": SUCCESS_MESSAGES[kind].format(imported=result["imported"]),
        **{k: v for k, v in result.items() if k not in ("success", "batch_id")},
        "duration_ms": round((time.monotonic() - started) * 1000, 2),
        "request_id": request_id,
    }
    logger.info("Import completed", {"request_id": request_id, "type": kind, "imported": result["imported"]})
    return jsonify(response)


@import_bp.route("/import", methods=["POST"])
def import_legacy():
    return _handle_import(LEGACY)


@import_bp.route("/import-bank", methods=["POST"])
def import_bank():
    return _handle_import(BANK_CSV)


@import_bp.route("/import/status", methods=["GET"])
def import_status():
    job_id = (request.args.get("job_id") or "").strip()
    if not job_id:
        return jsonify({"success": False, "message": "Job ID diperlukan"}), 400
    status = job_status(job_id)
    if status is None:
        return jsonify({"success": False, "message": "Job tidak ditemukan"}), 404
    return jsonify(status)


@import_bp.route("/import/history", methods=["GET"])
def history():
    limit = int_arg("limit", 10)
    return jsonify({"success": True, "data": import_history(limit)})

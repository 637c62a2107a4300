from __future__ import annotations

import json
import os
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask, current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from extensions import db
from models import ImportJob
from utils.errors import FileProcessingError, SppRekonError
from utils.rekon_import import BANK_CSV, IMPORTERS, LEGACY
from utils.rekon_log import rekon_logger as logger

# Throughput used for the ETA shown to operators (rows per second)
BASE_RATES = {LEGACY: 100, BANK_CSV: 200}
AVG_ROW_BYTES = 500

_scheduler: Optional[BackgroundScheduler] = None


def get_scheduler() -> BackgroundScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = BackgroundScheduler()
        _scheduler.start()
    return _scheduler


def should_queue(size: int) -> bool:
    return size > int(current_app.config.get("LARGE_IMPORT_BYTES", 5 * 1024 * 1024))


def estimate_processing_time(file_size: int, kind: str) -> str:
    rows = file_size / AVG_ROW_BYTES
    seconds = rows / BASE_RATES.get(kind, 100) * 1.5  # buffer for DB writes
    if seconds < 60:
        return f"~{round(seconds)} detik"
    if seconds < 3600:
        return f"~{round(seconds / 60)} menit"
    return f"~{round(seconds / 3600, 1)} jam"


def queue_import(upload: FileStorage, size: int, kind: str) -> ImportJob:
    """Persist the upload and hand it to the background scheduler."""
    if kind not in IMPORTERS:
        raise ValueError(f"unknown import type {kind!r}")
    tmp_dir = current_app.config["IMPORT_TMP_DIR"]
    original = upload.filename or "upload"
    ext = os.path.splitext(original)[1].lower()
    stored = os.path.join(tmp_dir, f"import_{uuid.uuid4().hex}{ext}")
    try:
        os.makedirs(tmp_dir, exist_ok=True)
        upload.save(stored)
    except OSError as e:
        raise FileProcessingError(
            f"Failed to store upload: {e}",
            "Gagal memproses file besar. Silakan coba lagi atau hubungi administrator.",
            original,
            size,
            ext.lstrip("."),
            stored,
            context={"type": kind, "original_error": str(e)},
        ) from e

    job = ImportJob(kind=kind, file_name=secure_filename(original) or original,
                    stored_path=stored, file_size=size, status="queued")
    db.session.add(job)
    db.session.commit()

    app = current_app._get_current_object()  # type: ignore[attr-defined]
    get_scheduler().add_job(
        run_import_job,
        args=(app, job.id),
        id=f"import-{job.id}",
        replace_existing=True,
        misfire_grace_time=None,
    )
    logger.info("Large file queued for processing", {
        "job_id": job.id,
        "file_name": original,
        "file_size_mb": round(size / 1024 / 1024, 2),
        "type": kind,
    })
    return job


def record_import(kind: str, file_name: str, size: int, result: Dict[str, Any]) -> ImportJob:
    """Keep a history entry for an import that ran inside the request."""
    now = datetime.utcnow()
    job = ImportJob(kind=kind, file_name=file_name, file_size=size, status="completed",
                    result=json.dumps(result, default=str), created_at=now, finished_at=now)
    db.session.add(job)
    db.session.commit()
    return job


def run_import_job(app: Flask, job_id: str) -> None:
    """Worker entry point: run the importer for a queued job."""
    with app.app_context():
        job = db.session.get(ImportJob, job_id)
        if job is None:
            logger.warning("Import job vanished before processing", {"job_id": job_id})
            return
        job.status = "processing"
        db.session.commit()

        importer = IMPORTERS[job.kind]
        try:
            with open(job.stored_path, "rb") as fh:
                result = importer(fh, job.file_name, job.file_size)
            job.status = "completed"
            job.result = json.dumps(result, default=str)
        except SppRekonError as e:
            db.session.rollback()
            job.status = "failed"
            job.error = e.user_message
            job.result = json.dumps(e.to_dict(), default=str)
            logger.log_at(e.log_level, "Background import failed", {"job_id": job_id, "error_code": e.error_code})
        except Exception as e:
            db.session.rollback()
            job.status = "failed"
            job.error = str(e)
            logger.error("Background import crashed", {"job_id": job_id, "error": str(e)})
        finally:
            job.finished_at = datetime.utcnow()
            db.session.commit()
            try:
                os.remove(job.stored_path)
            except OSError:
                logger.warning("Could not remove import temp file", {"path": job.stored_path})


def job_status(job_id: str) -> Optional[Dict[str, Any]]:
    job = db.session.get(ImportJob, job_id)
    if job is None:
        return None
    if job.status in ("queued", "processing"):
        return {"success": True, "status": "processing", "message": "Import sedang diproses..."}
    return {"success": True, "status": job.status, "result": job.result_data, "error": job.error}


def import_history(limit: int = 10):
    limit = max(1, min(int(limit), 50))
    jobs = ImportJob.query.order_by(ImportJob.created_at.desc()).limit(limit).all()
    return [job.to_dict() for job in jobs]

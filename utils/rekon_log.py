from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Dict, Optional


def _dump(context: Optional[Dict[str, Any]]) -> str:
    if not context:
        return ""
    try:
        return " " + json.dumps(context, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return " " + repr(context)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:13]}"


class RekonLogger:
    """Structured logging for imports, exports and lookups.

    Every call logs ``<message> {json context}`` on a standard logger so the
    records flow through whatever handlers the Flask app configured.
    """

    def __init__(self, name: str = "spp_rekon"):
        self.log = logging.getLogger(name)

    def debug(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.log.debug("%s%s", message, _dump(context))

    def info(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.log.info("%s%s", message, _dump(context))

    def warning(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.log.warning("%s%s", message, _dump(context))

    def error(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.log.error("%s%s", message, _dump(context))

    def critical(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.log.critical("%s%s", message, _dump(context))

    def log_at(self, level: int, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.log.log(level, "%s%s", message, _dump(context))

    # -----------------------------
    # Batch helpers (imports)
    # -----------------------------

    def create_batch_context(self, batch_id: str, operation: str) -> Dict[str, Any]:
        ctx = {"batch_id": batch_id, "operation": operation, "started": time.monotonic()}
        self.info("Batch started", {"batch_id": batch_id, "operation": operation})
        return ctx

    def update_batch_progress(self, ctx: Dict[str, Any], processed: int, total: int) -> None:
        percent = round(processed / total * 100, 2) if total else 100.0
        self.info("Batch progress", {
            "batch_id": ctx.get("batch_id"),
            "operation": ctx.get("operation"),
            "processed": processed,
            "total": total,
            "progress_percent": percent,
        })

    def complete_batch(self, ctx: Dict[str, Any], result: Dict[str, Any]) -> None:
        elapsed_ms = round((time.monotonic() - ctx.get("started", time.monotonic())) * 1000, 2)
        summary = {k: v for k, v in result.items() if k != "errors"}
        self.info("Batch completed", {
            "batch_id": ctx.get("batch_id"),
            "operation": ctx.get("operation"),
            "elapsed_ms": elapsed_ms,
            "result": summary,
        })

    def log_file_import(self, file_name: str, file_size: int, kind: str, details: Dict[str, Any]) -> None:
        self.info("File import", {
            "file_name": file_name,
            "file_size": file_size,
            "type": kind,
            **{k: v for k, v in details.items() if k != "errors"},
        })

    def log_performance(self, operation: str, metrics: Dict[str, Any]) -> None:
        self.info(f"Performance: {operation}", metrics)

    def log_security(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.warning(f"Security: {message}", context)


rekon_logger = RekonLogger()


def rate(count: int, duration_ms: float) -> float:
    if duration_ms <= 0:
        return float(count)
    return round(count / (duration_ms / 1000), 2)

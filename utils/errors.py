from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _code(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:13].upper()}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SppRekonError(Exception):
    """Base error for the reconciliation backend.

    Carries two messages: ``message`` is technical and goes to the logs,
    ``user_message`` is safe to show to operators in the API response.
    """

    code_prefix = "SPR"
    default_status = 500
    log_level = logging.ERROR

    def __init__(
        self,
        message: str = "",
        user_message: str = "",
        context: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})
        self.status_code = status_code or self.default_status
        self.user_message = user_message or self.default_user_message()
        self.error_code = _code(self.code_prefix)

    def default_user_message(self) -> str:
        return "Terjadi kesalahan pada sistem. Silakan coba beberapa saat lagi."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error_code": self.error_code,
            "message": self.user_message,
            "context": self.context,
            "timestamp": utc_now_iso(),
            "status_code": self.status_code,
        }


class RekonImportError(SppRekonError):
    """A single row (or the header) of an import file is invalid."""

    code_prefix = "IMP"
    default_status = 400

    def __init__(
        self,
        message: str = "",
        user_message: str = "",
        row_number: Optional[int] = None,
        column: Optional[str] = None,
        file_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.row_number = row_number
        self.column = column
        self.file_name = file_name
        ctx = dict(context or {})
        ctx.update({"row_number": row_number, "column": column, "file_name": file_name})
        super().__init__(message, user_message, ctx, status_code)

    def default_user_message(self) -> str:
        if self.row_number and self.column:
            return f"Kesalahan pada baris {self.row_number}, kolom '{self.column}'. Periksa format file Anda."
        if self.row_number:
            return f"Kesalahan pada baris {self.row_number}. Periksa data pada baris tersebut."
        return "Format file tidak valid atau terjadi kesalahan saat memproses data."


class FileProcessingError(SppRekonError):
    code_prefix = "FILE"
    default_status = 400

    def __init__(
        self,
        message: str = "",
        user_message: str = "",
        file_name: Optional[str] = None,
        file_size: Optional[int] = None,
        file_type: Optional[str] = None,
        file_path: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.file_name = file_name
        self.file_size = file_size
        self.file_type = file_type
        self.file_path = file_path
        ctx = dict(context or {})
        ctx.update({
            "file_name": file_name,
            "file_size": file_size,
            "file_type": file_type,
            "file_path": file_path,
        })
        super().__init__(message, user_message, ctx, status_code)

    def default_user_message(self) -> str:
        if self.file_size:
            size_mb = round(self.file_size / 1024 / 1024, 2)
            return f"File '{self.file_name}' ({size_mb}MB) tidak dapat diproses. Periksa format dan ukuran file."
        return "File tidak dapat diproses. Pastikan format file sesuai dan tidak rusak."


class DatabaseError(SppRekonError):
    code_prefix = "DB"
    default_status = 500
    log_level = logging.CRITICAL

    def __init__(
        self,
        message: str = "",
        user_message: str = "",
        operation: str = "",
        table: Optional[str] = None,
        query: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.operation = operation
        self.table = table
        self.query = query
        ctx = dict(context or {})
        ctx.update({"operation": operation, "table": table, "query": query})
        super().__init__(message, user_message, ctx, status_code)

    def default_user_message(self) -> str:
        return "Terjadi kesalahan pada database. Silakan coba beberapa saat lagi atau hubungi administrator."


class RequestValidationError(SppRekonError):
    """Request parameters failed validation; ``errors`` maps field -> messages."""

    code_prefix = "VAL"
    default_status = 422
    log_level = logging.WARNING

    def __init__(
        self,
        errors: Dict[str, List[str]],
        user_message: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.errors = errors
        ctx = dict(context or {})
        ctx["validation_errors"] = errors
        super().__init__(f"Validation failed: {', '.join(errors)}", user_message, ctx)

    def default_user_message(self) -> str:
        return "Data yang Anda masukkan tidak valid."

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["validation_errors"] = self.errors
        return data


class NotFoundError(SppRekonError):
    code_prefix = "NF"
    default_status = 404
    log_level = logging.INFO

    def default_user_message(self) -> str:
        return "Data tidak ditemukan"

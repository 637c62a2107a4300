from __future__ import annotations

from typing import Any, Dict, Optional

from flask import request


def int_arg(name: str, default: Optional[int] = None) -> Optional[int]:
    """Query-string integer; malformed values fall back to ``default``."""
    raw = request.args.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        return default


def json_body() -> Dict[str, Any]:
    """JSON object body, or form fields when the client posted a form."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()

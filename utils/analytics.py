"""Dashboard aggregates over ``rekon_data``, cached in process."""
from __future__ import annotations

import threading
import time
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy import func

from extensions import db
from models import RekonData, School
from utils.errors import utc_now_iso

_cache: Dict[str, Tuple[Any, float]] = {}
_cache_lock = threading.Lock()


def cache_get(key: str) -> Optional[Any]:
    with _cache_lock:
        if key in _cache:
            value, expiry = _cache[key]
            if time.time() < expiry:
                return value
            del _cache[key]
    return None


def cache_set(key: str, value: Any, ttl: int) -> None:
    with _cache_lock:
        now = time.time()
        _cache[key] = (value, now + ttl)
        if len(_cache) > 100:
            for k in [k for k, (_, exp) in _cache.items() if exp < now]:
                del _cache[k]


def cache_clear() -> None:
    with _cache_lock:
        _cache.clear()


def _digits(value: Any) -> int:
    text = str(value or "").strip()
    return int(text) if text.isdigit() else 0


def _dana_by(*keys) -> Dict[Tuple, int]:
    """Sum of all-digit ``dana_masyarakat`` values grouped by ``keys``.

    Grouping on the raw text as well keeps the numeric filter in Python
    without pulling every row.
    """
    rows = (
        db.session.query(*keys, RekonData.dana_masyarakat, func.count(RekonData.id))
        .group_by(*keys, RekonData.dana_masyarakat)
        .all()
    )
    totals: Dict[Tuple, int] = defaultdict(int)
    for row in rows:
        *group, dana, count = row
        totals[tuple(group)] += _digits(dana) * int(count)
    return totals


def summary() -> Dict[str, int]:
    total_transactions, total_siswa = db.session.query(
        func.count(RekonData.id),
        func.count(func.distinct(RekonData.id_siswa)),
    ).one()
    return {
        "total_transactions": int(total_transactions or 0),
        "total_dana": sum(_dana_by().values()),
        "total_siswa": int(total_siswa or 0),
        "total_schools": School.query.filter_by(is_active=True).count(),
    }


def monthly(today: Optional[date] = None) -> List[Dict[str, int]]:
    since = (today or date.today()).year - 2
    rows = (
        db.session.query(RekonData.tahun, RekonData.bulan, func.count(RekonData.id))
        .filter(RekonData.tahun >= since)
        .group_by(RekonData.tahun, RekonData.bulan)
        .order_by(RekonData.tahun, RekonData.bulan)
        .all()
    )
    dana = _dana_by(RekonData.tahun, RekonData.bulan)
    return [
        {"tahun": int(tahun), "bulan": int(bulan), "total": int(total), "dana": dana.get((tahun, bulan), 0)}
        for tahun, bulan, total in rows
    ]


def by_school() -> List[Dict[str, Any]]:
    total_col = func.count(RekonData.id)
    rows = (
        db.session.query(RekonData.sekolah, total_col, func.count(func.distinct(RekonData.id_siswa)))
        .group_by(RekonData.sekolah)
        .order_by(total_col.desc(), RekonData.sekolah)
        .all()
    )
    dana = _dana_by(RekonData.sekolah)
    return [
        {"sekolah": sekolah, "total": int(total), "dana": dana.get((sekolah,), 0), "siswa": int(siswa)}
        for sekolah, total, siswa in rows
    ]


def dashboard_analytics() -> Dict[str, Any]:
    key = "dashboard_analytics_" + datetime.now().strftime("%Y-%m-%d-%H")
    cached = cache_get(key)
    if cached is not None:
        return cached
    data = {
        "summary": summary(),
        "monthly_data": monthly(),
        "school_data": by_school(),
        "cached_at": utc_now_iso(),
    }
    cache_set(key, data, int(current_app.config.get("ANALYTICS_CACHE_TTL", 900)))
    return data

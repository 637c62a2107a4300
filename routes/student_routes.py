from __future__ import annotations

from flask import Blueprint, jsonify, request
from sqlalchemy import func, or_

from extensions import db
from models import RekonData
from utils import int_arg
from utils.errors import NotFoundError

student_bp = Blueprint("students", __name__, url_prefix="/api/siswa")

GROUP_COLUMNS = (
    RekonData.id_siswa,
    RekonData.nama_siswa,
    RekonData.alamat,
    RekonData.kelas,
    RekonData.jurusan,
    RekonData.sekolah,
)


def _last_payments(nis_list):
    """Latest ``tgl_tx_formatted`` per student group, keyed like GROUP_COLUMNS."""
    latest = {}
    if not nis_list:
        return latest
    rows = (
        db.session.query(*GROUP_COLUMNS, RekonData.tgl_tx_formatted)
        .filter(RekonData.id_siswa.in_(nis_list))
        .order_by(RekonData.tgl_tx, RekonData.id)
    )
    for row in rows:
        if row.tgl_tx_formatted:
            latest[tuple(row[:len(GROUP_COLUMNS)])] = row.tgl_tx_formatted
    return latest


@student_bp.route("", methods=["GET"])
def list_students():
    page = max(1, int_arg("page", 1))
    limit = max(1, min(int_arg("limit", 50), 500))

    query = db.session.query(
        *GROUP_COLUMNS,
        func.count(RekonData.id).label("total_transaksi"),
        func.coalesce(func.sum(RekonData.jum_tagihan), 0).label("total_dana"),
    )
    for name in ("kelas", "jurusan", "sekolah"):
        value = (request.args.get(name) or "").strip()
        if value:
            query = query.filter(getattr(RekonData, name) == value)
    term = (request.args.get("search") or "").strip()
    if term:
        query = query.filter(or_(RekonData.nama_siswa.contains(term), RekonData.id_siswa.contains(term)))
    query = query.group_by(*GROUP_COLUMNS).order_by(RekonData.nama_siswa, RekonData.id_siswa)

    total = query.count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    last_payments = _last_payments(sorted({r.id_siswa for r in rows}))
    data = [
        {
            "nis": r.id_siswa,
            "nama": r.nama_siswa,
            "alamat": r.alamat,
            "kelas": r.kelas,
            "jurusan": r.jurusan,
            "sekolah": r.sekolah,
            "total_transaksi": int(r.total_transaksi),
            "total_dana": int(r.total_dana or 0),
            "last_payment": last_payments.get(tuple(r[:len(GROUP_COLUMNS)])),
        }
        for r in rows
    ]
    return jsonify({
        "success": True,
        "data": data,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": -(-total // limit),
        },
    })


@student_bp.route("/filters", methods=["GET"])
def student_filters():
    def distinct(column):
        return [v for (v,) in db.session.query(column).distinct().order_by(column).all()]

    return jsonify({
        "success": True,
        "filters": {
            "kelas": distinct(RekonData.kelas),
            "jurusan": distinct(RekonData.jurusan),
            "sekolah": distinct(RekonData.sekolah),
        },
    })


@student_bp.route("/<nis>", methods=["GET"])
def student_detail(nis: str):
    transactions = (
        RekonData.query
        .filter(RekonData.id_siswa == nis)
        .order_by(RekonData.tahun.desc(), RekonData.bulan.desc(), RekonData.id.desc())
        .all()
    )
    if not transactions:
        raise NotFoundError(f"Student {nis} not found", "Siswa tidak ditemukan", {"nis": nis})

    first = transactions[0]
    return jsonify({
        "success": True,
        "siswa": {
            "nis": first.id_siswa,
            "nama": first.nama_siswa,
            "alamat": first.alamat,
            "kelas": first.kelas,
            "jurusan": first.jurusan,
            "sekolah": first.sekolah,
        },
        "transactions": [
            {
                "id": tx.id,
                "no_bukti": tx.no_bukti,
                "tahun": tx.tahun,
                "bulan": tx.bulan,
                "jum_tagihan": tx.jum_tagihan,
                "dana_masyarakat": tx.dana_masyarakat,
                "tgl_tx": tx.tgl_tx_formatted,
                "kd_cab": tx.kd_cab,
                "kd_user": tx.kd_user,
                "sts_bayar": tx.sts_bayar,
            }
            for tx in transactions
        ],
        "summary": {
            "total_transaksi": len(transactions),
            "total_dana": sum(tx.dana_amount for tx in transactions),
        },
    })

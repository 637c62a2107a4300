from __future__ import annotations

import json
import uuid
from datetime import datetime

from extensions import db


def _digits_to_int(value) -> int:
    text = str(value or "").strip()
    return int(text) if text.isdigit() else 0


class RekonData(db.Model):
    __tablename__ = 'rekon_data'
    __table_args__ = (
        db.Index('ix_rekon_sekolah_tahun_bulan', 'sekolah', 'tahun', 'bulan'),
        db.Index('ix_rekon_siswa_tahun_bulan', 'id_siswa', 'tahun', 'bulan'),
        db.Index('ix_rekon_nama_siswa', 'nama_siswa'),
        db.Index('ix_rekon_no_bukti', 'no_bukti'),
        # Dashboard / report indexes
        db.Index('idx_rekon_year_month', 'tahun', 'bulan'),
        db.Index('idx_rekon_school_year_month_status', 'sekolah', 'tahun', 'bulan', 'sts_bayar'),
        db.Index('idx_rekon_status_year_month', 'sts_bayar', 'tahun', 'bulan'),
        db.Index('idx_rekon_transaction_date', 'tgl_tx'),
        db.Index('idx_rekon_branch_year', 'kd_cab', 'tahun'),
        db.Index('idx_rekon_search_composite', 'sekolah', 'id_siswa', 'tahun', 'bulan'),
        db.Index('idx_rekon_dana_masyarakat', 'dana_masyarakat'),
    )

    id = db.Column(db.Integer, primary_key=True)
    # School & student
    sekolah = db.Column(db.String(255), nullable=False)        # SMAN_1_DENPASAR
    id_siswa = db.Column(db.String(255), nullable=False)       # NIS, e.g. 24908
    nama_siswa = db.Column(db.String(255), nullable=False)
    alamat = db.Column(db.String(255))
    kelas = db.Column(db.String(255), nullable=False, default='')    # XI., XII.
    jurusan = db.Column(db.String(255), nullable=False, default='')  # MIPA1, 12

    # Billing
    jum_tagihan = db.Column(db.Integer, nullable=False, default=0)
    biaya_adm = db.Column(db.Integer, nullable=False, default=0)
    tagihan_lain = db.Column(db.Integer, nullable=False, default=0)
    ket_tagihan_lain = db.Column(db.String(255))
    keterangan = db.Column(db.String(255))

    # Period (lookup keys)
    tahun = db.Column(db.Integer, nullable=False)
    bulan = db.Column(db.Integer, nullable=False)
    # Stored as text: bank exports sometimes carry non-numeric values here
    dana_masyarakat = db.Column(db.String(255), nullable=False, default='')

    # Transaction
    tgl_tx = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    tgl_tx_formatted = db.Column(db.String(255), nullable=False, default='')  # 01/07/2024 7:42
    sts_bayar = db.Column(db.Integer, nullable=False, default=1)   # 1 = paid
    kd_cab = db.Column(db.String(255), nullable=False, default='')  # EB, TLR
    kd_user = db.Column(db.String(255), nullable=False, default='system')
    sts_reversal = db.Column(db.Integer, nullable=False, default=0)
    no_bukti = db.Column(db.String(255), nullable=False, default='')

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    FIELDS = (
        'sekolah', 'id_siswa', 'nama_siswa', 'alamat', 'kelas', 'jurusan',
        'jum_tagihan', 'biaya_adm', 'tagihan_lain', 'ket_tagihan_lain', 'keterangan',
        'tahun', 'bulan', 'dana_masyarakat',
        'tgl_tx', 'tgl_tx_formatted', 'sts_bayar', 'kd_cab', 'kd_user', 'sts_reversal', 'no_bukti',
    )

    def __repr__(self):
        return f'<RekonData {self.sekolah} {self.id_siswa} {self.tahun}-{self.bulan}>'

    @classmethod
    def by_kriteria(cls, sekolah: str, tahun: int, bulan: int):
        """Records matching the three lookup keys (school, year, month)."""
        return cls.query.filter(
            cls.sekolah == sekolah,
            cls.tahun == tahun,
            cls.bulan == bulan,
        )

    @classmethod
    def get_dana_masyarakat(cls, sekolah: str, tahun: int, bulan: int) -> str:
        row = cls.by_kriteria(sekolah, tahun, bulan).order_by(cls.id).first()
        return row.dana_masyarakat if row else '-'

    @property
    def dana_amount(self) -> int:
        return _digits_to_int(self.dana_masyarakat)

    def to_dict(self) -> dict:
        data = {'id': self.id}
        for name in self.FIELDS:
            data[name] = getattr(self, name)
        data['tgl_tx'] = self.tgl_tx.isoformat() if self.tgl_tx else None
        data['created_at'] = self.created_at.isoformat() if self.created_at else None
        data['updated_at'] = self.updated_at.isoformat() if self.updated_at else None
        return data

    def to_summary(self) -> dict:
        """Projection used by search results and paginated listings."""
        return {
            'id': self.id,
            'sekolah': self.sekolah,
            'id_siswa': self.id_siswa,
            'nama_siswa': self.nama_siswa,
            'tahun': int(self.tahun),
            'bulan': int(self.bulan),
            'dana_masyarakat': _as_float(self.dana_masyarakat),
            'jum_tagihan': _as_float(self.jum_tagihan),
            'no_bukti': self.no_bukti,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


def _as_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class School(db.Model):
    __tablename__ = 'schools'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)  # matches rekon_data.sekolah
    display_name = db.Column(db.String(150), nullable=False)
    address = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    email = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<School {self.name}>'

    @classmethod
    def get_active(cls):
        return cls.query.filter_by(is_active=True).order_by(cls.display_name).all()

    @classmethod
    def get_by_name(cls, name: str):
        return cls.query.filter_by(name=name, is_active=True).first()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'display_name': self.display_name,
            'address': self.address,
            'phone': self.phone,
            'email': self.email,
            'is_active': bool(self.is_active),
        }


class ImportJob(db.Model):
    __tablename__ = 'import_jobs'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    kind = db.Column(db.String(20), nullable=False)  # legacy / bank_csv
    file_name = db.Column(db.String(255), nullable=False)
    stored_path = db.Column(db.String(512))
    file_size = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default='queued', index=True)  # queued/processing/completed/failed
    result = db.Column(db.Text)
    error = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    finished_at = db.Column(db.DateTime)

    def __repr__(self):
        return f'<ImportJob {self.id} {self.status}>'

    @property
    def result_data(self):
        if not self.result:
            return None
        try:
            return json.loads(self.result)
        except ValueError:
            return None

    def to_dict(self) -> dict:
        return {
            'job_id': self.id,
            'type': self.kind,
            'file_name': self.file_name,
            'file_size': self.file_size,
            'status': self.status,
            'result': self.result_data,
            'error': self.error,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
        }

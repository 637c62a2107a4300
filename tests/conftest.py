import os, sys, tempfile
from datetime import datetime

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Must be set before config.py is imported
_TMP = tempfile.mkdtemp(prefix="spp_rekon_tests_")
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ["EXPORT_DIR"] = os.path.join(_TMP, "exports")
os.environ["IMPORT_TMP_DIR"] = os.path.join(_TMP, "imports")
os.environ["START_SCHEDULER"] = "0"
os.environ["TRUST_PROXY"] = "0"

import pytest

from app import app as flask_app
from extensions import db
from models import RekonData, School
from utils.analytics import cache_clear


@pytest.fixture
def app():
    flask_app.testing = True
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        cache_clear()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_record(app):
    """Insert a rekon_data row; keyword arguments override the defaults."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        tgl_tx = overrides.pop("tgl_tx", datetime(2024, 7, 15, 8, 30))
        data = dict(
            sekolah="SMAN_1_DENPASAR",
            id_siswa="24908",
            nama_siswa="Putu Ayu",
            alamat="Jl. Kenanga 3",
            kelas="XI.",
            jurusan="MIPA1",
            jum_tagihan=350000,
            biaya_adm=0,
            tagihan_lain=0,
            tahun=2024,
            bulan=7,
            dana_masyarakat="350000",
            tgl_tx=tgl_tx,
            tgl_tx_formatted=tgl_tx.strftime("%d/%m/%Y %H:%M"),
            sts_bayar=1,
            kd_cab="EB",
            kd_user="igate_pac",
            sts_reversal=0,
            no_bukti=f"NB{counter['n']:06d}",
        )
        data.update(overrides)
        record = RekonData(**data)
        db.session.add(record)
        db.session.commit()
        return record

    return _make


@pytest.fixture
def make_school(app):
    def _make(name="SMAN_1_DENPASAR", display_name="SMA Negeri 1 Denpasar", is_active=True):
        school = School(name=name, display_name=display_name, is_active=is_active)
        db.session.add(school)
        db.session.commit()
        return school

    return _make

from datetime import date, datetime

import pytest

from utils.errors import NotFoundError
from utils.reports import academic_periode, class_headers, class_report, report_filters

TODAY = date(2025, 3, 1)


def test_class_headers_are_month_major():
    headers = class_headers(2024, TODAY)
    # 12 months x (2024..2026)
    assert len(headers) == 36
    assert headers[0] == {"year": 2024, "month": 7, "label": "Juli"}
    assert headers[1] == {"year": 2025, "month": 7, "label": "Juli"}
    assert headers[3] == {"year": 2024, "month": 8, "label": "Agustus"}
    assert headers[-1] == {"year": 2026, "month": 6, "label": "Juni"}


def test_class_report_marks_paid_months(app, make_record):
    make_record(id_siswa="200", nama_siswa="Made", tahun=2024, bulan=7, tgl_tx=datetime(2024, 7, 3))
    make_record(id_siswa="100", nama_siswa="Putu", tahun=2024, bulan=8, tgl_tx=datetime(2024, 8, 9))
    make_record(id_siswa="100", nama_siswa="Putu", tahun=2024, bulan=9, sts_bayar=0)
    make_record(id_siswa="300", nama_siswa="Lama", tahun=2023, bulan=7)
    make_record(id_siswa="400", nama_siswa="Lain", kelas="XII.", tahun=2024)

    report = class_report("SMAN_1_DENPASAR", "XI.", 2024, TODAY)
    assert report["total_siswa"] == 2
    assert [s["nis"] for s in report["siswa"]] == ["100", "200"]
    putu, made = report["siswa"]
    assert putu["no"] == 1
    assert len(putu["pembayaran"]) == len(report["headers"])
    # index 3 is Agustus 2024, index 6 is September 2024
    assert putu["pembayaran"][3] == "09/08/2024"
    assert putu["pembayaran"][6] == "-"
    assert made["pembayaran"][0] == "03/07/2024"


def test_class_report_without_students(app):
    with pytest.raises(NotFoundError) as exc:
        class_report("SMAN_1_DENPASAR", "X.", 2024, TODAY)
    assert exc.value.status_code == 404


def test_class_report_endpoint(client, make_record):
    make_record()
    resp = client.get("/api/rekon/laporan-kelas?sekolah=SMAN_1_DENPASAR&kelas=XI.&angkatan=2024")
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["kelas"] == "XI."
    assert data["siswa"][0]["nama"] == "Putu Ayu"

    resp = client.get("/api/rekon/laporan-kelas?sekolah=SMAN_1_DENPASAR&kelas=XI.&angkatan=1990")
    assert resp.status_code == 422

    resp = client.get("/api/rekon/laporan-kelas?sekolah=SMAN_1_DENPASAR&kelas=X.&angkatan=2024")
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "Data siswa untuk kelas tersebut tidak ditemukan"


def test_academic_periode_labels():
    periode = academic_periode(2024, 2025)
    assert len(periode) == 12
    assert periode[0] == {"tahun": 2024, "bulan": 7, "label": "Jul 2024"}
    assert periode[6] == {"tahun": 2025, "bulan": 1, "label": "Jan 2025"}
    assert periode[-1]["label"] == "Jun 2025"


def test_academic_year_report(client, make_record):
    make_record(id_siswa="1", nama_siswa="Wayan", tahun=2024, bulan=7, tgl_tx_formatted="01/07/2024 07:00")
    make_record(id_siswa="1", nama_siswa="Wayan", tahun=2025, bulan=1, tgl_tx_formatted="02/01/2025 08:00")
    make_record(id_siswa="2", nama_siswa="Ayu", tahun=2024, bulan=7, dana_masyarakat="x")
    make_record(id_siswa="2", nama_siswa="Ayu", tahun=2024, bulan=8, sts_bayar=0)
    # outside the academic year
    make_record(id_siswa="1", nama_siswa="Wayan", tahun=2024, bulan=6)
    make_record(id_siswa="1", nama_siswa="Wayan", tahun=2025, bulan=7)

    resp = client.get("/api/rekon/laporan-tahun-ajaran?kelas=XI.&tahun_ajaran=2024/2025")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["jurusan"] == "Semua"
    assert [s["nama"] for s in body["data"]] == ["Ayu", "Wayan"]
    ayu, wayan = body["data"]
    assert wayan["pembayaran"] == {"2024-7": "01/07/2024 07:00", "2025-1": "02/01/2025 08:00"}
    assert wayan["total_bayar"] == 2
    assert wayan["total_tunggak"] == 10
    assert ayu["total_bayar"] == 1

    summary = body["summary"]
    assert summary["total_siswa"] == 2
    assert summary["total_transaksi"] == 4
    assert summary["total_dana"] == 350000 * 3
    assert summary["per_bulan"]["2024-7"] == {"bayar": 2, "tunggak": 0}
    assert summary["per_bulan"]["2024-8"] == {"bayar": 0, "tunggak": 2}


def test_academic_year_report_rejects_bad_year(client):
    resp = client.get("/api/rekon/laporan-tahun-ajaran?kelas=XI.&tahun_ajaran=2024-2025")
    assert resp.status_code == 422


def test_report_filters(app, make_record):
    make_record(tahun=2024, kelas="XI.", jurusan="MIPA1")
    make_record(tahun=2025, kelas="X.", jurusan="IPS1", sekolah="SMAN_1_BADUNG")

    filters = report_filters()
    assert filters["kelas"] == ["X.", "XI."]
    assert filters["jurusan"] == ["IPS1", "MIPA1"]
    assert filters["sekolah"] == ["SMAN_1_BADUNG", "SMAN_1_DENPASAR"]
    assert filters["tahun_ajaran"] == ["2025/2026", "2024/2025", "2023/2024"]

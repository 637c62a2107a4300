import io
from datetime import date, datetime

from openpyxl.workbook import Workbook

from models import ImportJob, RekonData

YEAR = date.today().year

LEGACY_HEADER = (
    "SEKOLAH,ID_SISWA,NAMA_SISWA,ALAMAT,KELAS,JURUSAN,JUM_TAGIHAN,BIAYA_ADM,TAGIHAN_LAIN,"
    "KET_TAGIHAN_LAIN,KETERANGAN,TAHUN,BULAN,DANA_MASYARAKAT,TGL_TX,STS_BAYAR,KD_CAB,KD_USER,"
    "STS_REVERSAL,NO_BUKTI"
)

BANK_HEADER = (
    "Instansi;No. Tagihan;Nama;Tagihan;Biaya Adm.;Alamat;Kelas;Jurusan;Tahun;Bulan;"
    "Dana Masyarakat;Tanggal Transaksi;Status Bayar;Kode Cabang;User;Status Reversal;No. Bukti"
)


def _upload(client, url, content: bytes, filename: str):
    return client.post(
        url,
        data={"file": (io.BytesIO(content), filename)},
        content_type="multipart/form-data",
    )


def test_legacy_csv_import_collects_row_errors(client):
    body = "\n".join([
        LEGACY_HEADER,
        f"SMAN_1_DENPASAR,24908,Putu Ayu,Jl. Kenanga,XI.,MIPA1,350000,0,0,,,{YEAR},7,350000,01/07/{YEAR} 07:42,1,EB,igate_pac,0,1001",
        f"SMAN_1_DENPASAR,,Tanpa NIS,,XI.,MIPA1,350000,0,0,,,{YEAR},7,350000,01/07/{YEAR},1,EB,,0,1002",
        f"SMAN_1_DENPASAR,24909,Made Budi,,XI.,MIPA1,350000,0,0,,,{YEAR},13,350000,01/07/{YEAR},,TLR,,,1003",
        f"SMAN_1_DENPASAR,24910,Kadek Sari,,XI.,MIPA1,350000,0,0,,,{YEAR},8,350000,,,TLR,,,1004",
    ]).encode()

    resp = _upload(client, "/api/rekon/import", body, "rekon.csv")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["success"] is True
    assert data["imported"] == 2
    assert data["total_rows"] == 4
    assert data["error_count"] == 2
    assert data["errors"][0].startswith("Baris 3:")
    assert data["errors"][1].startswith("Baris 4:")
    assert data["message"] == "Berhasil mengimport 2 data"

    first = RekonData.query.filter_by(id_siswa="24908").one()
    assert first.tgl_tx_formatted == f"01/07/{YEAR} 07:42"
    assert first.kd_user == "igate_pac"
    defaulted = RekonData.query.filter_by(id_siswa="24910").one()
    assert defaulted.sts_bayar == 1
    assert defaulted.sts_reversal == 0
    assert defaulted.kd_user == "system"

    history = client.get("/api/rekon/import/history").get_json()
    assert history["data"][0]["type"] == "legacy"
    assert history["data"][0]["status"] == "completed"
    assert history["data"][0]["result"]["imported"] == 2


def test_legacy_xlsx_import(client):
    wb = Workbook()
    ws = wb.active
    ws.append(["Sekolah", "ID Siswa", "Nama Siswa", "Kelas", "Jurusan", "Tahun", "Bulan", "Dana Masyarakat", "No Bukti"])
    ws.append(["SMAN_2_DENPASAR", 31001, "Nyoman Eka", "X.", "IPS1", YEAR, 9, "275000", "A-1"])
    buf = io.BytesIO()
    wb.save(buf)

    resp = _upload(client, "/api/rekon/import", buf.getvalue(), "rekon.xlsx")
    assert resp.status_code == 200
    assert resp.get_json()["imported"] == 1
    record = RekonData.query.one()
    assert record.id_siswa == "31001"
    assert record.sekolah == "SMAN_2_DENPASAR"
    assert record.no_bukti == "A-1"


def test_legacy_import_rejects_unknown_header(client):
    resp = _upload(client, "/api/rekon/import", b"foo,bar\n1,2\n", "rekon.csv")
    assert resp.status_code == 400
    data = resp.get_json()
    assert data["success"] is False
    assert data["error_code"].startswith("IMP-")


def test_import_rejects_unsupported_extension(client):
    resp = _upload(client, "/api/rekon/import", b"hello", "notes.txt")
    assert resp.status_code == 400
    data = resp.get_json()
    assert data["error_code"].startswith("FILE-")
    assert "Format file tidak didukung" in data["message"]


def test_import_requires_file(client):
    resp = client.post("/api/rekon/import", data={}, content_type="multipart/form-data")
    assert resp.status_code == 422
    data = resp.get_json()
    assert data["error_code"].startswith("VAL-")
    assert "file" in data["validation_errors"]


def test_bank_import_skips_duplicates_and_unpaid(client, make_record):
    make_record(no_bukti="B-EXIST")
    body = "\n".join([
        BANK_HEADER,
        f"SMAN_1_DENPASAR;24908;Putu Ayu;350000;2500;Jl. Kenanga;XI.;MIPA1;{YEAR};8;350000;05/08/{YEAR} 09:10;Terbayar;EB;webteller;-;B-100",
        f"SMAN_1_DENPASAR;24908;Putu Ayu;350000;2500;Jl. Kenanga;XI.;MIPA1;{YEAR};8;350000;05/08/{YEAR} 09:10;Terbayar;EB;webteller;-;B-100",
        f"SMAN_1_DENPASAR;24911;Wayan Agus;350000;2500;;XI.;MIPA1;{YEAR};8;350000;06/08/{YEAR};Terbayar;TLR;;-;B-EXIST",
        f"SMAN_1_DENPASAR;24912;Ketut Rina;350000;2500;;XI.;MIPA1;{YEAR};8;350000;06/08/{YEAR};Belum Bayar;TLR;;-;B-101",
        f"SMAN_1_DENPASAR;24913;Gede Dwi;350000;2500;;XI.;MIPA1;{YEAR};8;350000;06/08/{YEAR};Terbayar;TLR;;-;",
    ]).encode()

    resp = _upload(client, "/api/rekon/import-bank", body, "bank.csv")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["imported"] == 1
    assert data["duplicates"] == 2
    assert data["skipped"] == 1
    assert data["error_count"] == 1
    assert data["errors"][0].startswith("Baris 6:")
    assert "CSV Bank" in data["message"]

    stored = RekonData.query.filter_by(no_bukti="B-100").one()
    assert stored.sts_bayar == 1
    assert stored.sts_reversal == 0
    assert stored.biaya_adm == 2500
    assert stored.kd_user == "webteller"
    assert ImportJob.query.filter_by(kind="bank_csv").count() == 1


def test_bank_import_marks_reversal(client):
    body = "\n".join([
        BANK_HEADER,
        f"SMAN_1_DENPASAR;24908;Putu Ayu;350000;0;;XI.;MIPA1;{YEAR};9;350000;05/09/{YEAR};TERBAYAR;EB;;R;B-200",
    ]).encode()
    resp = _upload(client, "/api/rekon/import-bank", body, "bank.csv")
    assert resp.get_json()["imported"] == 1
    assert RekonData.query.filter_by(no_bukti="B-200").one().sts_reversal == 1


def test_legacy_csv_import_reads_iso_timestamps(client):
    body = "\n".join([
        LEGACY_HEADER,
        f"SMAN_1_DENPASAR,24908,Putu Ayu,,XI.,MIPA1,350000,0,0,,,{YEAR},7,350000,{YEAR}-07-01T07:42:00,1,EB,,0,ISO-1",
        f"SMAN_1_DENPASAR,24909,Made Budi,,XI.,MIPA1,350000,0,0,,,{YEAR},7,350000,{YEAR}-07-02 08:15,1,EB,,0,ISO-2",
    ]).encode()

    resp = _upload(client, "/api/rekon/import", body, "rekon.csv")
    assert resp.get_json()["imported"] == 2
    first = RekonData.query.filter_by(no_bukti="ISO-1").one()
    assert first.tgl_tx == datetime(YEAR, 7, 1, 7, 42)
    second = RekonData.query.filter_by(no_bukti="ISO-2").one()
    assert (second.tgl_tx.month, second.tgl_tx.day) == (7, 2)


def test_legacy_csv_import_decodes_cp1252(client):
    body = "\n".join([
        LEGACY_HEADER,
        f"SMAN_1_DENPASAR,24908,José Ayu,,XI.,MIPA1,350000,0,0,,,{YEAR},7,350000,01/07/{YEAR},1,EB,,0,CP-1",
    ]).encode("cp1252")

    resp = _upload(client, "/api/rekon/import", body, "rekon.csv")
    assert resp.status_code == 200
    assert resp.get_json()["imported"] == 1
    assert RekonData.query.one().nama_siswa == "José Ayu"


def test_legacy_xls_import(client):
    import xlwt

    book = xlwt.Workbook()
    sheet = book.add_sheet("Rekon")
    header = ["Sekolah", "ID Siswa", "Nama Siswa", "Kelas", "Tahun", "Bulan", "Dana Masyarakat", "TGL TX", "No Bukti"]
    row = ["SMAN_1_BADUNG", 41001, "Komang Dewi", "XII.", YEAR, 3, "300000", None, "X-1"]
    date_style = xlwt.easyxf(num_format_str="DD/MM/YYYY HH:MM")
    for col, value in enumerate(header):
        sheet.write(0, col, value)
    for col, value in enumerate(row):
        if value is not None:
            sheet.write(1, col, value)
    sheet.write(1, 7, datetime(YEAR, 3, 4, 10, 30), date_style)
    buf = io.BytesIO()
    book.save(buf)

    resp = _upload(client, "/api/rekon/import", buf.getvalue(), "rekon.xls")
    assert resp.status_code == 200
    assert resp.get_json()["imported"] == 1
    record = RekonData.query.one()
    assert record.id_siswa == "41001"
    assert record.tahun == YEAR
    assert record.tgl_tx == datetime(YEAR, 3, 4, 10, 30)
    assert record.tgl_tx_formatted == f"04/03/{YEAR} 10:30:00"


def test_import_rejects_oversized_file(app, client, monkeypatch):
    monkeypatch.setitem(app.config, "MAX_IMPORT_BYTES", 64)
    body = (LEGACY_HEADER + "\n").encode()

    resp = _upload(client, "/api/rekon/import", body, "rekon.csv")
    assert resp.status_code == 400
    data = resp.get_json()
    assert data["error_code"].startswith("FILE-")
    assert "Ukuran file terlalu besar" in data["message"]
    assert RekonData.query.count() == 0


def test_bank_import_rejects_years_outside_window(client):
    old = YEAR - 6
    body = "\n".join([
        BANK_HEADER,
        f"SMAN_1_DENPASAR;24908;Putu Ayu;350000;0;;XI.;MIPA1;{old};8;350000;05/08/{YEAR};Terbayar;EB;;-;B-300",
        f"SMAN_1_DENPASAR;24909;Made Budi;350000;0;;XI.;MIPA1;{YEAR - 5};8;350000;05/08/{YEAR};Terbayar;EB;;-;B-301",
    ]).encode()

    resp = _upload(client, "/api/rekon/import-bank", body, "bank.csv")
    data = resp.get_json()
    assert data["imported"] == 1
    assert data["error_count"] == 1
    assert data["errors"][0].startswith("Baris 2: Tahun tidak valid")
    assert RekonData.query.one().no_bukti == "B-301"

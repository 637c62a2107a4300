from datetime import date

from utils.analytics import by_school, monthly, summary

THIS_YEAR = date.today().year


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["status"] == "healthy"
    assert data["version"]
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_unknown_api_route_is_json_404(client):
    resp = client.get("/api/does-not-exist")
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "API endpoint not found"


def test_schools_lists_active_only(client, make_school):
    make_school("SMAN_2_DENPASAR", "SMA Negeri 2 Denpasar")
    make_school("SMAN_1_BADUNG", "SMA Negeri 1 Badung")
    make_school("OLD_SCHOOL", "Sekolah Lama", is_active=False)

    data = client.get("/api/schools").get_json()["data"]
    assert [s["name"] for s in data] == ["SMAN_1_BADUNG", "SMAN_2_DENPASAR"]


def test_summary_counts_numeric_dana_only(app, make_record, make_school):
    make_school()
    make_record(id_siswa="1", dana_masyarakat="350000")
    make_record(id_siswa="1", dana_masyarakat="350000", bulan=8)
    make_record(id_siswa="2", dana_masyarakat="Rp 100")
    make_record(id_siswa="3", dana_masyarakat="")

    assert summary() == {
        "total_transactions": 4,
        "total_dana": 700000,
        "total_siswa": 3,
        "total_schools": 1,
    }


def test_monthly_limits_to_recent_years(app, make_record):
    make_record(tahun=THIS_YEAR, bulan=1, dana_masyarakat="100")
    make_record(tahun=THIS_YEAR, bulan=1, dana_masyarakat="200")
    make_record(tahun=THIS_YEAR - 1, bulan=12, dana_masyarakat="50")
    make_record(tahun=THIS_YEAR - 5, bulan=3, dana_masyarakat="999")

    assert monthly() == [
        {"tahun": THIS_YEAR - 1, "bulan": 12, "total": 1, "dana": 50},
        {"tahun": THIS_YEAR, "bulan": 1, "total": 2, "dana": 300},
    ]


def test_by_school_orders_by_volume(app, make_record):
    make_record(sekolah="SMAN_1_BADUNG", id_siswa="1")
    make_record(sekolah="SMAN_1_GIANYAR", id_siswa="1")
    make_record(sekolah="SMAN_1_GIANYAR", id_siswa="2", dana_masyarakat="100")

    assert by_school() == [
        {"sekolah": "SMAN_1_GIANYAR", "total": 2, "dana": 350100, "siswa": 2},
        {"sekolah": "SMAN_1_BADUNG", "total": 1, "dana": 350000, "siswa": 1},
    ]


def test_dashboard_analytics_is_cached(client, make_record):
    make_record()
    first = client.get("/api/dashboard/analytics").get_json()["data"]
    assert first["summary"]["total_transactions"] == 1
    assert "cached_at" in first

    make_record(id_siswa="999")
    second = client.get("/api/dashboard/analytics").get_json()["data"]
    assert second["summary"]["total_transactions"] == 1
    assert second["cached_at"] == first["cached_at"]


def test_school_detail_by_name(client, make_school):
    make_school("SMAN_2_DENPASAR", "SMA Negeri 2 Denpasar")
    make_school("OLD_SCHOOL", "Sekolah Lama", is_active=False)

    resp = client.get("/api/schools/SMAN_2_DENPASAR")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["display_name"] == "SMA Negeri 2 Denpasar"

    for name in ("OLD_SCHOOL", "NOPE"):
        resp = client.get(f"/api/schools/{name}")
        assert resp.status_code == 404
        assert resp.get_json()["message"] == "Sekolah tidak ditemukan"

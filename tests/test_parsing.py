from datetime import date, datetime

import pytest

from utils.errors import RekonImportError
from utils.parsing import (
    clean_bank_header,
    clean_header,
    month_name,
    parse_date,
    parse_int,
    parse_month,
    parse_number,
    parse_year,
    short_month_name,
    text,
)

TODAY = date(2025, 10, 1)


def test_clean_header_spp_template():
    assert clean_header("Nama Siswa") == "NAMA_SISWA"
    assert clean_header(" tgl-tx ") == "TGL_TX"
    assert clean_header("Ket.Tagihan.Lain") == "KET_TAGIHAN_LAIN"


def test_clean_bank_header_collapses_punctuation():
    assert clean_bank_header("No. Tagihan") == "NO_TAGIHAN"
    assert clean_bank_header("Biaya Adm.") == "BIAYA_ADM"
    assert clean_bank_header("  Tanggal   Transaksi ") == "TANGGAL_TRANSAKSI"


def test_parse_number():
    assert parse_number(350000) == 350000
    assert parse_number("350000") == 350000
    assert parse_number("Rp 350.000") == 350000
    assert parse_number("") == 0
    assert parse_number(None) == 0
    assert parse_number(1500.0) == 1500


def test_text_drops_integral_float_suffix():
    assert text(24908.0) == "24908"
    assert text(None) == ""
    assert text("  SMAN_1 ") == "SMAN_1"


def test_parse_year_and_month_bounds():
    assert parse_year("2024") == 2024
    assert parse_month(12.0) == 12
    with pytest.raises(RekonImportError) as exc:
        parse_year("1999", 5)
    assert exc.value.column == "tahun"
    assert exc.value.row_number == 5
    with pytest.raises(RekonImportError) as exc:
        parse_month("13", 2)
    assert exc.value.column == "bulan"


@pytest.mark.parametrize("raw, expected", [
    ("01/07/2024 07:42:10", datetime(2024, 7, 1, 7, 42, 10)),
    ("01/07/2024 7:42", datetime(2024, 7, 1, 7, 42)),
    ("01/07/2024", datetime(2024, 7, 1)),
    ("2024-07-01", datetime(2024, 7, 1)),
    ("2024-07-01 07:42", datetime(2024, 7, 1, 7, 42)),
    ("2024-07-01T07:42:00", datetime(2024, 7, 1, 7, 42)),
    ("2024-07-01T07:42:00.250", datetime(2024, 7, 1, 7, 42, 0, 250000)),
    ("01.07.2024 07:42", datetime(2024, 7, 1, 7, 42)),
    ("01/07/24", datetime(2024, 7, 1)),
    ("01-Jul-2024", datetime(2024, 7, 1)),
])
def test_parse_date_known_formats(raw, expected):
    assert parse_date(raw, 2, TODAY) == expected


def test_parse_date_accepts_datetime_cells():
    value = datetime(2024, 3, 5, 10, 0)
    assert parse_date(value, 2, TODAY) == value
    assert parse_date(date(2024, 3, 5), 2, TODAY) == datetime(2024, 3, 5)


def test_parse_date_blank_falls_back_to_now():
    before = datetime.now()
    assert parse_date("", 2, TODAY) >= before
    assert parse_date("-", 2, TODAY) >= before


def test_parse_date_rejects_out_of_range_year():
    with pytest.raises(RekonImportError) as exc:
        parse_date("01/07/2010", 4, TODAY)
    assert exc.value.column == "tgl_tx"
    assert "2015" in exc.value.user_message


def test_parse_date_rejects_garbage():
    with pytest.raises(RekonImportError):
        parse_date("bukan tanggal", 3, TODAY)


def test_month_names():
    assert month_name(7) == "Juli"
    assert short_month_name(8) == "Ags"
    assert month_name("x") == "x"


def test_parse_int_falls_back_to_default():
    assert parse_int("0", 1) == 0
    assert parse_int(1.0, 0) == 1
    assert parse_int("", 1) == 1
    assert parse_int("ya", 1) == 1

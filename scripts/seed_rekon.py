import argparse
import random
import string
from datetime import datetime, timedelta
from typing import Optional
import os
import sys

# Ensure project root is importable when running from scripts/
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app import app
from extensions import db
from models import RekonData


SCHOOLS = ["SMAN_1_DENPASAR", "SMAN_2_DENPASAR", "SMAK_1_DENPASAR"]
KELAS = ["X.", "XI.", "XII."]
JURUSAN = ["MIPA1", "MIPA2", "MIPA3", "IPS1", "IPS2", "Bahasa"]
BRANCHES = ["EB", "TLR", "DP"]
CHANNELS = ["igate_pac", "webteller", "mobile"]

FIRST_NAMES = [
    "Putu", "Made", "Kadek", "Nyoman", "Ketut", "Wayan", "Gede", "Komang",
    "Ayu", "Dewi", "Agus", "Budi", "Sari", "Rina", "Eka", "Dwi",
]

LAST_NAMES = [
    "Suartana", "Wirawan", "Pratama", "Saputra", "Lestari", "Antara", "Mahendra",
    "Wijaya", "Astuti", "Permana", "Yudistira", "Kusuma", "Anggreni", "Darmawan",
]


def random_name() -> str:
    return f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}"


def random_receipt() -> str:
    return "".join(random.choice(string.digits) for _ in range(10))


def random_tx_date(tahun: int, bulan: int) -> datetime:
    start = datetime(tahun, bulan, 1, 7, 0)
    return start + timedelta(days=random.randint(0, 27), minutes=random.randint(0, 600))


def build_record(school: Optional[str], year: Optional[int], used_ids: set) -> RekonData:
    nis = str(random.randint(10000, 99999))
    while nis in used_ids:
        nis = str(random.randint(10000, 99999))
    used_ids.add(nis)

    tahun = year or random.choice([datetime.now().year - 1, datetime.now().year])
    bulan = random.randint(1, 12)
    tagihan = random.randint(300, 500) * 1000
    tgl_tx = random_tx_date(tahun, bulan)
    return RekonData(
        sekolah=school or random.choice(SCHOOLS),
        id_siswa=nis,
        nama_siswa=random_name(),
        alamat=f"Jl. {random.choice(LAST_NAMES)} No. {random.randint(1, 120)}, Bali",
        kelas=random.choice(KELAS),
        jurusan=random.choice(JURUSAN),
        jum_tagihan=tagihan,
        biaya_adm=random.choice([0, 2500, 5000]),
        tagihan_lain=random.choice([0, 0, 0, 25000, 50000]),
        tahun=tahun,
        bulan=bulan,
        dana_masyarakat=str(tagihan),
        tgl_tx=tgl_tx,
        tgl_tx_formatted=tgl_tx.strftime("%d/%m/%Y %H:%M"),
        sts_bayar=1,
        kd_cab=random.choice(BRANCHES),
        kd_user=random.choice(CHANNELS),
        sts_reversal=0,
        no_bukti=random_receipt(),
    )


def seed_rekon(count: int, school: Optional[str] = None, year: Optional[int] = None, batch: int = 500) -> int:
    used_ids = {nis for (nis,) in db.session.query(RekonData.id_siswa).distinct()}
    total = 0
    while total < count:
        size = min(batch, count - total)
        db.session.add_all([build_record(school, year, used_ids) for _ in range(size)])
        db.session.commit()
        total += size
    return total


def main():
    parser = argparse.ArgumentParser(description="Seed mock SPP payment records into rekon_data.")
    parser.add_argument("--count", type=int, default=100, help="How many records to add (default: 100)")
    parser.add_argument("--school", type=str, default=None, help="School code, e.g. SMAN_1_DENPASAR (default: random)")
    parser.add_argument("--year", type=int, default=None, help="Billing year (default: this or last year)")
    args = parser.parse_args()

    with app.app_context():
        total = seed_rekon(args.count, args.school, args.year)
    print(f"Inserted {total} mock rekon records.")


if __name__ == "__main__":
    main()

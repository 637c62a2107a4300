import os
import sys

# Ensure project root is importable when running from scripts/
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app import app
from extensions import db
from models import School


SCHOOLS = [
    {
        "name": "SMAN_1_DENPASAR",
        "display_name": "SMA Negeri 1 Denpasar",
        "address": "Jl. PB. Sudirman No. 1 Denpasar, Bali",
        "phone": "(0361) 223362",
        "email": "sman1denpasar@gmail.com",
    },
    {
        "name": "SMAN_2_DENPASAR",
        "display_name": "SMA Negeri 2 Denpasar",
        "address": "Jl. Tukad Yeh Aya No. 15 Denpasar, Bali",
        "phone": "(0361) 235765",
        "email": "sman2denpasar@gmail.com",
    },
    {
        "name": "SMAK_1_DENPASAR",
        "display_name": "SMA Katolik 1 Denpasar",
        "address": "Jl. Merdeka No. 1 Denpasar, Bali",
        "phone": "(0361) 224876",
        "email": "smak1denpasar@gmail.com",
    },
    {
        "name": "SMAN_1_BADUNG",
        "display_name": "SMA Negeri 1 Badung",
        "address": "Jl. Raya Sempidi, Badung, Bali",
        "phone": "(0361) 901234",
        "email": "sman1badung@gmail.com",
    },
    {
        "name": "SMAN_1_GIANYAR",
        "display_name": "SMA Negeri 1 Gianyar",
        "address": "Jl. Raya Gianyar, Bali",
        "phone": "(0361) 943456",
        "email": "sman1gianyar@gmail.com",
    },
]


def seed_schools() -> int:
    """Replace the schools table with the sample Bali schools."""
    School.query.delete()
    for data in SCHOOLS:
        db.session.add(School(is_active=True, **data))
    db.session.commit()
    return len(SCHOOLS)


def main():
    with app.app_context():
        total = seed_schools()
    print(f"Sample schools created. Total schools: {total}")


if __name__ == "__main__":
    main()

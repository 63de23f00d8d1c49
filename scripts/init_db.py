"""
Farm2Home - Database Initialization
======================================
Creates the marketplace tables and the local storage buckets.
Existing tables are left untouched, so it can be re-run at any time.

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --drop   # Drop and recreate all tables (data is lost)
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import inspect, func, select

from config import settings
from config.database import Base, engine
from modules.platform.models import Identity  # noqa
from modules.user.models import Profile
from modules.catalog.models import Produce
from modules.cart.models import CartItem
from modules.order.models import Order

MARKETPLACE_TABLES = [Profile, Produce, CartItem, Order]


def init_db(drop_first=False):
    if drop_first:
        print("Dropping marketplace tables...")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    os.makedirs(os.path.join(settings.STORAGE_DIR, settings.PRODUCE_IMAGE_BUCKET), exist_ok=True)

    present = set(inspect(engine).get_table_names())
    with engine.connect() as conn:
        for model in MARKETPLACE_TABLES:
            name = model.__tablename__
            if name not in present:
                print(f"  ! {name:<10} missing")
                continue
            rows = conn.execute(select(func.count()).select_from(model.__table__)).scalar()
            print(f"  - {name:<10} {rows} rows")
    print(f"\nStorage: {settings.STORAGE_DIR}")
    print("Database ready.")


if __name__ == "__main__":
    drop = "--drop" in sys.argv
    if drop:
        confirm = input("This will DROP all tables. Type 'yes': ")
        if confirm.strip().lower() != "yes":
            print("Aborted.")
            sys.exit(0)
    init_db(drop_first=drop)

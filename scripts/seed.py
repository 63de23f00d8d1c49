"""
Farm2Home - Demo Data Seeder
===============================
Seeds demo accounts and produce listings for local development.

Usage:
    python scripts/seed.py          # Seed (skips rows that already exist)
    python scripts/seed.py --reset  # Drop all data and reseed

Seeded:
  1. Farmer accounts (identity + profile)
  2. Consumer accounts (identity + profile)
  3. Produce listings for each farmer

Every demo account uses the password "farm2home".
"""

import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.database import SessionLocal, Base, engine
from common.security import hash_password
from modules.platform.models import Identity
from modules.user.models import Profile, Role
from modules.catalog.models import Produce
from modules.cart.models import CartItem  # noqa: F401
from modules.order.models import Order  # noqa: F401

DEMO_PASSWORD = "farm2home"

FARMERS = [
    {"email": "asha@farm2home.test", "full_name": "Asha Patil", "location": "Pune, Maharashtra",
     "bio": "Third-generation vegetable grower on the banks of the Mula."},
    {"email": "ravi@farm2home.test", "full_name": "Ravi Menon", "location": "Kochi, Kerala",
     "bio": "Spices and tropical fruit, grown without pesticides."},
]

CONSUMERS = [
    {"email": "neha@farm2home.test", "full_name": "Neha Shah", "location": "Pune, Maharashtra"},
    {"email": "arjun@farm2home.test", "full_name": "Arjun Rao", "location": "Bengaluru, Karnataka"},
]

PRODUCE = {
    "asha@farm2home.test": [
        ("Heirloom Tomatoes", "Vine-ripened heirloom tomatoes picked the morning of delivery.", "3.50"),
        ("Baby Spinach", "Tender baby spinach leaves, washed and ready for salads.", "2.25"),
        ("Red Onions", "Sweet red onions, cured for two weeks for a longer shelf life.", "1.80"),
    ],
    "ravi@farm2home.test": [
        ("Black Pepper", "Sun-dried Malabar black pepper, whole peppercorns in a 250g pouch.", "6.00"),
        ("Nendran Bananas", "Kerala plantain bananas, ideal for chips or steaming.", "4.10"),
        ("Fresh Turmeric", "Fresh turmeric root with a deep orange colour and earthy aroma.", "3.00"),
    ],
}


def _ensure_account(db, data: dict, role: str) -> Profile:
    identity = db.query(Identity).filter(Identity.email == data["email"]).first()
    if identity:
        print(f"  = exists: {data['email']}")
        return db.query(Profile).filter(Profile.id == identity.id).first()

    identity = Identity(
        email=data["email"],
        password_hash=hash_password(DEMO_PASSWORD),
        provider="email",
        user_metadata={"full_name": data["full_name"], "role": role},
    )
    db.add(identity)
    db.flush()
    profile = Profile(
        id=identity.id,
        full_name=data["full_name"],
        role=role,
        location=data["location"],
        bio=data.get("bio"),
    )
    db.add(profile)
    db.flush()
    print(f"  + {role}: {data['email']} ({data['full_name']})")
    return profile


def seed():
    db = SessionLocal()
    try:
        print("=" * 50)
        print("  Farm2Home - Demo Seeder")
        print("=" * 50)

        Base.metadata.create_all(bind=engine)

        # ==========================================
        # 1. Farmers
        # ==========================================
        print("\n[1/3] Farmers")
        farmers = {data["email"]: _ensure_account(db, data, Role.FARMER.value) for data in FARMERS}

        # ==========================================
        # 2. Consumers
        # ==========================================
        print("\n[2/3] Consumers")
        for data in CONSUMERS:
            _ensure_account(db, data, Role.CONSUMER.value)

        # ==========================================
        # 3. Produce
        # ==========================================
        print("\n[3/3] Produce")
        for email, items in PRODUCE.items():
            farmer = farmers[email]
            for name, description, price in items:
                existing = db.query(Produce).filter(
                    Produce.farmer_id == farmer.id, Produce.name == name,
                ).first()
                if existing:
                    print(f"  = exists: {name}")
                    continue
                db.add(Produce(
                    farmer_id=farmer.id,
                    name=name,
                    description=description,
                    price=Decimal(price),
                    location=farmer.location,
                ))
                print(f"  + {name} ({farmer.full_name})")

        db.commit()
        print(f"\nSeed complete. Demo password: {DEMO_PASSWORD}")

    except Exception as e:
        db.rollback()
        print(f"\nSeed failed: {e}")
        raise
    finally:
        db.close()


def reset_and_seed():
    """Drop all tables and recreate + seed."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    print("All tables recreated")
    seed()


if __name__ == "__main__":
    if "--reset" in sys.argv:
        confirm = input("This will DELETE ALL DATA. Type 'yes' to confirm: ")
        if confirm.strip().lower() == "yes":
            reset_and_seed()
        else:
            print("Aborted.")
    else:
        seed()

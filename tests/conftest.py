"""
Shared fixtures: an isolated SQLite database and storage root, account and
listing factories, and an app TestClient.
"""

import os
import shutil
import tempfile

# Configuration must be in place before any project module is imported
_TMP = tempfile.mkdtemp(prefix="farm2home-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["STORAGE_DIR"] = os.path.join(_TMP, "storage")
os.environ["BASE_URL"] = "http://testserver"
os.environ["GOOGLE_CLIENT_ID"] = "test-google-client"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-google-secret"
os.environ["CSRF_ENABLED"] = "true"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from config import settings
from config.database import Base, SessionLocal, engine
from common.security import hash_password, create_token
from main import app
from modules.platform.models import Identity
from modules.user.models import Profile
from modules.catalog.models import Produce
from modules.order.models import Order

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    shutil.rmtree(settings.STORAGE_DIR, ignore_errors=True)
    os.makedirs(settings.STORAGE_DIR, exist_ok=True)
    yield


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


# ==========================================
# Factories
# ==========================================

def make_account(email: str, role: str = "consumer", location: str = "Pune, MH", full_name: str = "Test User") -> dict:
    """Create an identity with its profile; returns the profile as a dict plus a session token."""
    db = SessionLocal()
    try:
        identity = Identity(email=email, password_hash=hash_password(PASSWORD), provider="email", user_metadata={})
        db.add(identity)
        db.flush()
        db.add(Profile(id=identity.id, full_name=full_name, role=role, location=location, bio=""))
        db.commit()
        token = create_token({
            "sub": identity.id, "email": email, "provider": "email", "user_metadata": {},
        })
        return {"id": identity.id, "email": email, "role": role, "location": location, "token": token}
    finally:
        db.close()


def make_produce(farmer_id: str, name: str, price: str = "2.50", location: str = "Pune, MH",
                 description: str = "Freshly harvested this morning") -> int:
    db = SessionLocal()
    try:
        row = Produce(farmer_id=farmer_id, name=name, description=description,
                      price=Decimal(price), location=location)
        db.add(row)
        db.commit()
        return row.id
    finally:
        db.close()


def count_rows(model, **filters) -> int:
    db = SessionLocal()
    try:
        return db.query(model).filter_by(**filters).count()
    finally:
        db.close()


def all_orders(**filters):
    db = SessionLocal()
    try:
        return db.query(Order).filter_by(**filters).order_by(Order.id).all()
    finally:
        db.close()


@pytest.fixture
def farmer():
    return make_account("farmer@example.com", role="farmer", full_name="Fiona Farmer")


@pytest.fixture
def consumer():
    return make_account("consumer@example.com", role="consumer", full_name="Carl Consumer")

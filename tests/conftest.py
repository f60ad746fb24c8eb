import os
from datetime import datetime, timedelta

# Settings are read at import time, so they must be in place first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["QR_SIGNING_SECRET"] = "test-qr-secret"
os.environ.pop("ADMIN_PASSWORD", None)
os.environ.pop("ENVIRONMENT", None)

import pytest

from campusvibe import models
from campusvibe.auth_utils import create_access_token, hash_password
from campusvibe.database import Base, SessionLocal, engine
from campusvibe.qr_signing import QRSigner

QR_SECRET = "test-qr-secret"


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def signer():
    return QRSigner(QR_SECRET)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role=models.Role.student, name=None, email=None, password="secret123", **kwargs):
        counter["n"] += 1
        n = counter["n"]
        user = models.User(
            email=email or f"user{n}@campus.edu",
            name=name or f"User {n}",
            password_hash=hash_password(password),
            role=role,
            roll_number=kwargs.pop("roll_number", f"R{n:03d}"),
            mobile=kwargs.pop("mobile", f"90000000{n:02d}"),
            **kwargs,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def student(make_user):
    return make_user(models.Role.student, name="Asha Student")


@pytest.fixture
def organizer(make_user):
    return make_user(models.Role.committee, name="Cultural Committee")


@pytest.fixture
def admin(make_user):
    return make_user(models.Role.admin, name="Administrator")


@pytest.fixture
def make_event(db, organizer):
    def _make(owner=None, **fields):
        data = {
            "title": "Spring Fest",
            "description": "Annual cultural night",
            "category": "cultural",
            "start_time": datetime(2030, 3, 14, 18, 0),
            "end_time": datetime(2030, 3, 14, 22, 0),
            "location": "Main Auditorium",
            "capacity": 100,
            "price_cents": 0,
            "allowed_tiers": ["single"],
            "upi_id": "fest@upi",
            "payment_notes": "Mention your roll number",
        }
        data.update(fields)
        event = models.Event(created_by=(owner or organizer).id, tickets_issued=0, **data)
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    return _make


def auth_headers(user):
    token = create_access_token({"sub": str(user.id), "role": models.Role(user.role).value},
                                expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient
    from campusvibe.main import app

    with TestClient(app) as test_client:
        yield test_client

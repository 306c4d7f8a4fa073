from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from main import app, get_db, get_optional_db


@pytest.fixture
def db():
    return mongomock.MongoClient(tz_aware=True)["agendamentos_test"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_optional_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_business(db):
    """Insert a profile (and optionally its settings) the way onboarding stores them."""
    created = datetime(2025, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make(user_id="owner-1", business_name="Salão Premium", slug=None, settings=None, whatsapp="5511999999999"):
        counter["n"] += 1
        profile = {
            "user_id": user_id,
            "business_name": business_name,
            "whatsapp": whatsapp,
            "address": "Rua das Flores, 123",
            "created_at": created + timedelta(minutes=counter["n"]),
        }
        if slug:
            profile["slug"] = slug
        profile["_id"] = db["profile"].insert_one(profile).inserted_id
        if settings is not None:
            db["settings"].insert_one({"user_id": user_id, **settings})
        return profile

    return _make


@pytest.fixture
def morning_business(make_business):
    # 09:00-12:00 every hour, Monday to Friday
    return make_business(
        slug="salao-premium",
        settings={
            "working_hours_start": "09:00",
            "working_hours_end": "12:00",
            "appointment_interval": 60,
            "working_days": ["monday", "tuesday", "wednesday", "thursday", "friday"],
        },
    )


@pytest.fixture
def service(db, morning_business):
    doc = {"user_id": morning_business["user_id"], "name": "Corte Feminino", "duration": 45, "price": 80, "status": "active"}
    doc["_id"] = db["service"].insert_one(doc).inserted_id
    return doc


@pytest.fixture
def add_appointment(db):
    def _add(user_id, date, time, status="confirmado", client_name="Maria"):
        return db["appointment"].insert_one(
            {
                "user_id": user_id,
                "client_name": client_name,
                "client_whatsapp": "11999990000",
                "date": date,
                "time": time,
                "status": status,
            }
        ).inserted_id

    return _add

import os
import tempfile
import uuid

import pytest


# Ensure sensible defaults for tests before app import
os.environ.setdefault("ENV", "dev")
os.environ.setdefault(
    "DB_URL",
    "sqlite:///" + os.path.join(tempfile.gettempdir(), f"carrental_test_{uuid.uuid4().hex}.db"),
)
os.environ.setdefault("AUTO_CREATE_SCHEMA", "true")
os.environ["OTP_MODE"] = "dev"
os.environ["OTP_SMS_PROVIDER"] = "log"
os.environ["NOTIFY_MODE"] = "log"
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ["RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["RATE_LIMIT_AUTH_PATH_PER_MINUTE"] = "100000"
os.environ["ADMIN_TOKEN"] = "test-admin-token"

ADMIN_HEADERS = {"X-Admin-Token": "test-admin-token"}


@pytest.fixture(scope="session", autouse=True)
def _schema():
    from carrental.database import engine
    from carrental.models import Base

    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(scope="session")
def app():
    from carrental.main import app as fastapi_app

    return fastapi_app


@pytest.fixture()
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)


@pytest.fixture()
def db():
    from carrental.database import SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_vehicle(db):
    from decimal import Decimal

    from carrental.models import Vehicle

    def _make(price_per_day: str = "50.00", make: str = "Toyota", model: str = "Camry", year: int = 2024) -> int:
        v = Vehicle(make=make, model=model, year=year, price_per_day=Decimal(price_per_day))
        db.add(v)
        db.commit()
        return v.id

    return _make


@pytest.fixture()
def make_user(db):
    from carrental.models import User

    from .utils import unique_phone

    def _make(name: str = "Tester") -> int:
        u = User(phone=unique_phone(), country_code="+1", name=name)
        db.add(u)
        db.commit()
        return u.id

    return _make

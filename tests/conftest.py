"""
Pytest Fixtures für den Tischplan.

Jeder Test bekommt eine frische In-Memory-SQLite-Datenbank und eine
feste Uhr. Zeitzone ist UTC, damit Ortszeit und gespeicherte Zeit gleich sind.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENABLE_BACKGROUND_JOBS"] = "false"
os.environ["TIMEZONE"] = "UTC"

from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tischplan.main import app
from tischplan.database import Base, get_db
from tischplan.models import Booking, BookingStatus, Floor, Table, TableSize, TableStatus
from tischplan.models.booking import ConfirmationStatus
from tischplan.utils.timeutils import get_now
from tests.helpers import NOW


# ============ DATENBANK SETUP ============

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Clock:
    """Verstellbare Uhr für Tests, die Zeit vergehen lassen."""

    def __init__(self, now: datetime):
        self.now = now

    def advance(self, minutes: int):
        self.now = self.now + timedelta(minutes=minutes)


# ============ BASIS FIXTURES ============

@pytest.fixture(scope="function")
def db():
    """Frische Datenbank für jeden Test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest.fixture(scope="function")
def client(db, clock):
    """
    FastAPI TestClient mit Test-DB und fester Uhr.
    """
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: clock.now

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# ============ STAMMDATEN FIXTURES ============

@pytest.fixture
def floor(db):
    """Erdgeschoss"""
    f = Floor(id=uuid4(), floor_number=0, name="Erdgeschoss", created_at=NOW)
    db.add(f)
    db.commit()
    db.refresh(f)
    return f


@pytest.fixture
def make_table(db, floor):
    """Factory für Tische auf der Test-Etage."""
    def _make(number="1", size=TableSize.MEDIUM, seats=4, status=TableStatus.AVAILABLE):
        t = Table(
            id=uuid4(),
            number=number,
            size=size,
            seats=seats,
            status=status,
            floor_id=floor.id,
            created_at=NOW
        )
        db.add(t)
        db.commit()
        db.refresh(t)
        return t
    return _make


@pytest.fixture
def table(make_table):
    """Tisch 1, MEDIUM, 4 Plätze"""
    return make_table()


@pytest.fixture
def make_booking(db):
    """Factory für Buchungen direkt in der DB (ohne Service-Logik)."""
    def _make(table, start, duration=60, status=BookingStatus.BOOKED, people_count=2,
              customer_name="Familie Müller", delay_minutes=0,
              confirmation_status=ConfirmationStatus.PENDING):
        b = Booking(
            id=uuid4(),
            table_id=table.id,
            customer_name=customer_name,
            mobile="0170 1234567",
            people_count=people_count,
            booking_time=start,
            duration_minutes=duration,
            status=status,
            confirmation_status=confirmation_status,
            delay_minutes=delay_minutes,
            created_at=NOW
        )
        db.add(b)
        db.commit()
        db.refresh(b)
        return b
    return _make


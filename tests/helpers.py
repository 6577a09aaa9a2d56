"""Hilfsfunktionen für Tests (keine Fixtures)."""
from datetime import datetime

# Feste "Jetzt"-Zeit: Freitag 14:00 UTC
NOW = datetime(2030, 6, 14, 14, 0)


def at(hour: int, minute: int = 0) -> datetime:
    """Zeitpunkt am Testtag"""
    return NOW.replace(hour=hour, minute=minute)


def iso(dt: datetime) -> str:
    return dt.isoformat()


def booking_payload(table_id, start: datetime, duration: int = 60, people_count: int = 2, **extra) -> dict:
    payload = {
        "table_id": str(table_id),
        "customer_name": "Familie Schmidt",
        "mobile": "0171 7654321",
        "people_count": people_count,
        "booking_time": iso(start),
        "duration_minutes": duration,
    }
    payload.update(extra)
    return payload

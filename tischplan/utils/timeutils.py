"""
Zeit-Helfer. Intern wird überall mit naiven UTC-Zeitpunkten gerechnet,
Datum + Uhrzeit von Vorbestellungen sind Ortszeit des Restaurants.
"""
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from tischplan.config import settings


def get_local_tz() -> ZoneInfo:
    """Zeitzone des Restaurants (mit Sommer-/Winterzeit)."""
    return ZoneInfo(settings.timezone)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    """Aware-Zeitpunkte nach UTC umrechnen, naive werden als UTC angenommen."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def local_to_utc(local_date: date, local_time: time) -> datetime:
    local_dt = datetime.combine(local_date, local_time).replace(tzinfo=get_local_tz())
    return to_utc_naive(local_dt)


def utc_to_local(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc).astimezone(get_local_tz())


def local_day_bounds(local_date: date) -> tuple[datetime, datetime]:
    """UTC-Grenzen [Beginn, Ende) eines lokalen Kalendertags."""
    start = local_to_utc(local_date, time.min)
    end = local_to_utc(local_date, time.max.replace(microsecond=0))
    return start, end


def closing_time_for(value: datetime) -> datetime:
    """Schließzeit (UTC) am lokalen Tag des übergebenen UTC-Zeitpunkts."""
    local_day = utc_to_local(value).date()
    return local_to_utc(local_day, settings.closing_time)


def get_now() -> datetime:
    """FastAPI-Dependency für die aktuelle Zeit, in Tests überschreibbar."""
    return utcnow()

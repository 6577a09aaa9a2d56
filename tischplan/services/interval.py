"""
Zeitfenster-Modell: halboffene Intervalle [start, end).

Reine Funktionen ohne Seiteneffekte. Sich berührende Fenster
(a.end == b.start) überschneiden sich nicht.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime

    @classmethod
    def from_duration(cls, start: datetime, duration_minutes: int) -> "Interval":
        return cls(start=start, end=start + timedelta(minutes=duration_minutes))

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def shifted(self, minutes: int) -> "Interval":
        delta = timedelta(minutes=minutes)
        return Interval(start=self.start + delta, end=self.end + delta)


def overlaps(a: Interval, b: Interval) -> bool:
    return a.start < b.end and b.start < a.end


def contains(interval: Interval, instant: datetime) -> bool:
    return interval.start <= instant < interval.end


def remaining_minutes(interval: Interval, now: datetime) -> int:
    """Restminuten bis Fensterende, aufgerundet. <= 0 heißt abgelaufen."""
    return math.ceil((interval.end - now).total_seconds() / 60)


def minutes_until(start: datetime, now: datetime) -> int:
    return math.ceil((start - now).total_seconds() / 60)


def elapsed_minutes(since: datetime, now: datetime) -> int:
    """Vergangene volle Minuten, nie negativ."""
    return max(0, math.floor((now - since).total_seconds() / 60))


def booking_interval(booking) -> Interval:
    """
    Effektives Belegungsfenster einer Buchung. Eine gemeldete Verspätung
    verschiebt das ganze Fenster.
    """
    base = Interval.from_duration(booking.booking_time, booking.duration_minutes)
    return base.shifted(booking.delay_minutes or 0)

"""
Auto-Scheduler: schlägt bei einem Konflikt den frühesten konfliktfreien Beginn vor.

Vorschlag = Ende der (spätesten) kollidierenden Buchung + Reinigungspuffer.
Der Vorschlag wird erneut gegen alle Buchungen geprüft und so lange
weitergeschoben, bis eine Lücke gefunden ist oder das Suchfenster
(Schließzeit des Tages) überschritten wird. Angewendet wird er nie
automatisch, nur nach ausdrücklicher Bestätigung des Aufrufers.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from tischplan.config import settings
from tischplan.exceptions import ConflictError
from tischplan.models.booking import Booking
from tischplan.services.conflict_service import (
    Conflict,
    booking_summary,
    detect_conflict,
    find_overlapping,
    load_active_bookings,
)
from tischplan.services.interval import Interval, booking_interval
from tischplan.utils.timeutils import closing_time_for

logger = logging.getLogger("tischplan.services.scheduler_service")


def lookahead_end_for(requested_start: datetime) -> datetime:
    """
    Bis wann gesucht wird: Schließzeit am Tag der Anfrage. Liegt die Anfrage
    schon nach Schließzeit, gilt ein fester Suchzeitraum ab Anfrage.
    """
    closing = closing_time_for(requested_start)
    if closing <= requested_start:
        return requested_start + timedelta(minutes=settings.auto_schedule_fallback_lookahead_minutes)
    return closing


def suggest_start(
    bookings: Iterable[Booking],
    requested: Interval,
    buffer_minutes: Optional[int] = None,
    lookahead_end: Optional[datetime] = None,
    exclude_booking_id: Optional[UUID] = None,
) -> Optional[datetime]:
    """
    Frühester Beginn >= Ende des Konflikts + Puffer, an dem das ganze Fenster
    frei ist. Gibt den angefragten Beginn zurück, wenn es gar keinen Konflikt
    gibt, und None, wenn im Suchfenster keine Lücke existiert.
    """
    if buffer_minutes is None:
        buffer_minutes = settings.cleanup_buffer_minutes
    if lookahead_end is None:
        lookahead_end = lookahead_end_for(requested.start)
    bookings = list(bookings)
    buffer = timedelta(minutes=buffer_minutes)
    duration = requested.duration_minutes

    conflicts = find_overlapping(bookings, requested, exclude_booking_id)
    if not conflicts:
        return requested.start

    # Jede Runde springt hinter mindestens eine weitere Buchung
    for _ in range(len(bookings) + 1):
        candidate = max(booking_interval(b).end for b in conflicts) + buffer
        window = Interval.from_duration(candidate, duration)
        if window.end > lookahead_end:
            logger.info(f"Keine Lücke bis {lookahead_end.isoformat()} gefunden")
            return None
        conflicts = find_overlapping(bookings, window, exclude_booking_id)
        if not conflicts:
            return candidate
    return None


def estimate_wait(requested_start: datetime, suggested_start: Optional[datetime]) -> Optional[dict]:
    if suggested_start is None:
        return None
    minutes = max(0, math.ceil((suggested_start - requested_start).total_seconds() / 60))
    return {
        "estimated_minutes": minutes,
        "available_at": suggested_start.isoformat(),
    }


def propose(
    db: Session,
    table_id: UUID,
    requested: Interval,
    exclude_booking_id: Optional[UUID] = None,
) -> tuple[Optional[Conflict], Optional[datetime]]:
    """Konflikt erkennen und, falls vorhanden, einen Vorschlag berechnen."""
    conflict = detect_conflict(db, table_id, requested, exclude_booking_id)
    if conflict is None:
        return None, None
    suggested = suggest_start(
        load_active_bookings(db, table_id),
        requested,
        exclude_booking_id=exclude_booking_id,
    )
    return conflict, suggested


def conflict_payload(conflict: Conflict, requested: Interval, suggested: Optional[datetime]) -> dict:
    return {
        "has_conflict": True,
        "conflict": {
            "conflicting_booking": booking_summary(conflict.conflicting_booking),
            "conflict_end_time": conflict.conflict_end_time.isoformat(),
        },
        "conflicts": [booking_summary(b) for b in conflict.bookings],
        "suggested_time": suggested.isoformat() if suggested else None,
        "estimated_wait_time": estimate_wait(requested.start, suggested),
    }


def raise_conflict(conflict: Conflict, requested: Interval, suggested: Optional[datetime], detail: Optional[str] = None):
    payload = conflict_payload(conflict, requested, suggested)
    raise ConflictError(
        detail or "Tisch ist in diesem Zeitraum bereits gebucht",
        conflict=payload["conflict"],
        conflicts=payload["conflicts"],
        suggested_time=payload["suggested_time"],
        estimated_wait_time=payload["estimated_wait_time"],
    )

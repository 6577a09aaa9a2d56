import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from tischplan.models.booking import ACTIVE_BOOKING_STATUSES, Booking
from tischplan.services.interval import Interval, booking_interval, overlaps

logger = logging.getLogger("tischplan.services.conflict_service")


@dataclass
class Conflict:
    """Alle überschneidenden Buchungen, sortiert nach Beginn."""
    bookings: list[Booking]

    @property
    def conflicting_booking(self) -> Booking:
        return self.bookings[0]

    @property
    def conflict_end_time(self) -> datetime:
        # Die späteste Endzeit bestimmt den frühesten sicheren Neubeginn
        return max(booking_interval(b).end for b in self.bookings)


def booking_summary(booking: Booking) -> dict:
    window = booking_interval(booking)
    return {
        "id": str(booking.id),
        "table_id": str(booking.table_id),
        "customer_name": booking.customer_name,
        "people_count": booking.people_count,
        "status": booking.status.value,
        "confirmation_status": booking.confirmation_status.value,
        "start": window.start.isoformat(),
        "end": window.end.isoformat(),
        "delay_minutes": booking.delay_minutes or 0,
    }


def find_overlapping(bookings: Iterable[Booking], requested: Interval, exclude_booking_id: Optional[UUID] = None) -> list[Booking]:
    """Reine Prüfung gegen eine bereits geladene Buchungsliste."""
    result = []
    for booking in bookings:
        if booking.status not in ACTIVE_BOOKING_STATUSES:
            continue
        if exclude_booking_id is not None and booking.id == exclude_booking_id:
            continue
        if overlaps(booking_interval(booking), requested):
            result.append(booking)
    result.sort(key=lambda b: booking_interval(b).start)
    return result


def load_active_bookings(db: Session, table_id: UUID) -> list[Booking]:
    return db.query(Booking).filter(
        Booking.table_id == table_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES)
    ).order_by(Booking.booking_time).all()


def detect_conflict(
    db: Session,
    table_id: UUID,
    requested: Interval,
    exclude_booking_id: Optional[UUID] = None,
) -> Optional[Conflict]:
    """
    Sucht aktive Buchungen des Tisches, deren effektives Fenster sich mit dem
    angefragten überschneidet. None heißt: kein Konflikt.
    """
    overlapping = find_overlapping(load_active_bookings(db, table_id), requested, exclude_booking_id)
    if not overlapping:
        return None
    logger.debug(f"Konflikt auf Tisch {table_id}: {len(overlapping)} Buchung(en)")
    return Conflict(bookings=overlapping)

"""
Buchungsabläufe: anlegen, stornieren, abschließen, umsetzen, verdrängen, platzieren.

Jede schreibende Operation läuft unter dem Lock der betroffenen Tische:
Konfliktprüfung und Commit bilden eine Einheit. Schlägt etwas fehl, wird die
Session zurückgerollt, es bleibt nichts halb geschrieben. Events gehen erst
nach dem Commit raus.
"""
import logging
import math
from datetime import date, datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from tischplan.config import settings
from tischplan.exceptions import NotFoundError, ValidationError
from tischplan.models.activity_log import ActionType
from tischplan.models.booking import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    ConfirmationStatus,
)
from tischplan.models.table import Table, TableStatus, recommended_size
from tischplan.models.waiting_list import WaitingListEntry, WaitingStatus
from tischplan.schemas.booking import BookingCreate, BookingOverride
from tischplan.services.activity_service import log_activity
from tischplan.services.conflict_service import load_active_bookings
from tischplan.services.event_bus import EventTopic, event_bus
from tischplan.services.interval import Interval, booking_interval
from tischplan.services.scheduler_service import propose, raise_conflict
from tischplan.services.table_locks import table_locks
from tischplan.services.table_state import (
    TableEvent,
    derive_status,
    override_status,
    refresh_table_status,
    transition,
)
from tischplan.utils.timeutils import local_day_bounds, local_to_utc, to_utc_naive

logger = logging.getLogger("tischplan.services.booking_service")


# ============ HILFSFUNKTIONEN ============

def get_table_or_404(db: Session, table_id: UUID) -> Table:
    table = db.query(Table).filter(Table.id == table_id).first()
    if not table:
        raise NotFoundError("Tisch nicht gefunden")
    return table


def get_active_booking_or_404(db: Session, booking_id: UUID) -> Booking:
    """Stornierte oder abgeschlossene Buchungen zählen als nicht gefunden."""
    booking = db.query(Booking).filter(
        Booking.id == booking_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES)
    ).first()
    if not booking:
        raise NotFoundError("Keine aktive Buchung gefunden")
    return booking


def check_capacity(table: Table, people_count: int):
    if people_count > table.seats:
        raise ValidationError(
            f"Tisch {table.number} hat nur {table.seats} Plätze für {people_count} Personen"
        )


def resolve_start(
    booking_time: Optional[datetime],
    booking_date: Optional[date],
    booking_time_slot,
    now: datetime,
) -> datetime:
    """
    Beginn der Buchung in UTC. Datum + Uhrzeit (Ortszeit) haben Vorrang,
    ohne Zeitangabe beginnt ein Walk-in sofort.
    """
    if booking_date is not None and booking_time_slot is not None:
        return local_to_utc(booking_date, booking_time_slot)
    if booking_time is not None:
        return to_utc_naive(booking_time)
    return now


def booking_event_data(booking: Booking) -> dict:
    window = booking_interval(booking)
    return {
        "booking_id": str(booking.id),
        "table_id": str(booking.table_id),
        "status": booking.status.value,
        "confirmation_status": booking.confirmation_status.value,
        "start": window.start.isoformat(),
        "end": window.end.isoformat(),
    }


def publish_table(table: Table):
    event_bus.publish(EventTopic.TABLE_UPDATED, {
        "table_id": str(table.id),
        "status": table.status.value,
    })


def load_booking(db: Session, booking_id: UUID) -> Booking:
    return db.query(Booking).options(
        joinedload(Booking.table)
    ).filter(Booking.id == booking_id).first()


def commit_new_booking(
    db: Session,
    table: Table,
    requested: Interval,
    fields: dict,
    auto_schedule: bool,
    now: datetime,
    suggested_time: Optional[datetime] = None,
) -> tuple[Booking, bool]:
    """
    Kern jeder Neuanlage, muss unter dem Tisch-Lock aufgerufen werden.
    Prüft auf Konflikte, wendet einen Vorschlag nur mit auto_schedule an
    und leitet danach den Tischstatus neu ab. Committet nicht.
    """
    start = requested.start
    auto_scheduled = False
    conflict, suggested = propose(db, table.id, requested)

    if conflict is not None:
        if not auto_schedule or suggested is None:
            raise_conflict(conflict, requested, suggested)

        if suggested_time is not None:
            # Vom Client übernommener Vorschlag wird erneut geprüft
            client_choice = to_utc_naive(suggested_time)
            choice_window = Interval.from_duration(client_choice, requested.duration_minutes)
            later_conflict, _ = propose(db, table.id, choice_window)
            buffered = client_choice >= conflict.conflict_end_time + timedelta(minutes=settings.cleanup_buffer_minutes)
            if later_conflict is None and buffered:
                suggested = client_choice
            else:
                logger.info(f"Übergebener Vorschlag {client_choice.isoformat()} ungültig, nehme {suggested.isoformat()}")

        start = suggested
        auto_scheduled = True

    booking = Booking(
        table_id=table.id,
        booking_time=start,
        duration_minutes=requested.duration_minutes,
        auto_scheduled=auto_scheduled,
        status=BookingStatus.BOOKED,
        confirmation_status=ConfirmationStatus.PENDING,
        delay_minutes=0,
        created_at=now,
        **fields
    )
    db.add(booking)
    db.flush()

    log_activity(
        db,
        entity_type="booking",
        entity_id=booking.id,
        action_type=ActionType.BOOKING_AUTO_SCHEDULED if auto_scheduled else ActionType.BOOKING_CREATED,
        description=f"Buchung für {booking.customer_name} an Tisch {table.number}",
        new_value=start.isoformat(),
        details={"requested_start": requested.start.isoformat(), "table_id": str(table.id)},
        timestamp=now,
    )
    refresh_table_status(db, table, now, TableEvent.BOOKING_CREATED)
    return booking, auto_scheduled


# ============ ANLEGEN ============

def create_booking(db: Session, data: BookingCreate, now: datetime) -> tuple[Booking, bool]:
    table = get_table_or_404(db, data.table_id)
    check_capacity(table, data.people_count)

    start = resolve_start(data.booking_time, data.booking_date, data.booking_time_slot, now)
    requested = Interval.from_duration(start, data.duration_minutes)
    fields = {
        "customer_name": data.customer_name,
        "mobile": data.mobile,
        "email": data.email,
        "people_count": data.people_count,
        "booking_date": data.booking_date,
        "booking_time_slot": data.booking_time_slot,
        "booking_type": data.booking_type,
        "priority": data.priority,
    }

    with table_locks.hold(table.id):
        db.expire_all()
        table = get_table_or_404(db, data.table_id)
        try:
            booking, auto_scheduled = commit_new_booking(
                db, table, requested, fields, data.confirm_auto_schedule, now
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        booking = load_booking(db, booking.id)
        event_bus.publish(EventTopic.BOOKING_CREATED, booking_event_data(booking))
        publish_table(table)

    logger.info(f"Buchung {booking.id} angelegt (auto_scheduled={auto_scheduled})")
    return booking, auto_scheduled


def override_booking(db: Session, data: BookingOverride, now: datetime) -> tuple[Booking, WaitingListEntry]:
    """
    Verdrängt eine bestehende Buchung: sie wird storniert und mit erhöhter
    Priorität auf die Warteliste gesetzt, danach wird die neue Buchung angelegt.
    Bleibt ein Konflikt mit einer anderen Buchung, wird alles zurückgerollt.
    """
    table = get_table_or_404(db, data.table_id)
    check_capacity(table, data.people_count)
    start = resolve_start(data.booking_time, data.booking_date, data.booking_time_slot, now)
    requested = Interval.from_duration(start, data.duration_minutes)

    with table_locks.hold(table.id):
        db.expire_all()
        table = get_table_or_404(db, data.table_id)
        displaced = get_active_booking_or_404(db, data.conflicting_booking_id)
        if displaced.table_id != table.id:
            raise ValidationError("Die zu verdrängende Buchung gehört nicht zu diesem Tisch")

        try:
            displaced.status = BookingStatus.CANCELLED
            displaced.confirmation_status = ConfirmationStatus.CANCELLED
            displaced.updated_at = now
            entry = WaitingListEntry(
                customer_name=displaced.customer_name,
                mobile=displaced.mobile,
                email=displaced.email,
                people_count=displaced.people_count,
                preferred_table_size=recommended_size(displaced.people_count),
                booking_type=displaced.booking_type,
                booking_date=displaced.booking_date,
                booking_time_slot=displaced.booking_time_slot,
                priority=(displaced.priority or 0) + 1,
                status=WaitingStatus.WAITING,
                created_at=now,
            )
            db.add(entry)
            db.flush()

            log_activity(
                db,
                entity_type="booking",
                entity_id=displaced.id,
                action_type=ActionType.BOOKING_OVERRIDDEN,
                description=f"Buchung von {displaced.customer_name} verdrängt, auf Warteliste gesetzt",
                details={"waiting_entry_id": str(entry.id)},
                timestamp=now,
            )

            fields = {
                "customer_name": data.customer_name,
                "mobile": data.mobile,
                "email": data.email,
                "people_count": data.people_count,
                "booking_date": data.booking_date,
                "booking_time_slot": data.booking_time_slot,
                "booking_type": data.booking_type,
                "priority": data.priority,
            }
            booking, _ = commit_new_booking(db, table, requested, fields, False, now)
            db.commit()
        except Exception:
            db.rollback()
            raise

        booking = load_booking(db, booking.id)
        db.refresh(entry)
        event_bus.publish(EventTopic.BOOKING_UPDATED, {"booking_id": str(displaced.id), "status": BookingStatus.CANCELLED.value})
        event_bus.publish(EventTopic.BOOKING_CREATED, booking_event_data(booking))
        event_bus.publish(EventTopic.WAITING_LIST_UPDATED, {"entry_id": str(entry.id), "status": entry.status.value})
        publish_table(table)

    return booking, entry


# ============ STORNIEREN / ABSCHLIESSEN ============

def _finish_booking(db: Session, booking_id: UUID, new_status: BookingStatus, now: datetime) -> Booking:
    booking = get_active_booking_or_404(db, booking_id)

    with table_locks.hold(booking.table_id):
        db.expire_all()
        # Zweiter Aufruf (auch parallel) findet keine aktive Buchung mehr
        booking = get_active_booking_or_404(db, booking_id)
        table = get_table_or_404(db, booking.table_id)
        try:
            old_status = booking.status
            booking.status = new_status
            if new_status == BookingStatus.CANCELLED:
                booking.confirmation_status = ConfirmationStatus.CANCELLED
            booking.updated_at = now
            log_activity(
                db,
                entity_type="booking",
                entity_id=booking.id,
                action_type=ActionType.BOOKING_CANCELLED if new_status == BookingStatus.CANCELLED else ActionType.BOOKING_COMPLETED,
                description=f"Buchung von {booking.customer_name} {new_status.value.lower()}",
                old_value=old_status.value,
                new_value=new_status.value,
                timestamp=now,
            )
            refresh_table_status(db, table, now, TableEvent.RELEASED)
            db.commit()
        except Exception:
            db.rollback()
            raise

        booking = load_booking(db, booking_id)
        event_bus.publish(EventTopic.BOOKING_UPDATED, booking_event_data(booking))
        publish_table(table)

    return booking


def cancel_booking(db: Session, booking_id: UUID, now: datetime) -> Booking:
    return _finish_booking(db, booking_id, BookingStatus.CANCELLED, now)


def complete_booking(db: Session, booking_id: UUID, now: datetime) -> Booking:
    return _finish_booking(db, booking_id, BookingStatus.COMPLETED, now)


# ============ UMSETZEN ============

def reassign_table(db: Session, booking_id: UUID, new_table_id: UUID, now: datetime) -> Booking:
    booking = get_active_booking_or_404(db, booking_id)
    old_table_id = booking.table_id
    new_table = get_table_or_404(db, new_table_id)
    if old_table_id == new_table.id:
        raise ValidationError("Buchung liegt bereits auf diesem Tisch")
    check_capacity(new_table, booking.people_count)

    with table_locks.hold(old_table_id, new_table.id):
        db.expire_all()
        booking = get_active_booking_or_404(db, booking_id)
        if booking.table_id != old_table_id:
            raise ValidationError("Buchung wurde zwischenzeitlich umgesetzt")
        old_table = get_table_or_404(db, old_table_id)
        new_table = get_table_or_404(db, new_table_id)

        try:
            requested = booking_interval(booking)
            conflict, suggested = propose(db, new_table.id, requested)
            if conflict is not None:
                raise_conflict(conflict, requested, suggested, "Zieltisch ist in diesem Zeitraum nicht frei")

            booking.table_id = new_table.id
            booking.updated_at = now
            log_activity(
                db,
                entity_type="booking",
                entity_id=booking.id,
                action_type=ActionType.BOOKING_REASSIGNED,
                description=f"Buchung von Tisch {old_table.number} nach Tisch {new_table.number} umgesetzt",
                old_value=str(old_table.id),
                new_value=str(new_table.id),
                timestamp=now,
            )
            db.flush()
            refresh_table_status(db, old_table, now, TableEvent.RELEASED)
            seated = booking.status == BookingStatus.CONFIRMED
            refresh_table_status(db, new_table, now, TableEvent.SEATED if seated else TableEvent.BOOKING_CREATED)
            db.commit()
        except Exception:
            db.rollback()
            raise

        booking = load_booking(db, booking_id)
        event_bus.publish(EventTopic.BOOKING_UPDATED, booking_event_data(booking))
        publish_table(old_table)
        publish_table(new_table)

    return booking


# ============ TISCHSTATUS DURCH PERSONAL ============

def update_table_status(db: Session, table_id: UUID, status: TableStatus, now: datetime) -> Table:
    """
    Statuswechsel durch das Personal. "Besetzt" auf einem Tisch mit einer
    laufenden oder gleich beginnenden Buchung platziert diese Buchung
    (regulärer Übergang), alles andere ist ein manueller Override.
    """
    get_table_or_404(db, table_id)

    with table_locks.hold(table_id):
        db.expire_all()
        table = get_table_or_404(db, table_id)
        try:
            seated_booking = None
            already_seated = False
            if status == TableStatus.OCCUPIED:
                bookings = load_active_bookings(db, table.id)
                already_seated = derive_status(bookings, now) == TableStatus.OCCUPIED
                if not already_seated:
                    seated_booking = _booking_to_seat(bookings, now)

            if already_seated:
                # Eine platzierte Buchung läuft bereits, kein Override nötig
                table.status_overridden_until = None
                transition(db, table, TableStatus.OCCUPIED, TableEvent.SEATED, now, "Gast sitzt bereits")
            elif seated_booking is not None:
                planned_start = _seat_booking(seated_booking, now)
                log_activity(
                    db,
                    entity_type="booking",
                    entity_id=seated_booking.id,
                    action_type=ActionType.BOOKING_SEATED,
                    description=f"{seated_booking.customer_name} an Tisch {table.number} platziert",
                    old_value=planned_start.isoformat(),
                    new_value=booking_interval(seated_booking).start.isoformat(),
                    timestamp=now,
                )
                table.status_overridden_until = None
                transition(db, table, TableStatus.OCCUPIED, TableEvent.SEATED, now, "Gast platziert")
            else:
                override_status(db, table, status, now)
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(table)
        if seated_booking is not None:
            event_bus.publish(EventTopic.BOOKING_UPDATED, booking_event_data(seated_booking))
        publish_table(table)

    return table


def _booking_to_seat(bookings: list[Booking], now: datetime) -> Optional[Booking]:
    horizon = timedelta(minutes=settings.booked_horizon_minutes)
    for booking in bookings:
        if booking.status != BookingStatus.BOOKED:
            continue
        window = booking_interval(booking)
        if window.start - horizon <= now < window.end:
            return booking
    return None


def _seat_booking(booking: Booking, now: datetime) -> datetime:
    """
    Setzt die Buchung auf CONFIRMED. Bei früherem Platzieren beginnt das
    Belegungsfenster jetzt, das geplante Ende bleibt. Liefert den geplanten Start.
    """
    window = booking_interval(booking)
    if now < window.start:
        booking.booking_time = now
        booking.delay_minutes = 0
        booking.duration_minutes = math.ceil((window.end - now).total_seconds() / 60)
    booking.status = BookingStatus.CONFIRMED
    booking.updated_at = now
    return window.start


# ============ LESEN ============

def bookings_by_date(db: Session, local_date: date) -> list[Booking]:
    start, end = local_day_bounds(local_date)
    return db.query(Booking).options(
        joinedload(Booking.table)
    ).filter(
        Booking.booking_time >= start,
        Booking.booking_time <= end
    ).order_by(Booking.booking_time).all()


def upcoming_for_table(db: Session, table_id: UUID, now: datetime, local_date: Optional[date] = None) -> list[Booking]:
    """Aktive Buchungen des Tisches, die noch nicht vorbei sind (optional nur ein Tag)."""
    bookings = load_active_bookings(db, table_id)
    result = [b for b in bookings if booking_interval(b).end > now]
    if local_date is not None:
        start, end = local_day_bounds(local_date)
        result = [b for b in result if start <= b.booking_time <= end]
    return result


def current_booking_for_table(db: Session, table: Table, now: datetime) -> Optional[Booking]:
    """Laufende Buchung, sonst die nächste anstehende."""
    upcoming = upcoming_for_table(db, table.id, now)
    for booking in upcoming:
        if booking_interval(booking).start <= now:
            return booking
    return upcoming[0] if upcoming else None


def bookings_for_table(db: Session, table_id: UUID, local_date: Optional[date] = None) -> list[Booking]:
    """Alle Buchungen des Tisches (jeder Status), optional nur ein Tag."""
    query = db.query(Booking).filter(Booking.table_id == table_id)
    if local_date is not None:
        start, end = local_day_bounds(local_date)
        query = query.filter(Booking.booking_time >= start, Booking.booking_time <= end)
    return query.order_by(Booking.booking_time).all()

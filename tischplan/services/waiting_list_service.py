"""
Warteliste: Gäste ohne Tisch einreihen, freie Tische finden, zuweisen.

Zugewiesen wird nur durch das Personal, es gibt keine automatische Auflösung.
"""
import logging
import math
from datetime import date, datetime, time
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from tischplan.config import settings
from tischplan.exceptions import NotFoundError, ValidationError
from tischplan.models.activity_log import ActionType
from tischplan.models.booking import Booking, BookingType
from tischplan.models.table import Table, TableStatus, recommended_size, table_number_key
from tischplan.models.waiting_list import OPEN_WAITING_STATUSES, WaitingListEntry, WaitingStatus
from tischplan.schemas.waiting_list import AssignRequest, CheckConflictRequest, WaitingListCreate
from tischplan.services.activity_service import log_activity
from tischplan.services.booking_service import (
    booking_event_data,
    check_capacity,
    commit_new_booking,
    get_table_or_404,
    load_booking,
    publish_table,
    resolve_start,
)
from tischplan.services.conflict_service import load_active_bookings
from tischplan.services.event_bus import EventTopic, event_bus
from tischplan.services.interval import Interval, elapsed_minutes
from tischplan.services.scheduler_service import conflict_payload, propose, suggest_start
from tischplan.services.table_locks import entry_lock_key, table_locks
from tischplan.services.table_state import computed_status, table_view
from tischplan.utils.timeutils import local_to_utc

logger = logging.getLogger("tischplan.services.waiting_list_service")


# ============ HILFSFUNKTIONEN ============

def get_open_entry_or_404(db: Session, entry_id: UUID) -> WaitingListEntry:
    """Zugewiesene oder stornierte Einträge zählen als nicht gefunden."""
    entry = db.query(WaitingListEntry).filter(
        WaitingListEntry.id == entry_id,
        WaitingListEntry.status.in_(OPEN_WAITING_STATUSES)
    ).first()
    if not entry:
        raise NotFoundError("Kein offener Wartelisten-Eintrag gefunden")
    return entry


def entry_start(entry: WaitingListEntry, now: datetime) -> datetime:
    return resolve_start(None, entry.booking_date, entry.booking_time_slot, now)


def waiting_minutes(entry: WaitingListEntry, now: datetime) -> int:
    return elapsed_minutes(entry.created_at, now)


def estimate_wait_minutes(db: Session, people_count: int, start: datetime, duration_minutes: Optional[int] = None) -> Optional[int]:
    """
    Geschätzte Wartezeit über alle passenden Tische: der früheste konfliktfreie
    Beginn laut Auto-Scheduler. None, wenn kein Tisch passt oder keine Lücke existiert.
    """
    duration = duration_minutes or settings.default_duration_minutes
    requested = Interval.from_duration(start, duration)
    best = None
    for table in db.query(Table).filter(Table.seats >= people_count).all():
        suggested = suggest_start(load_active_bookings(db, table.id), requested)
        if suggested is None:
            continue
        minutes = max(0, math.ceil((suggested - start).total_seconds() / 60))
        if best is None or minutes < best:
            best = minutes
    return best


def publish_entry(entry: WaitingListEntry):
    event_bus.publish(EventTopic.WAITING_LIST_UPDATED, {
        "entry_id": str(entry.id),
        "status": entry.status.value,
        "priority": entry.priority,
    })


# ============ EINREIHEN / LESEN ============

def enqueue(db: Session, data: WaitingListCreate, now: datetime) -> WaitingListEntry:
    priority = data.priority
    if priority is None:
        priority = settings.pre_booking_priority if data.booking_type == BookingType.PRE_BOOKING else 0

    estimate = data.estimated_wait_minutes
    if estimate is None:
        start = resolve_start(None, data.booking_date, data.booking_time_slot, now)
        estimate = estimate_wait_minutes(db, data.people_count, start)

    entry = WaitingListEntry(
        customer_name=data.customer_name,
        mobile=data.mobile,
        email=data.email,
        people_count=data.people_count,
        preferred_table_size=data.preferred_table_size or recommended_size(data.people_count),
        booking_type=data.booking_type,
        booking_date=data.booking_date,
        booking_time_slot=data.booking_time_slot,
        priority=priority,
        status=WaitingStatus.WAITING,
        estimated_wait_minutes=estimate,
        created_at=now,
    )
    db.add(entry)
    db.flush()
    log_activity(
        db,
        entity_type="waiting_list",
        entity_id=entry.id,
        action_type=ActionType.WAITING_ADDED,
        description=f"{entry.customer_name} ({entry.people_count} Personen) auf die Warteliste gesetzt",
        details={"priority": priority, "estimated_wait_minutes": estimate},
        timestamp=now,
    )
    db.commit()
    db.refresh(entry)

    publish_entry(entry)
    logger.info(f"Warteliste: {entry.customer_name} eingereiht (Priorität {priority})")
    return entry


def list_entries(db: Session, include_closed: bool = False) -> list[WaitingListEntry]:
    """Reihenfolge: Priorität absteigend, dann Ankunft."""
    query = db.query(WaitingListEntry)
    if not include_closed:
        query = query.filter(WaitingListEntry.status.in_(OPEN_WAITING_STATUSES))
    return query.order_by(
        WaitingListEntry.priority.desc(),
        WaitingListEntry.created_at.asc()
    ).all()


# ============ FREIE TISCHE ============

def find_available_tables(
    db: Session,
    people_count: int,
    now: datetime,
    booking_date: Optional[date] = None,
    booking_time_slot: Optional[time] = None,
) -> dict:
    """
    Tische mit genug Plätzen, deren Status zum Zeitpunkt AVAILABLE ist.
    Ohne Datum gilt "jetzt" inklusive gültiger manueller Overrides.
    """
    if (booking_date is None) != (booking_time_slot is None):
        raise ValidationError("booking_date und booking_time_slot nur gemeinsam angeben")

    at = None
    if booking_date is not None:
        at = local_to_utc(booking_date, booking_time_slot)

    candidates = sorted(
        db.query(Table).filter(Table.seats >= people_count).all(),
        key=lambda t: (t.seats, table_number_key(t.number))
    )

    tables = []
    for table in candidates:
        bookings = load_active_bookings(db, table.id)
        if computed_status(table, bookings, now, at) == TableStatus.AVAILABLE:
            tables.append((table, table_view(table, bookings, now)))

    size = recommended_size(people_count)
    return {
        "people_count": people_count,
        "at": at or now,
        "tables": tables,
        "recommended_size": size,
        "recommended_size_available": any(t.size == size for t, _ in tables),
    }


def statuses_at(db: Session, at: datetime, now: datetime) -> list[dict]:
    """Status aller Tische zu einem beliebigen Zeitpunkt, nur aus den Buchungen."""
    result = []
    tables = sorted(db.query(Table).all(), key=lambda t: (str(t.floor_id), table_number_key(t.number)))
    for table in tables:
        status = computed_status(table, load_active_bookings(db, table.id), now, at)
        result.append({
            "table_id": table.id,
            "number": table.number,
            "floor_id": table.floor_id,
            "seats": table.seats,
            "status": status,
        })
    return result


# ============ ZUWEISEN ============

def check_assign_conflict(db: Session, entry_id: UUID, data: CheckConflictRequest, now: datetime) -> dict:
    entry = get_open_entry_or_404(db, entry_id)
    table = get_table_or_404(db, data.table_id)
    check_capacity(table, entry.people_count)

    requested = Interval.from_duration(entry_start(entry, now), data.duration_minutes)
    conflict, suggested = propose(db, table.id, requested)
    if conflict is None:
        return {
            "has_conflict": False,
            "conflict": None,
            "conflicts": [],
            "suggested_time": None,
            "estimated_wait_time": None,
        }
    return conflict_payload(conflict, requested, suggested)


def assign(db: Session, entry_id: UUID, data: AssignRequest, now: datetime) -> tuple[Booking, bool, WaitingListEntry]:
    """
    Legt für den Eintrag eine Buchung an. Ohne auto_schedule ist ein Konflikt
    ein Fehler, mit auto_schedule wird zum (erneut geprüften) Vorschlag gebucht.
    """
    entry = get_open_entry_or_404(db, entry_id)
    table = get_table_or_404(db, data.table_id)
    check_capacity(table, entry.people_count)

    # Eintrag mitsperren: zwei Zuweisungen an verschiedene Tische schließen sich aus
    with table_locks.hold(table.id, entry_lock_key(entry_id)):
        db.expire_all()
        entry = get_open_entry_or_404(db, entry_id)
        table = get_table_or_404(db, data.table_id)
        requested = Interval.from_duration(entry_start(entry, now), data.duration_minutes)
        fields = {
            "customer_name": entry.customer_name,
            "mobile": entry.mobile,
            "email": entry.email,
            "people_count": entry.people_count,
            "booking_date": entry.booking_date,
            "booking_time_slot": entry.booking_time_slot,
            "booking_type": entry.booking_type,
            "priority": entry.priority,
            "waiting_entry_id": entry.id,
        }
        try:
            booking, auto_scheduled = commit_new_booking(
                db, table, requested, fields, data.auto_schedule, now,
                suggested_time=data.suggested_time,
            )
            entry.status = WaitingStatus.ASSIGNED
            entry.assigned_booking_id = booking.id
            entry.updated_at = now
            log_activity(
                db,
                entity_type="waiting_list",
                entity_id=entry.id,
                action_type=ActionType.WAITING_ASSIGNED,
                description=f"{entry.customer_name} an Tisch {table.number} zugewiesen",
                new_value=str(booking.id),
                details={"auto_scheduled": auto_scheduled},
                timestamp=now,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        booking = load_booking(db, booking.id)
        db.refresh(entry)
        event_bus.publish(EventTopic.BOOKING_CREATED, booking_event_data(booking))
        publish_entry(entry)
        publish_table(table)

    return booking, auto_scheduled, entry


# ============ BENACHRICHTIGEN / STORNIEREN ============

def notify(db: Session, entry_id: UUID, now: datetime) -> WaitingListEntry:
    get_open_entry_or_404(db, entry_id)

    with table_locks.hold(entry_lock_key(entry_id)):
        db.expire_all()
        entry = get_open_entry_or_404(db, entry_id)
        entry.status = WaitingStatus.NOTIFIED
        entry.notified_at = now
        entry.updated_at = now
        log_activity(
            db,
            entity_type="waiting_list",
            entity_id=entry.id,
            action_type=ActionType.WAITING_NOTIFIED,
            description=f"{entry.customer_name} benachrichtigt",
            timestamp=now,
        )
        db.commit()
        db.refresh(entry)
        publish_entry(entry)
    return entry


def cancel(db: Session, entry_id: UUID, now: datetime) -> WaitingListEntry:
    get_open_entry_or_404(db, entry_id)

    with table_locks.hold(entry_lock_key(entry_id)):
        db.expire_all()
        entry = get_open_entry_or_404(db, entry_id)
        entry.status = WaitingStatus.CANCELLED
        entry.updated_at = now
        log_activity(
            db,
            entity_type="waiting_list",
            entity_id=entry.id,
            action_type=ActionType.WAITING_CANCELLED,
            description=f"{entry.customer_name} von der Warteliste entfernt",
            timestamp=now,
        )
        db.commit()
        db.refresh(entry)
        publish_entry(entry)
    return entry

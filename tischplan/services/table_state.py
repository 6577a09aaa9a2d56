"""
Zustandsautomat für Tische: AVAILABLE -> BOOKED -> OCCUPIED -> AVAILABLE.

transition() ist die einzige Stelle, die Table.status schreibt. Erlaubte
Übergänge stehen pro Auslöser in TRANSITIONS, alles andere wird abgelehnt
und protokolliert. Manuelles Überschreiben durch das Personal ist immer
erlaubt, setzt aber einen Marker, damit der Abgleich (sync_table_statuses)
es erkennt und nach Ablauf repariert.
"""
import enum
import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from tischplan.config import settings
from tischplan.models.activity_log import ActionType
from tischplan.models.booking import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus
from tischplan.models.table import Table, TableStatus
from tischplan.services.activity_service import log_activity
from tischplan.services.conflict_service import load_active_bookings
from tischplan.services.event_bus import EventTopic, event_bus
from tischplan.services.interval import (
    booking_interval,
    contains,
    elapsed_minutes,
    minutes_until,
    remaining_minutes,
)
from tischplan.services.table_locks import table_locks

logger = logging.getLogger("tischplan.services.table_state")

ALL_STATUSES = frozenset(TableStatus)


class TableEvent(enum.Enum):
    BOOKING_CREATED = "BOOKING_CREATED"
    SEATED = "SEATED"
    RELEASED = "RELEASED"
    RECONCILED = "RECONCILED"
    MANUAL_OVERRIDE = "MANUAL_OVERRIDE"


TRANSITIONS: dict[TableEvent, dict[TableStatus, frozenset]] = {
    TableEvent.BOOKING_CREATED: {
        TableStatus.AVAILABLE: frozenset({TableStatus.AVAILABLE, TableStatus.BOOKED}),
        TableStatus.BOOKED: frozenset({TableStatus.BOOKED}),
        TableStatus.OCCUPIED: frozenset({TableStatus.OCCUPIED}),
    },
    TableEvent.SEATED: {
        TableStatus.AVAILABLE: frozenset({TableStatus.OCCUPIED}),
        TableStatus.BOOKED: frozenset({TableStatus.OCCUPIED}),
        TableStatus.OCCUPIED: frozenset({TableStatus.OCCUPIED}),
    },
    TableEvent.RELEASED: {status: ALL_STATUSES for status in TableStatus},
    TableEvent.RECONCILED: {status: ALL_STATUSES for status in TableStatus},
    TableEvent.MANUAL_OVERRIDE: {status: ALL_STATUSES for status in TableStatus},
}


def is_allowed(current: TableStatus, target: TableStatus, event: TableEvent) -> bool:
    return target in TRANSITIONS[event].get(current, frozenset())


# ============ ABGELEITETER STATUS (rein) ============

def derive_status(bookings: Iterable[Booking], at: datetime, horizon_minutes: Optional[int] = None) -> TableStatus:
    """
    Status eines Tisches zum Zeitpunkt `at`, nur aus den aktiven Buchungen:
    - OCCUPIED: eine platzierte Buchung (CONFIRMED) läuft noch
    - BOOKED: eine Buchung läuft oder beginnt innerhalb des Horizonts
    - sonst AVAILABLE
    """
    if horizon_minutes is None:
        horizon_minutes = settings.booked_horizon_minutes
    horizon = timedelta(minutes=horizon_minutes)

    booked = False
    for booking in bookings:
        if booking.status not in ACTIVE_BOOKING_STATUSES:
            continue
        window = booking_interval(booking)
        if booking.status == BookingStatus.CONFIRMED and at < window.end:
            return TableStatus.OCCUPIED
        if window.start - horizon <= at < window.end:
            booked = True
    return TableStatus.BOOKED if booked else TableStatus.AVAILABLE


def override_is_active(table: Table, now: datetime) -> bool:
    return table.status_overridden_until is not None and now < table.status_overridden_until


def computed_status(table: Table, bookings: Iterable[Booking], now: datetime, at: Optional[datetime] = None) -> TableStatus:
    """
    Status beim Lesen. Für "jetzt" gilt ein gültiger manueller Override,
    für andere Zeitpunkte zählen nur die Buchungen.
    """
    if at is None:
        if override_is_active(table, now):
            return table.status
        at = now
    return derive_status(bookings, at)


# ============ ÜBERGÄNGE ============

def transition(
    db: Session,
    table: Table,
    target: TableStatus,
    event: TableEvent,
    now: datetime,
    reason: str = "",
) -> bool:
    """
    Setzt den Tischstatus, wenn der Übergang erlaubt ist.
    Gibt False zurück (und protokolliert), wenn er abgelehnt wurde.
    Kein Commit, das macht der Aufrufer.
    """
    current = table.status
    if target == current:
        return True

    if not is_allowed(current, target, event):
        logger.warning(
            f"Übergang abgelehnt: Tisch {table.number} {current.value} -> {target.value} ({event.value})"
        )
        log_activity(
            db,
            entity_type="table",
            entity_id=table.id,
            action_type=ActionType.TABLE_TRANSITION_REJECTED,
            description=f"Übergang {current.value} -> {target.value} nicht erlaubt",
            old_value=current.value,
            new_value=target.value,
            details={"event": event.value, "reason": reason},
            timestamp=now,
        )
        return False

    table.status = target
    table.updated_at = now
    if target == TableStatus.OCCUPIED:
        table.occupied_since = now
    else:
        table.occupied_since = None

    if event == TableEvent.MANUAL_OVERRIDE:
        action_type = ActionType.TABLE_STATUS_OVERRIDDEN
    elif event == TableEvent.RECONCILED:
        action_type = ActionType.TABLE_RECONCILED
    else:
        action_type = ActionType.TABLE_STATUS_CHANGED

    log_activity(
        db,
        entity_type="table",
        entity_id=table.id,
        action_type=action_type,
        description=reason or f"Status {current.value} -> {target.value}",
        old_value=current.value,
        new_value=target.value,
        details={"event": event.value},
        timestamp=now,
    )
    logger.info(f"Tisch {table.number}: {current.value} -> {target.value} ({event.value})")
    return True


def override_status(db: Session, table: Table, target: TableStatus, now: datetime, reason: str = "") -> bool:
    """
    Manuelles Überschreiben durch das Personal (last writer wins).
    Kann eine Buchung "stranden" lassen, der Abgleich repariert das nach Ablauf des Markers.
    """
    changed = table.status != target
    transition(db, table, target, TableEvent.MANUAL_OVERRIDE, now, reason or "Manuell gesetzt")
    if not changed:
        # Auch ohne Statuswechsel ist die Absicht des Personals festzuhalten
        log_activity(
            db,
            entity_type="table",
            entity_id=table.id,
            action_type=ActionType.TABLE_STATUS_OVERRIDDEN,
            description=reason or "Manuell bestätigt",
            old_value=target.value,
            new_value=target.value,
            timestamp=now,
        )
    table.status_overridden_until = now + timedelta(minutes=settings.manual_override_minutes)
    table.updated_at = now
    return True


def refresh_table_status(db: Session, table: Table, now: datetime, event: TableEvent) -> bool:
    """
    Nach einer Buchungsänderung den Status neu ableiten.
    Ein manuell gesetztes OCCUPIED bleibt stehen (dort sitzt jemand ohne Buchung),
    jeder andere Override wird durch die neue Buchungslage abgelöst.
    """
    if override_is_active(table, now) and table.status == TableStatus.OCCUPIED:
        return False
    table.status_overridden_until = None
    db.flush()
    target = derive_status(load_active_bookings(db, table.id), now)
    return transition(db, table, target, event, now)


# ============ ABGLEICH ============

def sync_table_statuses(db: Session, now: datetime) -> dict:
    """
    Berechnet den Status aller Tische aus ihren Buchungen neu und korrigiert Abweichungen.
    Jeder Tisch wird einzeln unter seinem Lock abgeglichen.
    """
    table_ids = [row[0] for row in db.query(Table.id).all()]
    summary = {
        "checked": 0,
        "updated": 0,
        "overrides_kept": 0,
        "overrides_expired": 0,
        "changes": [],
    }

    for table_id in table_ids:
        with table_locks.hold(table_id):
            db.expire_all()
            table = db.get(Table, table_id)
            if not table:
                continue
            summary["checked"] += 1

            if override_is_active(table, now):
                summary["overrides_kept"] += 1
                continue
            if table.status_overridden_until is not None:
                summary["overrides_expired"] += 1
                table.status_overridden_until = None

            old_status = table.status
            target = derive_status(load_active_bookings(db, table.id), now)
            if target != old_status:
                transition(db, table, target, TableEvent.RECONCILED, now, "Abgleich mit Buchungen")
                summary["updated"] += 1
                summary["changes"].append({
                    "table_id": str(table.id),
                    "table_number": table.number,
                    "old_status": old_status.value,
                    "new_status": target.value,
                })
            db.commit()

            if target != old_status:
                event_bus.publish(EventTopic.TABLE_UPDATED, {
                    "table_id": str(table.id),
                    "status": table.status.value,
                })

    if summary["updated"]:
        logger.info(f"Abgleich: {summary['updated']} von {summary['checked']} Tischen korrigiert")
    return summary


# ============ BERECHNETE FELDER ============

def table_view(table: Table, bookings: list[Booking], now: datetime) -> dict:
    """
    Aus Zeitstempeln berechnete Felder, werden beim Lesen ermittelt und nie gespeichert.
    """
    occupied_minutes = None
    if table.status == TableStatus.OCCUPIED and table.occupied_since:
        occupied_minutes = elapsed_minutes(table.occupied_since, now)

    current = None
    upcoming = None
    horizon = timedelta(minutes=settings.booked_horizon_minutes)
    for booking in bookings:
        if booking.status not in ACTIVE_BOOKING_STATUSES:
            continue
        window = booking_interval(booking)
        if current is None and contains(window, now):
            current = (booking, window)
        elif upcoming is None and now < window.start <= now + horizon:
            upcoming = (booking, window)

    return {
        "computed_status": computed_status(table, bookings, now),
        "override_active": override_is_active(table, now),
        "occupied_minutes": occupied_minutes,
        "current_booking_id": current[0].id if current else None,
        "time_remaining_minutes": remaining_minutes(current[1], now) if current else None,
        "upcoming_booking_id": upcoming[0].id if upcoming else None,
        "upcoming_booking_start": upcoming[1].start if upcoming else None,
        "minutes_until_upcoming": minutes_until(upcoming[1].start, now) if upcoming else None,
    }

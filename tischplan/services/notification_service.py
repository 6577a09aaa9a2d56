"""
Erinnerungen: anstehende, unbestätigte Buchungen und lange wartende Gäste.

Jeder Hinweis hat eine deterministische ID, wiederholte Läufe legen
nichts doppelt an.
"""
import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from tischplan.config import settings
from tischplan.exceptions import NotFoundError
from tischplan.models.activity_log import ActionType
from tischplan.models.booking import Booking, BookingStatus, ConfirmationStatus
from tischplan.models.notification import Notification, NotificationType
from tischplan.models.waiting_list import WaitingListEntry, WaitingStatus
from tischplan.services.activity_service import log_activity
from tischplan.services.booking_service import (
    booking_event_data,
    get_active_booking_or_404,
    get_table_or_404,
    load_booking,
    publish_table,
)
from tischplan.services.conflict_service import detect_conflict
from tischplan.services.event_bus import EventTopic, event_bus
from tischplan.services.interval import Interval, booking_interval, elapsed_minutes, minutes_until
from tischplan.services.scheduler_service import propose, raise_conflict
from tischplan.services.table_locks import table_locks
from tischplan.services.table_state import TableEvent, refresh_table_status
from tischplan.utils.timeutils import utc_to_local

logger = logging.getLogger("tischplan.services.notification_service")


def upcoming_alert_id(booking_id, minutes: int) -> str:
    return f"upcoming:{booking_id}:{minutes}"


def long_waiting_alert_id(entry_id) -> str:
    return f"long-waiting:{entry_id}"


def notification_event_data(notification: Notification) -> dict:
    return {
        "alert_id": notification.id,
        "type": notification.type.value,
        "booking_id": str(notification.booking_id) if notification.booking_id else None,
        "waiting_entry_id": str(notification.waiting_entry_id) if notification.waiting_entry_id else None,
        "minutes_before": notification.minutes_before,
        "message": notification.message,
    }


def _pending_bookings(db: Session) -> list[Booking]:
    return db.query(Booking).options(
        joinedload(Booking.table)
    ).filter(
        Booking.status == BookingStatus.BOOKED,
        Booking.confirmation_status == ConfirmationStatus.PENDING
    ).order_by(Booking.booking_time).all()


# ============ SWEEP ============

def sweep(db: Session, now: datetime) -> dict:
    """
    Legt fällige Hinweise an und veröffentlicht sie nach dem Commit.
    Wurden seit dem letzten Lauf mehrere Schwellen überschritten, gilt die
    engste, die übrigen werden als erledigt vermerkt.
    """
    thresholds = sorted(settings.reminder_minutes_before)
    created: list[Notification] = []
    upcoming_count = 0
    long_waiting_count = 0

    for booking in _pending_bookings(db):
        minutes = minutes_until(booking_interval(booking).start, now)
        if minutes <= 0:
            continue
        crossed = [m for m in thresholds if minutes <= m]
        if not crossed:
            continue

        tightest = crossed[0]
        if db.get(Notification, upcoming_alert_id(booking.id, tightest)):
            continue

        table_number = booking.table.number if booking.table else "?"
        start_local = utc_to_local(booking_interval(booking).start).strftime("%H:%M")
        notification = Notification(
            id=upcoming_alert_id(booking.id, tightest),
            type=NotificationType.UPCOMING_BOOKING,
            booking_id=booking.id,
            minutes_before=tightest,
            message=f"{booking.customer_name} ({booking.people_count} P.) an Tisch {table_number} um {start_local}, noch {minutes} Min., unbestätigt",
            created_at=now,
        )
        db.add(notification)
        created.append(notification)
        upcoming_count += 1

        # Übersprungene weitere Schwellen nicht später nachholen
        for looser in crossed[1:]:
            if not db.get(Notification, upcoming_alert_id(booking.id, looser)):
                db.add(Notification(
                    id=upcoming_alert_id(booking.id, looser),
                    type=NotificationType.UPCOMING_BOOKING,
                    booking_id=booking.id,
                    minutes_before=looser,
                    message=f"Übersprungen zugunsten der {tightest}-Minuten-Erinnerung",
                    created_at=now,
                    dismissed_at=now,
                ))

    waiting = db.query(WaitingListEntry).filter(
        WaitingListEntry.status == WaitingStatus.WAITING
    ).all()
    for entry in waiting:
        waited = elapsed_minutes(entry.created_at, now)
        if waited < settings.long_waiting_minutes:
            continue
        alert_id = long_waiting_alert_id(entry.id)
        if db.get(Notification, alert_id):
            continue
        notification = Notification(
            id=alert_id,
            type=NotificationType.LONG_WAITING,
            waiting_entry_id=entry.id,
            message=f"{entry.customer_name} ({entry.people_count} P.) wartet seit {waited} Min.",
            created_at=now,
        )
        db.add(notification)
        created.append(notification)
        long_waiting_count += 1

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise

    for notification in created:
        topic = (
            EventTopic.UPCOMING_BOOKING
            if notification.type == NotificationType.UPCOMING_BOOKING
            else EventTopic.LONG_WAITING
        )
        event_bus.publish(topic, notification_event_data(notification), event_id=notification.id)

    if created:
        logger.info(f"Erinnerungen: {upcoming_count} Buchung(en), {long_waiting_count} Wartende")
    return {
        "upcoming": upcoming_count,
        "long_waiting": long_waiting_count,
        "alerts": created,
    }


# ============ LESEN ============

def pending(db: Session, now: datetime) -> dict:
    """Unbestätigte Buchungen im Erinnerungsfenster und offene Hinweise."""
    window = max(settings.reminder_minutes_before, default=0)
    bookings = [
        b for b in _pending_bookings(db)
        if 0 < minutes_until(booking_interval(b).start, now) <= window
    ]
    alerts = db.query(Notification).filter(
        Notification.dismissed_at.is_(None)
    ).order_by(Notification.created_at).all()
    return {"bookings": bookings, "alerts": alerts}


# ============ AKTIONEN ============

def _dismiss_upcoming(db: Session, booking_id: UUID, now: datetime):
    open_alerts = db.query(Notification).filter(
        Notification.booking_id == booking_id,
        Notification.type == NotificationType.UPCOMING_BOOKING,
        Notification.dismissed_at.is_(None)
    ).all()
    for alert in open_alerts:
        alert.dismissed_at = now


def confirm_booking(db: Session, booking_id: UUID, now: datetime) -> Booking:
    """Gast hat bestätigt, weitere Erinnerungen entfallen."""
    booking = get_active_booking_or_404(db, booking_id)
    try:
        booking.confirmation_status = ConfirmationStatus.CONFIRMED
        booking.confirmed_at = now
        booking.updated_at = now
        _dismiss_upcoming(db, booking.id, now)
        log_activity(
            db,
            entity_type="booking",
            entity_id=booking.id,
            action_type=ActionType.BOOKING_CONFIRMED,
            description=f"{booking.customer_name} hat bestätigt",
            timestamp=now,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    booking = load_booking(db, booking_id)
    event_bus.publish(EventTopic.BOOKING_UPDATED, booking_event_data(booking))
    return booking


def mark_client_delayed(db: Session, booking_id: UUID, delay_minutes: int, now: datetime) -> Booking:
    """
    Gast kommt später: das ganze Fenster verschiebt sich um delay_minutes.
    Überschneidet es sich dann mit einer anderen Buchung, wird abgelehnt.
    """
    booking = get_active_booking_or_404(db, booking_id)

    with table_locks.hold(booking.table_id):
        db.expire_all()
        booking = get_active_booking_or_404(db, booking_id)
        table = get_table_or_404(db, booking.table_id)
        try:
            base = Interval.from_duration(booking.booking_time, booking.duration_minutes)
            shifted = base.shifted(delay_minutes)
            if detect_conflict(db, table.id, shifted, exclude_booking_id=booking.id):
                conflict, suggested = propose(db, table.id, shifted, exclude_booking_id=booking.id)
                raise_conflict(conflict, shifted, suggested, "Verspätung überschneidet sich mit einer anderen Buchung")

            old_delay = booking.delay_minutes or 0
            booking.delay_minutes = delay_minutes
            booking.confirmation_status = ConfirmationStatus.CLIENT_DELAYED
            booking.updated_at = now
            _dismiss_upcoming(db, booking.id, now)
            log_activity(
                db,
                entity_type="booking",
                entity_id=booking.id,
                action_type=ActionType.BOOKING_DELAYED,
                description=f"{booking.customer_name} verspätet sich um {delay_minutes} Min.",
                old_value=str(old_delay),
                new_value=str(delay_minutes),
                timestamp=now,
            )
            refresh_table_status(db, table, now, TableEvent.RECONCILED)
            db.commit()
        except Exception:
            db.rollback()
            raise

        booking = load_booking(db, booking_id)
        event_bus.publish(EventTopic.BOOKING_UPDATED, booking_event_data(booking))
        publish_table(table)

    return booking


def dismiss_alert(db: Session, alert_id: str, now: datetime) -> Notification:
    alert = db.query(Notification).filter(
        Notification.id == alert_id,
        Notification.dismissed_at.is_(None)
    ).first()
    if not alert:
        raise NotFoundError("Hinweis nicht gefunden")
    alert.dismissed_at = now
    db.commit()
    db.refresh(alert)
    return alert
import logging
from datetime import date, datetime, time
from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload

from tischplan.database import get_db
from tischplan.models.booking import Booking, BookingStatus
from tischplan.routers.tables import build_table_response
from tischplan.schemas.booking import (
    BookingCreate,
    BookingCreateResponse,
    BookingOverride,
    BookingReassign,
    BookingResponse,
    SyncSummaryResponse,
)
from tischplan.schemas.table import AvailableTablesResponse
from tischplan.schemas.waiting_list import BookingOverrideResponse
from tischplan.services import booking_service
from tischplan.services.booking_service import get_table_or_404
from tischplan.services.table_state import sync_table_statuses
from tischplan.services.waiting_list_service import find_available_tables
from tischplan.utils.timeutils import get_now

logger = logging.getLogger("tischplan.routers.bookings")

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("/", response_model=BookingCreateResponse)
def create_booking(
    booking: BookingCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """
    Neue Buchung anlegen.
    - Konflikt ohne confirm_auto_schedule: 409 mit Vorschlag und geschätzter Wartezeit
    - Konflikt mit confirm_auto_schedule: Buchung zum vorgeschlagenen Zeitpunkt
    """
    new_booking, auto_scheduled = booking_service.create_booking(db, booking, now)
    return {"booking": new_booking, "auto_scheduled": auto_scheduled}


@router.post("/override", response_model=BookingOverrideResponse)
def override_booking(
    booking: BookingOverride,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """
    Bestehende Buchung verdrängen: sie wird storniert und mit erhöhter
    Priorität auf die Warteliste gesetzt.
    """
    new_booking, entry = booking_service.override_booking(db, booking, now)
    return {"booking": new_booking, "waiting_entry": entry}


@router.get("/", response_model=list[BookingResponse])
def get_bookings(
    status: Optional[BookingStatus] = None,
    table_id: Optional[UUID] = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db)
):
    query = db.query(Booking).options(joinedload(Booking.table))

    if status:
        query = query.filter(Booking.status == status)
    if table_id:
        query = query.filter(Booking.table_id == table_id)

    return query.order_by(Booking.booking_time).offset(skip).limit(limit).all()


@router.get("/by-date", response_model=list[BookingResponse])
def get_bookings_by_date(
    date: date,
    db: Session = Depends(get_db)
):
    """Alle Buchungen eines lokalen Kalendertags."""
    return booking_service.bookings_by_date(db, date)


@router.get("/available", response_model=AvailableTablesResponse)
def get_available_tables(
    people_count: int = Query(ge=1),
    booking_date: Optional[date] = None,
    booking_time_slot: Optional[time] = None,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """
    Freie Tische mit genug Plätzen, sortiert nach Plätzen.
    Ohne Datum/Uhrzeit gilt der aktuelle Status.
    """
    result = find_available_tables(db, people_count, now, booking_date, booking_time_slot)
    result["tables"] = [build_table_response(db, t, now, view) for t, view in result["tables"]]
    return result


@router.get("/table/{table_id}/upcoming", response_model=list[BookingResponse])
def get_upcoming_for_table(
    table_id: UUID,
    booking_date: Optional[date] = None,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    get_table_or_404(db, table_id)
    return booking_service.upcoming_for_table(db, table_id, now, booking_date)


@router.post("/sync-statuses", response_model=SyncSummaryResponse)
def sync_statuses(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """Tischstatus aus den Buchungen neu berechnen und Abweichungen korrigieren."""
    return sync_table_statuses(db, now)


@router.put("/{id}/cancel", response_model=BookingResponse)
def cancel_booking(
    id: UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    return booking_service.cancel_booking(db, id, now)


@router.put("/{id}/complete", response_model=BookingResponse)
def complete_booking(
    id: UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    return booking_service.complete_booking(db, id, now)


@router.put("/{id}/reassign", response_model=BookingResponse)
def reassign_booking(
    id: UUID,
    reassign: BookingReassign,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    return booking_service.reassign_table(db, id, reassign.new_table_id, now)

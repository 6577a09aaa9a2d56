import logging
from datetime import date, datetime, time
from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tischplan.database import get_db
from tischplan.exceptions import NotFoundError, ValidationError
from tischplan.models.floor import Floor
from tischplan.models.table import Table, TableStatus, table_number_key
from tischplan.schemas.booking import BookingResponse
from tischplan.schemas.table import (
    TableAvailabilityUpdate,
    TableCreate,
    TableResponse,
    TableStatusAtResponse,
    TableStatusUpdate,
)
from tischplan.services import booking_service
from tischplan.services.booking_service import get_table_or_404, publish_table
from tischplan.services.conflict_service import load_active_bookings
from tischplan.services.table_locks import table_locks
from tischplan.services.table_state import table_view
from tischplan.services.waiting_list_service import statuses_at
from tischplan.utils.timeutils import get_now, local_to_utc

logger = logging.getLogger("tischplan.routers.tables")

router = APIRouter(prefix="/tables", tags=["tables"])


def build_table_response(db: Session, table: Table, now: datetime, view: Optional[dict] = None) -> TableResponse:
    """Gespeicherte Felder plus die beim Lesen berechneten."""
    if view is None:
        view = table_view(table, load_active_bookings(db, table.id), now)
    return TableResponse.model_validate(table).model_copy(update=view)


@router.post("/", response_model=TableResponse)
def create_table(
    table: TableCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    floor = db.query(Floor).filter(Floor.id == table.floor_id).first()
    if not floor:
        raise NotFoundError("Etage nicht gefunden")

    existing = db.query(Table).filter(
        Table.floor_id == table.floor_id,
        Table.number == table.number
    ).first()
    if existing:
        raise ValidationError(f"Tisch {table.number} existiert auf dieser Etage bereits")

    new_table = Table(**table.model_dump(), status=TableStatus.AVAILABLE, created_at=now)
    db.add(new_table)
    db.commit()
    db.refresh(new_table)

    publish_table(new_table)
    logger.info(f"Tisch {new_table.number} auf Etage {floor.name} angelegt")
    return build_table_response(db, new_table, now)


@router.get("/floor/{floor_id}", response_model=list[TableResponse])
def get_tables_by_floor(
    floor_id: UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    floor = db.query(Floor).filter(Floor.id == floor_id).first()
    if not floor:
        raise NotFoundError("Etage nicht gefunden")

    tables = sorted(
        db.query(Table).filter(Table.floor_id == floor_id).all(),
        key=lambda t: table_number_key(t.number)
    )
    return [build_table_response(db, t, now) for t in tables]


@router.get("/statuses-for-datetime", response_model=list[TableStatusAtResponse])
def get_statuses_for_datetime(
    booking_date: date,
    booking_time_slot: time,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """
    Status aller Tische zu einem Zeitpunkt (Ortszeit), z.B. für die
    Planung einer Vorbestellung.
    """
    return statuses_at(db, local_to_utc(booking_date, booking_time_slot), now)


@router.get("/{id}", response_model=TableResponse)
def get_table(
    id: UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    return build_table_response(db, get_table_or_404(db, id), now)


@router.get("/{id}/booking", response_model=Optional[BookingResponse])
def get_current_booking(
    id: UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """Laufende Buchung des Tisches, sonst die nächste. null, wenn keine."""
    table = get_table_or_404(db, id)
    return booking_service.current_booking_for_table(db, table, now)


@router.get("/{id}/bookings/all", response_model=list[BookingResponse])
def get_all_bookings_for_table(
    id: UUID,
    booking_date: Optional[date] = Query(default=None),
    db: Session = Depends(get_db)
):
    get_table_or_404(db, id)
    return booking_service.bookings_for_table(db, id, booking_date)


@router.put("/{id}/status", response_model=TableResponse)
def update_table_status(
    id: UUID,
    status_update: TableStatusUpdate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """
    Statuswechsel durch das Personal.
    - OCCUPIED mit anstehender Buchung: Gast wird platziert
    - sonst: manueller Override, der Abgleich repariert ihn nach Ablauf
    """
    table = booking_service.update_table_status(db, id, status_update.status, now)
    return build_table_response(db, table, now)


@router.put("/{id}/availability", response_model=TableResponse)
def update_table_availability(
    id: UUID,
    availability: TableAvailabilityUpdate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """Vom Personal geschätzte Minuten, bis der Tisch frei wird (null löscht)."""
    get_table_or_404(db, id)
    with table_locks.hold(id):
        db.expire_all()
        table = get_table_or_404(db, id)
        table.available_in_minutes = availability.available_in_minutes
        table.updated_at = now
        db.commit()
        db.refresh(table)
        publish_table(table)
    return build_table_response(db, table, now)

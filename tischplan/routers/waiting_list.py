import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from tischplan.database import get_db
from tischplan.models.waiting_list import WaitingListEntry, WaitingStatus
from tischplan.schemas.waiting_list import (
    AssignRequest,
    AssignResponse,
    CheckConflictRequest,
    ConflictCheckResponse,
    WaitingListCreate,
    WaitingListResponse,
)
from tischplan.services import waiting_list_service
from tischplan.services.email_service import send_waiting_list_email, smtp_configured
from tischplan.utils.timeutils import get_now

logger = logging.getLogger("tischplan.routers.waiting_list")

router = APIRouter(prefix="/waitinglist", tags=["waitinglist"])


def to_response(entry: WaitingListEntry, now: datetime) -> WaitingListResponse:
    response = WaitingListResponse.model_validate(entry)
    if entry.status in (WaitingStatus.WAITING, WaitingStatus.NOTIFIED):
        response.waiting_minutes = waiting_list_service.waiting_minutes(entry, now)
    return response


@router.post("/", response_model=WaitingListResponse)
def add_to_waiting_list(
    entry: WaitingListCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """
    Gast auf die Warteliste setzen.
    Ohne Angabe wird die Wartezeit über alle passenden Tische geschätzt.
    """
    return to_response(waiting_list_service.enqueue(db, entry, now), now)


@router.get("/", response_model=list[WaitingListResponse])
def get_waiting_list(
    include_closed: bool = False,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """Sortiert nach Priorität (absteigend), dann Ankunft."""
    entries = waiting_list_service.list_entries(db, include_closed)
    return [to_response(e, now) for e in entries]


@router.post("/{id}/check-conflict", response_model=ConflictCheckResponse)
def check_conflict(
    id: UUID,
    request: CheckConflictRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    return waiting_list_service.check_assign_conflict(db, id, request, now)


@router.post("/{id}/assign", response_model=AssignResponse)
def assign_table(
    id: UUID,
    request: AssignRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """
    Eintrag einem Tisch zuweisen.
    - Konflikt ohne auto_schedule: 409 mit Vorschlag
    - mit auto_schedule: Buchung zum (erneut geprüften) Vorschlag
    """
    booking, auto_scheduled, entry = waiting_list_service.assign(db, id, request, now)
    return {"booking": booking, "auto_scheduled": auto_scheduled, "entry": to_response(entry, now)}


@router.put("/{id}/notify", response_model=WaitingListResponse)
def notify_customer(
    id: UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """Gast benachrichtigen, mit Email sofern Adresse und SMTP vorhanden."""
    entry = waiting_list_service.notify(db, id, now)

    if entry.email and smtp_configured():
        background_tasks.add_task(
            send_waiting_list_email,
            to_email=entry.email,
            customer_name=entry.customer_name,
            people_count=entry.people_count,
            available_at=waiting_list_service.entry_start(entry, now),
        )
    elif entry.email:
        logger.info(f"SMTP nicht konfiguriert, Email an {entry.email} übersprungen")

    return to_response(entry, now)


@router.put("/{id}/cancel", response_model=WaitingListResponse)
def cancel_entry(
    id: UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    return to_response(waiting_list_service.cancel(db, id, now), now)

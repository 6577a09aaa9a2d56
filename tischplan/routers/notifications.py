from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tischplan.database import get_db
from tischplan.schemas.booking import BookingResponse
from tischplan.schemas.notification import (
    DelayRequest,
    NotificationResponse,
    PendingNotificationsResponse,
    SweepResponse,
)
from tischplan.services import notification_service
from tischplan.utils.timeutils import get_now

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/pending", response_model=PendingNotificationsResponse)
def get_pending(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    return notification_service.pending(db, now)


@router.post("/sweep", response_model=SweepResponse)
def run_sweep(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """Erinnerungen sofort prüfen (läuft sonst periodisch im Hintergrund)."""
    return notification_service.sweep(db, now)


@router.put("/alerts/{alert_id}/dismiss", response_model=NotificationResponse)
def dismiss_alert(
    alert_id: str,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    return notification_service.dismiss_alert(db, alert_id, now)


@router.put("/{id}/confirm", response_model=BookingResponse)
def confirm_booking(
    id: UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    return notification_service.confirm_booking(db, id, now)


@router.put("/{id}/delay", response_model=BookingResponse)
def mark_client_delayed(
    id: UUID,
    delay: DelayRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """Gast verspätet sich: Fenster wird verschoben, bei Überschneidung 409."""
    return notification_service.mark_client_delayed(db, id, delay.delay_minutes, now)

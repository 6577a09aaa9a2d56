from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tischplan.database import get_db
from tischplan.models.activity_log import ActionType
from tischplan.schemas.activity import ActivityResponse
from tischplan.services.activity_service import list_activities
from tischplan.services.booking_service import get_table_or_404

router = APIRouter(prefix="/activities", tags=["activities"])


@router.get("/", response_model=list[ActivityResponse])
def get_activities(
    db: Session = Depends(get_db),
    entity_type: Optional[str] = Query(default=None),
    action_type: Optional[ActionType] = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100)
):
    """Protokoll über alle Tische, Buchungen und Wartelisteneinträge."""
    return list_activities(db, entity_type=entity_type, action_type=action_type, skip=skip, limit=limit)


@router.get("/table/{id}", response_model=list[ActivityResponse])
def get_table_activities(
    id: UUID,
    db: Session = Depends(get_db)
):
    """Statusverlauf eines Tisches inklusive manueller Overrides und abgelehnter Übergänge."""
    get_table_or_404(db, id)
    return list_activities(db, entity_type="table", entity_id=id)

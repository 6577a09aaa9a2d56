import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, joinedload

from tischplan.database import get_db
from tischplan.exceptions import ValidationError
from tischplan.models.floor import Floor
from tischplan.models.table import table_number_key
from tischplan.routers.tables import build_table_response
from tischplan.schemas.floor import FloorCreate, FloorResponse, FloorWithTablesResponse
from tischplan.services.event_bus import EventTopic, event_bus
from tischplan.utils.timeutils import get_now

logger = logging.getLogger("tischplan.routers.floors")

router = APIRouter(prefix="/floors", tags=["floors"])


@router.get("/", response_model=list[FloorResponse])
def get_floors(db: Session = Depends(get_db)):
    return db.query(Floor).order_by(Floor.floor_number).all()


@router.get("/with-tables", response_model=list[FloorWithTablesResponse])
def get_floors_with_tables(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    floors = db.query(Floor).options(
        joinedload(Floor.tables)
    ).order_by(Floor.floor_number).all()

    result = []
    for floor in floors:
        tables = sorted(floor.tables, key=lambda t: table_number_key(t.number))
        result.append(FloorWithTablesResponse(
            id=floor.id,
            name=floor.name,
            floor_number=floor.floor_number,
            created_at=floor.created_at,
            tables=[build_table_response(db, t, now) for t in tables],
        ))
    return result


@router.post("/", response_model=FloorResponse)
def create_floor(
    floor: FloorCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    existing = db.query(Floor).filter(Floor.floor_number == floor.floor_number).first()
    if existing:
        raise ValidationError(f"Etage {floor.floor_number} existiert bereits")

    new_floor = Floor(**floor.model_dump(), created_at=now)
    db.add(new_floor)
    db.commit()
    db.refresh(new_floor)

    event_bus.publish(EventTopic.FLOOR_CREATED, {
        "floor_id": str(new_floor.id),
        "name": new_floor.name,
        "floor_number": new_floor.floor_number,
    })
    logger.info(f"Etage {new_floor.name} angelegt")
    return new_floor

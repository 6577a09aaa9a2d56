import uuid
import enum
import re
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from tischplan.database import Base


class TableSize(enum.Enum):
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"


# Nennkapazität je Größe (LARGE = 6+)
SIZE_CAPACITY = {
    TableSize.SMALL: 2,
    TableSize.MEDIUM: 4,
    TableSize.LARGE: 6,
}


def recommended_size(people_count: int) -> TableSize:
    """Kleinste Tischgröße, deren Nennkapazität reicht."""
    for size in (TableSize.SMALL, TableSize.MEDIUM):
        if people_count <= SIZE_CAPACITY[size]:
            return size
    return TableSize.LARGE


def table_number_key(number: str) -> tuple:
    """Sortierschlüssel für Tischnummern: "2" vor "10", "A2" vor "A10"."""
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part.lower())
        for part in re.split(r"(\d+)", number) if part
    )


class TableStatus(enum.Enum):
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    OCCUPIED = "OCCUPIED"


class Table(Base):
    """
    Tisch auf einer Etage.
    status wird ausschließlich über services.table_state.transition() geschrieben.
    """
    __tablename__ = "tables"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    number = Column(String, nullable=False)
    size = Column(Enum(TableSize), nullable=False)
    seats = Column(Integer, nullable=False)
    status = Column(Enum(TableStatus), nullable=False, default=TableStatus.AVAILABLE)
    occupied_since = Column(DateTime, nullable=True)
    available_in_minutes = Column(Integer, nullable=True)
    # Marker für manuelles Überschreiben durch das Personal
    status_overridden_until = Column(DateTime, nullable=True)
    floor_id = Column(Uuid(as_uuid=True), ForeignKey("floors.id"), nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None))
    updated_at = Column(DateTime, nullable=True)

    floor = relationship("Floor", back_populates="tables")
    bookings = relationship("Booking", back_populates="table")

    __table_args__ = (
        UniqueConstraint('floor_id', 'number', name='uq_floor_table_number'),
    )

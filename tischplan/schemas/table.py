from uuid import UUID
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from tischplan.models.table import TableSize, TableStatus


class TableCreate(BaseModel):
    number: str
    size: TableSize
    seats: int = Field(ge=1)
    floor_id: UUID

    @field_validator('number')
    @classmethod
    def number_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Tischnummer darf nicht leer sein')
        return v


class TableStatusUpdate(BaseModel):
    status: TableStatus


class TableAvailabilityUpdate(BaseModel):
    available_in_minutes: Optional[int] = Field(default=None, ge=0)


class TableResponse(BaseModel):
    id: UUID
    number: str
    size: TableSize
    seats: int
    status: TableStatus
    floor_id: UUID
    occupied_since: Optional[datetime]
    available_in_minutes: Optional[int]
    status_overridden_until: Optional[datetime]

    # Beim Lesen berechnet
    computed_status: Optional[TableStatus] = None
    override_active: bool = False
    occupied_minutes: Optional[int] = None
    current_booking_id: Optional[UUID] = None
    time_remaining_minutes: Optional[int] = None
    upcoming_booking_id: Optional[UUID] = None
    upcoming_booking_start: Optional[datetime] = None
    minutes_until_upcoming: Optional[int] = None

    model_config = {"from_attributes": True}


class TableStatusAtResponse(BaseModel):
    table_id: UUID
    number: str
    floor_id: UUID
    seats: int
    status: TableStatus


class AvailableTablesResponse(BaseModel):
    people_count: int
    at: datetime
    tables: list[TableResponse]
    recommended_size: TableSize
    recommended_size_available: bool

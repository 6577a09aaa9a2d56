from uuid import UUID
from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from tischplan.config import settings
from tischplan.models.booking import BookingType
from tischplan.models.table import TableSize
from tischplan.models.waiting_list import WaitingStatus
from tischplan.schemas.booking import BookingResponse, validate_duration, validate_not_blank


class WaitingListCreate(BaseModel):
    customer_name: str
    mobile: str
    email: Optional[str] = None
    people_count: int = Field(ge=1)
    preferred_table_size: Optional[TableSize] = None
    booking_type: BookingType = BookingType.WALK_IN
    booking_date: Optional[date] = None
    booking_time_slot: Optional[time] = None
    estimated_wait_minutes: Optional[int] = Field(default=None, ge=0)
    priority: Optional[int] = Field(default=None, ge=0)

    @field_validator('customer_name', 'mobile')
    @classmethod
    def not_blank(cls, v):
        return validate_not_blank(v)

    @model_validator(mode='after')
    def slot_complete(self):
        if (self.booking_date is None) != (self.booking_time_slot is None):
            raise ValueError('booking_date und booking_time_slot nur gemeinsam angeben')
        return self


class WaitingListResponse(BaseModel):
    id: UUID
    customer_name: str
    mobile: str
    email: Optional[str]
    people_count: int
    preferred_table_size: TableSize
    booking_type: BookingType
    booking_date: Optional[date]
    booking_time_slot: Optional[time]
    priority: int
    status: WaitingStatus
    estimated_wait_minutes: Optional[int]
    notified_at: Optional[datetime]
    assigned_booking_id: Optional[UUID]
    created_at: datetime

    # Beim Lesen berechnet
    waiting_minutes: Optional[int] = None

    model_config = {"from_attributes": True}


class CheckConflictRequest(BaseModel):
    table_id: UUID
    duration_minutes: int = Field(default_factory=lambda: settings.default_duration_minutes)

    @field_validator('duration_minutes')
    @classmethod
    def duration_in_steps(cls, v):
        return validate_duration(v)


class AssignRequest(CheckConflictRequest):
    auto_schedule: bool = False
    suggested_time: Optional[datetime] = None


class ConflictCheckResponse(BaseModel):
    has_conflict: bool
    conflict: Optional[dict] = None
    conflicts: list[dict] = []
    suggested_time: Optional[datetime] = None
    estimated_wait_time: Optional[dict] = None


class AssignResponse(BaseModel):
    booking: BookingResponse
    auto_scheduled: bool
    entry: WaitingListResponse


class BookingOverrideResponse(BaseModel):
    booking: BookingResponse
    waiting_entry: WaitingListResponse

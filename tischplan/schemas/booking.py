from uuid import UUID
from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from tischplan.config import settings
from tischplan.models.booking import BookingStatus, BookingType, ConfirmationStatus


def validate_duration(value: int) -> int:
    """Mindestdauer und Raster aus der Konfiguration (Standard: 15 Minuten)."""
    if value < settings.min_duration_minutes:
        raise ValueError(f'Dauer muss mindestens {settings.min_duration_minutes} Minuten betragen')
    if value % settings.duration_step_minutes != 0:
        raise ValueError(f'Dauer muss ein Vielfaches von {settings.duration_step_minutes} Minuten sein')
    return value


def validate_not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError('Feld darf nicht leer sein')
    return value


class BookingCreate(BaseModel):
    table_id: UUID
    customer_name: str
    mobile: str
    email: Optional[str] = None
    people_count: int = Field(ge=1)
    booking_time: Optional[datetime] = None
    booking_date: Optional[date] = None
    booking_time_slot: Optional[time] = None
    booking_type: BookingType = BookingType.WALK_IN
    duration_minutes: int = Field(default_factory=lambda: settings.default_duration_minutes)
    priority: int = Field(default=0, ge=0)
    confirm_auto_schedule: bool = False

    @field_validator('customer_name', 'mobile')
    @classmethod
    def not_blank(cls, v):
        return validate_not_blank(v)

    @field_validator('duration_minutes')
    @classmethod
    def duration_in_steps(cls, v):
        return validate_duration(v)

    @model_validator(mode='after')
    def time_fields_complete(self):
        if (self.booking_date is None) != (self.booking_time_slot is None):
            raise ValueError('booking_date und booking_time_slot nur gemeinsam angeben')
        if self.booking_type == BookingType.PRE_BOOKING:
            if self.booking_time is None and self.booking_date is None:
                raise ValueError('Vorbestellung braucht booking_time oder booking_date + booking_time_slot')
        return self


class BookingOverride(BookingCreate):
    conflicting_booking_id: UUID


class BookingReassign(BaseModel):
    new_table_id: UUID


class TableInfo(BaseModel):
    id: UUID
    number: str
    seats: int

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: UUID
    table_id: UUID
    table: Optional[TableInfo] = None
    customer_name: str
    mobile: str
    email: Optional[str]
    people_count: int
    booking_time: datetime
    booking_date: Optional[date]
    booking_time_slot: Optional[time]
    duration_minutes: int
    booking_type: BookingType
    status: BookingStatus
    confirmation_status: ConfirmationStatus
    confirmed_at: Optional[datetime]
    delay_minutes: int
    priority: int
    auto_scheduled: bool
    waiting_entry_id: Optional[UUID]
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingCreateResponse(BaseModel):
    booking: BookingResponse
    auto_scheduled: bool


class SyncSummaryResponse(BaseModel):
    checked: int
    updated: int
    overrides_kept: int
    overrides_expired: int
    changes: list[dict]

from uuid import UUID
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from tischplan.models.notification import NotificationType
from tischplan.schemas.booking import BookingResponse


class NotificationResponse(BaseModel):
    id: str
    type: NotificationType
    booking_id: Optional[UUID]
    waiting_entry_id: Optional[UUID]
    minutes_before: Optional[int]
    message: str
    created_at: datetime
    dismissed_at: Optional[datetime]

    model_config = {"from_attributes": True}


class DelayRequest(BaseModel):
    delay_minutes: int = Field(ge=0, le=240)


class PendingNotificationsResponse(BaseModel):
    bookings: list[BookingResponse]
    alerts: list[NotificationResponse]


class SweepResponse(BaseModel):
    upcoming: int
    long_waiting: int
    alerts: list[NotificationResponse]

import uuid
import enum

from sqlalchemy import Column, DateTime, Enum, JSON, Text, String, Uuid
from datetime import datetime, timezone

from tischplan.database import Base

class ActionType(enum.Enum):
    TABLE_STATUS_CHANGED = "TABLE STATUS CHANGED"
    TABLE_STATUS_OVERRIDDEN = "TABLE STATUS OVERRIDDEN"
    TABLE_TRANSITION_REJECTED = "TABLE TRANSITION REJECTED"
    TABLE_RECONCILED = "TABLE RECONCILED"
    BOOKING_CREATED = "BOOKING CREATED"
    BOOKING_AUTO_SCHEDULED = "BOOKING AUTO SCHEDULED"
    BOOKING_CANCELLED = "BOOKING CANCELLED"
    BOOKING_COMPLETED = "BOOKING COMPLETED"
    BOOKING_REASSIGNED = "BOOKING REASSIGNED"
    BOOKING_OVERRIDDEN = "BOOKING OVERRIDDEN"
    BOOKING_SEATED = "BOOKING SEATED"
    BOOKING_CONFIRMED = "BOOKING CONFIRMED"
    BOOKING_DELAYED = "BOOKING DELAYED"
    WAITING_ADDED = "WAITING ADDED"
    WAITING_NOTIFIED = "WAITING NOTIFIED"
    WAITING_ASSIGNED = "WAITING ASSIGNED"
    WAITING_CANCELLED = "WAITING CANCELLED"


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_type = Column(String, nullable=False)
    entity_id = Column(Uuid(as_uuid=True), nullable=False)
    timestamp = Column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None))
    action_type = Column(Enum(ActionType), nullable=False)
    description = Column(Text, nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)

import uuid
import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, Enum, Integer, String, Time, Uuid

from tischplan.database import Base
from tischplan.models.booking import BookingType
from tischplan.models.table import TableSize


class WaitingStatus(enum.Enum):
    WAITING = "WAITING"
    NOTIFIED = "NOTIFIED"
    ASSIGNED = "ASSIGNED"
    CANCELLED = "CANCELLED"


OPEN_WAITING_STATUSES = (WaitingStatus.WAITING, WaitingStatus.NOTIFIED)


class WaitingListEntry(Base):
    """Gäste ohne Tisch, sortiert nach Priorität und Ankunft."""
    __tablename__ = "waiting_list"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_name = Column(String, nullable=False)
    mobile = Column(String, nullable=False)
    email = Column(String, nullable=True)
    people_count = Column(Integer, nullable=False)
    preferred_table_size = Column(Enum(TableSize), nullable=False)
    booking_type = Column(Enum(BookingType), nullable=False, default=BookingType.WALK_IN)
    booking_date = Column(Date, nullable=True)
    booking_time_slot = Column(Time, nullable=True)
    priority = Column(Integer, nullable=False, default=0)
    status = Column(Enum(WaitingStatus), nullable=False, default=WaitingStatus.WAITING)
    estimated_wait_minutes = Column(Integer, nullable=True)
    notified_at = Column(DateTime, nullable=True)
    assigned_booking_id = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None))
    updated_at = Column(DateTime, nullable=True)

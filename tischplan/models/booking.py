import uuid
import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, Enum, ForeignKey, Integer, String, Time, Uuid
from sqlalchemy.orm import relationship

from tischplan.database import Base


class BookingType(enum.Enum):
    WALK_IN = "WALK_IN"
    PRE_BOOKING = "PRE_BOOKING"


class BookingStatus(enum.Enum):
    BOOKED = "BOOKED"
    CONFIRMED = "CONFIRMED"     # Gast sitzt am Tisch
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ConfirmationStatus(enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CLIENT_DELAYED = "CLIENT_DELAYED"
    CANCELLED = "CANCELLED"


ACTIVE_BOOKING_STATUSES = (BookingStatus.BOOKED, BookingStatus.CONFIRMED)
TERMINAL_BOOKING_STATUSES = (BookingStatus.COMPLETED, BookingStatus.CANCELLED)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    table_id = Column(Uuid(as_uuid=True), ForeignKey("tables.id"), nullable=False)
    customer_name = Column(String, nullable=False)
    mobile = Column(String, nullable=False)
    email = Column(String, nullable=True)
    people_count = Column(Integer, nullable=False)
    booking_time = Column(DateTime, nullable=False)
    booking_date = Column(Date, nullable=True)
    booking_time_slot = Column(Time, nullable=True)
    duration_minutes = Column(Integer, nullable=False, default=60)
    booking_type = Column(Enum(BookingType), nullable=False, default=BookingType.WALK_IN)
    status = Column(Enum(BookingStatus), nullable=False, default=BookingStatus.BOOKED)
    confirmation_status = Column(Enum(ConfirmationStatus), nullable=False, default=ConfirmationStatus.PENDING)
    confirmed_at = Column(DateTime, nullable=True)
    delay_minutes = Column(Integer, nullable=False, default=0)
    priority = Column(Integer, nullable=False, default=0)
    auto_scheduled = Column(Boolean, nullable=False, default=False)
    waiting_entry_id = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None))
    updated_at = Column(DateTime, nullable=True)

    table = relationship("Table", back_populates="bookings")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

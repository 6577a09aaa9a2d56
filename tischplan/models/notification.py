import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, Integer, String, Text, Uuid

from tischplan.database import Base


class NotificationType(enum.Enum):
    UPCOMING_BOOKING = "UPCOMING_BOOKING"
    LONG_WAITING = "LONG_WAITING"


class Notification(Base):
    """
    Ausgelöster Hinweis. Die ID ist der deterministische Alarm-Schlüssel,
    dadurch wird jeder Hinweis genau einmal angelegt.
    """
    __tablename__ = "notifications"

    id = Column(String, primary_key=True)
    type = Column(Enum(NotificationType), nullable=False)
    booking_id = Column(Uuid(as_uuid=True), nullable=True)
    waiting_entry_id = Column(Uuid(as_uuid=True), nullable=True)
    minutes_before = Column(Integer, nullable=True)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None))
    dismissed_at = Column(DateTime, nullable=True)

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Uuid
from sqlalchemy.orm import relationship

from tischplan.database import Base


class Floor(Base):
    __tablename__ = "floors"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    floor_number = Column(Integer, nullable=False, unique=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None))
    updated_at = Column(DateTime, nullable=True)

    tables = relationship("Table", back_populates="floor")

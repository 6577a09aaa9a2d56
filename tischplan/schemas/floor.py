from uuid import UUID
from datetime import datetime

from pydantic import BaseModel, Field

from tischplan.schemas.table import TableResponse


class FloorCreate(BaseModel):
    name: str = Field(min_length=1)
    floor_number: int


class FloorResponse(BaseModel):
    id: UUID
    name: str
    floor_number: int
    created_at: datetime

    model_config = {"from_attributes": True}


class FloorWithTablesResponse(FloorResponse):
    tables: list[TableResponse]

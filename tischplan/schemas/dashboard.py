from uuid import UUID

from pydantic import BaseModel


class DashboardSummary(BaseModel):
    total_floors: int
    total_tables: int
    available_tables: int
    booked_tables: int
    occupied_tables: int
    today_booking_count: int
    total_guests_today: int
    waiting_count: int


class FloorStat(BaseModel):
    floor_id: UUID
    floor_name: str
    total_tables: int


class DashboardStatsResponse(BaseModel):
    summary: DashboardSummary
    floor_stats: list[FloorStat]
    size_stats: dict[str, int]

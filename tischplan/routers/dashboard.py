from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tischplan.database import get_db
from tischplan.models.booking import ACTIVE_BOOKING_STATUSES, Booking
from tischplan.models.floor import Floor
from tischplan.models.table import Table, TableSize, TableStatus
from tischplan.models.waiting_list import OPEN_WAITING_STATUSES, WaitingListEntry
from tischplan.schemas.dashboard import DashboardStatsResponse
from tischplan.services.conflict_service import load_active_bookings
from tischplan.services.table_state import computed_status
from tischplan.utils.timeutils import get_now, local_day_bounds, utc_to_local

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStatsResponse)
def get_dashboard_stats(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """
    Kennzahlen für die Übersicht. Der Tischstatus ist der berechnete,
    nicht der gespeicherte.
    """
    floors = db.query(Floor).order_by(Floor.floor_number).all()
    tables = db.query(Table).all()

    status_counts = {status: 0 for status in TableStatus}
    for table in tables:
        status_counts[computed_status(table, load_active_bookings(db, table.id), now)] += 1

    day_start, day_end = local_day_bounds(utc_to_local(now).date())
    today_bookings = db.query(Booking).filter(
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.booking_time >= day_start,
        Booking.booking_time <= day_end
    ).all()

    waiting_count = db.query(WaitingListEntry).filter(
        WaitingListEntry.status.in_(OPEN_WAITING_STATUSES)
    ).count()

    return {
        "summary": {
            "total_floors": len(floors),
            "total_tables": len(tables),
            "available_tables": status_counts[TableStatus.AVAILABLE],
            "booked_tables": status_counts[TableStatus.BOOKED],
            "occupied_tables": status_counts[TableStatus.OCCUPIED],
            "today_booking_count": len(today_bookings),
            "total_guests_today": sum(b.people_count for b in today_bookings),
            "waiting_count": waiting_count,
        },
        "floor_stats": [
            {
                "floor_id": floor.id,
                "floor_name": floor.name,
                "total_tables": sum(1 for t in tables if t.floor_id == floor.id),
            }
            for floor in floors
        ],
        "size_stats": {
            size.value: sum(1 for t in tables if t.size == size) for size in TableSize
        },
    }

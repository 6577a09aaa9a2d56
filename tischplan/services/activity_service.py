"""
Aktivitätsprotokoll: jede Statusänderung an Tischen, Buchungen und der
Warteliste wird als Eintrag festgehalten (nur anhängen, nie ändern).
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from tischplan.models.activity_log import ActivityLog, ActionType


def log_activity(
    db: Session,
    entity_type: str,
    entity_id: UUID,
    action_type: ActionType,
    description: str,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
    details: Optional[dict] = None,
    timestamp: Optional[datetime] = None
) -> ActivityLog:
    # Kein Commit hier: der Eintrag gehört zur Transaktion des Aufrufers
    entry = ActivityLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action_type=action_type,
        description=description,
        old_value=old_value,
        new_value=new_value,
        details=details
    )
    if timestamp is not None:
        entry.timestamp = timestamp
    db.add(entry)
    return entry


def list_activities(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id: Optional[UUID] = None,
    action_type: Optional[ActionType] = None,
    skip: int = 0,
    limit: Optional[int] = None
) -> list[ActivityLog]:
    """Neueste zuerst."""
    query = db.query(ActivityLog)
    if entity_type:
        query = query.filter(ActivityLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(ActivityLog.entity_id == entity_id)
    if action_type:
        query = query.filter(ActivityLog.action_type == action_type)

    query = query.order_by(ActivityLog.timestamp.desc()).offset(skip)
    if limit is not None:
        query = query.limit(limit)
    return query.all()

"""
Activity log service.
Append-only feed of what officers did to which record.
"""
from typing import Optional, List
from sqlalchemy.orm import Session

from ..models.models import Activity


def record_activity(
    db: Session,
    user_id: int,
    activity_type: str,
    description: str,
    entity_id: Optional[int] = None,
    entity_type: Optional[str] = None,
) -> Activity:
    """
    Create an activity entry.

    Args:
        db: Database session
        user_id: Officer who performed the action
        activity_type: create_job|status_change|update_location|assignment_status|...
        description: Human-readable summary
        entity_id: Affected record id
        entity_type: Affected record type (team_schedule|team|notification)

    Returns:
        Created Activity object
    """
    activity = Activity(
        user_id=user_id,
        activity_type=activity_type,
        description=description,
        entity_id=entity_id,
        entity_type=entity_type,
    )

    db.add(activity)
    db.commit()
    db.refresh(activity)

    return activity


def list_activities(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    limit: int = 100,
    offset: int = 0
) -> List[Activity]:
    """
    Get activities with optional filtering, newest first.

    Args:
        db: Database session
        entity_type: Filter by entity type
        entity_id: Filter by entity ID
        limit: Maximum number of results
        offset: Offset for pagination
    """
    query = db.query(Activity)

    if entity_type:
        query = query.filter(Activity.entity_type == entity_type)

    if entity_id is not None:
        query = query.filter(Activity.entity_id == entity_id)

    query = query.order_by(Activity.created_at.desc(), Activity.id.desc())
    query = query.limit(limit).offset(offset)

    return query.all()


"""
Notification records for the polling channel.
Users read these over REST; nothing here touches the live socket.
"""
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.models import Notification


PRIORITIES = ("low", "normal", "medium", "high", "urgent")


def create_notification(
    db: Session,
    user_id: int,
    title: str,
    message: str,
    notification_type: str,
    priority: str = "medium",
    entity_id: Optional[int] = None,
    entity_type: Optional[str] = None,
) -> Notification:
    """
    Create a notification record.

    Args:
        db: Database session
        user_id: Recipient
        title: Short heading
        message: Body text
        notification_type: job_assignment|team_job|job_dispatched|job_completed|job_cancelled|...
        priority: low|normal|medium|high|urgent
        entity_id: Related record id
        entity_type: Related record type (e.g. team_schedule)

    Returns:
        Created Notification object
    """
    if priority not in PRIORITIES:
        raise ValueError(f"Unknown priority: {priority}")

    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=notification_type,
        priority=priority,
        entity_id=entity_id,
        entity_type=entity_type,
        is_read=False,
    )

    db.add(notification)
    db.commit()
    db.refresh(notification)

    return notification


def list_notifications(db: Session, user_id: int, unread_only: bool = False, limit: int = 100) -> List[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    # newest first; id breaks ties between rows created in the same instant
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def count_unread(db: Session, user_id: int) -> int:
    return db.query(Notification).filter(Notification.user_id == user_id, Notification.is_read.is_(False)).count()


def mark_notification_as_read(db: Session, notification_id: int) -> Optional[Notification]:
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if not notification:
        return None
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


def delete_notification(db: Session, notification_id: int) -> bool:
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if not notification:
        return False
    db.delete(notification)
    db.commit()
    return True

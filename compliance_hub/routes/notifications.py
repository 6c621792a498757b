from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session
from typing import List

from ..db import get_db
from ..schemas.notifications import NotificationCreate, NotificationResponse, UnreadCount
from ..services import notifications as notification_service

router = APIRouter(tags=["notifications"])


@router.get("/users/{user_id}/notifications", response_model=List[NotificationResponse])
def list_notifications(user_id: int, limit: int = 100, db: Session = Depends(get_db)):
    """List a user's notifications, newest first."""
    return notification_service.list_notifications(db, user_id, limit=max(1, min(500, limit)))


@router.get("/users/{user_id}/notifications/unread", response_model=List[NotificationResponse])
def list_unread_notifications(user_id: int, limit: int = 100, db: Session = Depends(get_db)):
    return notification_service.list_notifications(db, user_id, unread_only=True, limit=max(1, min(500, limit)))


@router.get("/users/{user_id}/notifications/unread-count", response_model=UnreadCount)
def get_unread_count(user_id: int, db: Session = Depends(get_db)):
    return UnreadCount(total=notification_service.count_unread(db, user_id))


@router.post("/notifications", response_model=NotificationResponse, status_code=201)
def create_notification(payload: NotificationCreate, db: Session = Depends(get_db)):
    return notification_service.create_notification(
        db,
        user_id=payload.user_id,
        title=payload.title,
        message=payload.message,
        notification_type=payload.type,
        priority=payload.priority,
        entity_id=payload.entity_id,
        entity_type=payload.entity_type,
    )


@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_as_read(notification_id: int, db: Session = Depends(get_db)):
    notification = notification_service.mark_notification_as_read(db, notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


@router.delete("/notifications/{notification_id}", status_code=204)
def delete_notification(notification_id: int, db: Session = Depends(get_db)):
    if not notification_service.delete_notification(db, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return Response(status_code=204)

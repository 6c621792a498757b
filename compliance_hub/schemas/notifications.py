from datetime import datetime
from typing import Optional

from pydantic import Field

from .dispatch import ApiModel, Priority


class NotificationCreate(ApiModel):
    user_id: int
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: str = Field(default="info", min_length=1)
    priority: Priority = "medium"
    entity_id: Optional[int] = None
    entity_type: Optional[str] = None


class NotificationResponse(ApiModel):
    id: int
    user_id: int
    title: str
    message: str
    type: str
    priority: str
    entity_id: Optional[int] = None
    entity_type: Optional[str] = None
    is_read: bool
    created_at: datetime


class UnreadCount(ApiModel):
    total: int

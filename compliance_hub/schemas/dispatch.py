from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


Priority = Literal["low", "normal", "medium", "high", "urgent"]
AssignmentStatus = Literal["pending", "accepted", "declined"]


class UserCreate(ApiModel):
    username: str = Field(min_length=1)
    full_name: str = Field(min_length=1)
    email: Optional[str] = None
    phone_number: Optional[str] = None


class UserResponse(UserCreate):
    id: int
    created_at: datetime


class TeamCreate(ApiModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    created_by: Optional[int] = None


class TeamResponse(TeamCreate):
    id: int
    created_at: datetime


class TeamMemberCreate(ApiModel):
    user_id: int
    is_team_lead: bool = False


class TeamMemberResponse(ApiModel):
    team_id: int
    user_id: int
    is_team_lead: bool
    joined_at: datetime


class TeamScheduleCreate(ApiModel):
    team_id: int
    title: str = Field(min_length=1)
    description: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    status: str = "pending"
    priority: Priority = "medium"
    location: Optional[str] = None
    created_by: Optional[int] = None
    assigned_members: List[int] = Field(default_factory=list)


class TeamScheduleUpdate(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    status: Optional[str] = Field(default=None, min_length=1)
    priority: Optional[Priority] = None
    location: Optional[str] = None


class TeamScheduleResponse(ApiModel):
    id: int
    team_id: int
    title: str
    description: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    status: str
    priority: str
    location: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    assigned_members: List[int] = Field(default_factory=list)


class AssignmentStatusUpdate(ApiModel):
    status: AssignmentStatus
    notes: Optional[str] = None


class AssignmentResponse(ApiModel):
    id: int
    team_schedule_id: int
    user_id: int
    assignment_status: str
    notes: Optional[str] = None
    assigned_at: datetime
    updated_at: Optional[datetime] = None


class ActivityResponse(ApiModel):
    id: int
    user_id: int
    activity_type: str
    description: str
    entity_id: Optional[int] = None
    entity_type: Optional[str] = None
    created_at: datetime

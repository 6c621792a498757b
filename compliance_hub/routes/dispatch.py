"""
Dispatch API routes.
Handles teams, team jobs (team schedules) and member assignments.
Job creation and status changes fan out notifications and push a live update.
"""
from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from typing import List, Optional, Tuple
from datetime import datetime, timezone

from ..db import get_db
from ..config import settings
from ..models.models import Team, TeamMember, TeamSchedule, TeamScheduleAssignment, User
from ..schemas.dispatch import (
    AssignmentResponse,
    AssignmentStatusUpdate,
    TeamCreate,
    TeamMemberCreate,
    TeamMemberResponse,
    TeamResponse,
    TeamScheduleCreate,
    TeamScheduleResponse,
    TeamScheduleUpdate,
)
from ..services.audit import record_activity
from ..services.collab_hub import CollaborationHub, get_hub
from ..services.job_notifications import ENTITY_TYPE, JobNotifier, JobRef, get_job_notifier

router = APIRouter(tags=["dispatch"])

REQUIRED_FIELDS = ("title", "status", "priority")


def _get_team(db: Session, team_id: int) -> Team:
    team = db.query(Team).filter(Team.id == team_id).first()
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return team


def _get_schedule(db: Session, schedule_id: int) -> TeamSchedule:
    schedule = db.query(TeamSchedule).filter(TeamSchedule.id == schedule_id).first()
    if not schedule:
        raise HTTPException(status_code=404, detail="Schedule not found")
    return schedule


def _schedule_out(schedule: TeamSchedule) -> TeamScheduleResponse:
    out = TeamScheduleResponse.model_validate(schedule)
    out.assigned_members = [a.user_id for a in schedule.assignments]
    return out


def _require_users(db: Session, user_ids: List[int]) -> None:
    if not user_ids:
        return
    found = {row[0] for row in db.query(User.id).filter(User.id.in_(user_ids)).all()}
    missing = [uid for uid in user_ids if uid not in found]
    if missing:
        raise HTTPException(status_code=404, detail=f"User not found: {', '.join(str(uid) for uid in missing)}")


# =====================
# Teams
# =====================

@router.get("/teams", response_model=List[TeamResponse])
def list_teams(db: Session = Depends(get_db)):
    return db.query(Team).order_by(Team.id).all()


@router.post("/teams", response_model=TeamResponse, status_code=201)
def create_team(payload: TeamCreate, db: Session = Depends(get_db)):
    team = Team(**payload.model_dump())
    if team.created_by is None:
        team.created_by = settings.demo_user_id
    db.add(team)
    db.commit()
    db.refresh(team)
    return team


@router.get("/teams/{team_id}", response_model=TeamResponse)
def get_team(team_id: int, db: Session = Depends(get_db)):
    return _get_team(db, team_id)


@router.get("/teams/{team_id}/members", response_model=List[TeamMemberResponse])
def list_team_members(team_id: int, db: Session = Depends(get_db)):
    _get_team(db, team_id)
    return db.query(TeamMember).filter(TeamMember.team_id == team_id).order_by(TeamMember.joined_at, TeamMember.user_id).all()


@router.post("/teams/{team_id}/members", response_model=TeamMemberResponse, status_code=201)
def add_team_member(team_id: int, payload: TeamMemberCreate, db: Session = Depends(get_db)):
    _get_team(db, team_id)
    if not db.query(User).filter(User.id == payload.user_id).first():
        raise HTTPException(status_code=404, detail="User not found")
    member = db.query(TeamMember).filter(TeamMember.team_id == team_id, TeamMember.user_id == payload.user_id).first()
    if member:
        # re-adding only refreshes the lead flag
        member.is_team_lead = payload.is_team_lead
    else:
        member = TeamMember(team_id=team_id, user_id=payload.user_id, is_team_lead=payload.is_team_lead)
        db.add(member)
    db.commit()
    db.refresh(member)
    return member


@router.delete("/teams/{team_id}/members/{user_id}", status_code=204)
def remove_team_member(team_id: int, user_id: int, db: Session = Depends(get_db)):
    member = db.query(TeamMember).filter(TeamMember.team_id == team_id, TeamMember.user_id == user_id).first()
    if not member:
        raise HTTPException(status_code=404, detail="Team member not found")
    db.delete(member)
    db.commit()
    return Response(status_code=204)


@router.get("/teams/{team_id}/schedules", response_model=List[TeamScheduleResponse])
def list_team_schedules(team_id: int, db: Session = Depends(get_db)):
    _get_team(db, team_id)
    schedules = db.query(TeamSchedule).filter(TeamSchedule.team_id == team_id).order_by(TeamSchedule.id).all()
    return [_schedule_out(s) for s in schedules]


@router.get("/users/{user_id}/teams", response_model=List[TeamResponse])
def list_user_teams(user_id: int, db: Session = Depends(get_db)):
    return (
        db.query(Team)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .filter(TeamMember.user_id == user_id)
        .order_by(Team.id)
        .all()
    )


# =====================
# Jobs
# =====================

def _create_schedule(db: Session, payload: TeamScheduleCreate) -> Tuple[TeamScheduleResponse, List[int]]:
    _get_team(db, payload.team_id)
    assigned = list(dict.fromkeys(payload.assigned_members))
    _require_users(db, assigned)

    schedule = TeamSchedule(**payload.model_dump(exclude={"assigned_members"}))
    if schedule.created_by is None:
        schedule.created_by = settings.demo_user_id
    db.add(schedule)
    db.flush()
    for user_id in assigned:
        db.add(TeamScheduleAssignment(team_schedule_id=schedule.id, user_id=user_id))
    db.commit()
    db.refresh(schedule)
    return _schedule_out(schedule), assigned


def _update_schedule(
    db: Session, schedule_id: int, payload: TeamScheduleUpdate
) -> Tuple[TeamScheduleResponse, str, Optional[str]]:
    schedule = _get_schedule(db, schedule_id)
    changes = payload.model_dump(exclude_unset=True)
    for field in REQUIRED_FIELDS:
        if field in changes and changes[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} cannot be null")

    previous_status = schedule.status
    previous_location = schedule.location
    for field, value in changes.items():
        setattr(schedule, field, value)
    schedule.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(schedule)
    return _schedule_out(schedule), previous_status, previous_location


@router.post("/teamSchedules", response_model=TeamScheduleResponse, status_code=201)
async def create_team_schedule(
    payload: TeamScheduleCreate,
    db: Session = Depends(get_db),
    notifier: JobNotifier = Depends(get_job_notifier),
):
    """
    Create a job for a team.
    Explicitly assigned members get a personal assignment; the rest of the team is told about the job.
    """
    out, assigned = await run_in_threadpool(_create_schedule, db, payload)
    await notifier.job_created(JobRef.from_schedule(out), assigned, payload.priority, actor_id=out.created_by)
    return out


@router.get("/schedules", response_model=List[TeamScheduleResponse])
def list_schedules(status: Optional[str] = None, db: Session = Depends(get_db)):
    query = db.query(TeamSchedule)
    if status:
        query = query.filter(TeamSchedule.status == status)
    return [_schedule_out(s) for s in query.order_by(TeamSchedule.id).all()]


@router.get("/schedules/{schedule_id}", response_model=TeamScheduleResponse)
def get_schedule(schedule_id: int, db: Session = Depends(get_db)):
    return _schedule_out(_get_schedule(db, schedule_id))


@router.patch("/schedules/{schedule_id}", response_model=TeamScheduleResponse)
async def update_schedule(
    schedule_id: int,
    payload: TeamScheduleUpdate,
    db: Session = Depends(get_db),
    hub: CollaborationHub = Depends(get_hub),
    notifier: JobNotifier = Depends(get_job_notifier),
):
    """
    Update a job.
    The field update always happens; a status change additionally notifies the
    affected users and pushes a status_change frame to the job's live channel.
    """
    out, previous_status, previous_location = await run_in_threadpool(_update_schedule, db, schedule_id, payload)

    job = JobRef.from_schedule(out)
    if out.status != previous_status:
        await notifier.status_changed(job, previous_status, out.status)
        hub.publish(
            ENTITY_TYPE,
            out.id,
            "status_change",
            {"id": out.id, "title": out.title, "status": out.status, "previousStatus": previous_status},
            user_id=settings.demo_user_id,
        )
    if out.location != previous_location:
        await notifier.location_changed(job, previous_location, out.location)

    return out


@router.delete("/schedules/{schedule_id}", status_code=204)
def delete_schedule(schedule_id: int, db: Session = Depends(get_db)):
    schedule = _get_schedule(db, schedule_id)
    db.delete(schedule)
    db.commit()
    return Response(status_code=204)


# =====================
# Assignments
# =====================

@router.get("/users/{user_id}/assignments", response_model=List[AssignmentResponse])
def list_user_assignments(user_id: int, db: Session = Depends(get_db)):
    return (
        db.query(TeamScheduleAssignment)
        .filter(TeamScheduleAssignment.user_id == user_id)
        .order_by(TeamScheduleAssignment.id)
        .all()
    )


@router.patch("/assignments/{assignment_id}/status", response_model=AssignmentResponse)
def update_assignment_status(assignment_id: int, payload: AssignmentStatusUpdate, db: Session = Depends(get_db)):
    assignment = db.query(TeamScheduleAssignment).filter(TeamScheduleAssignment.id == assignment_id).first()
    if not assignment:
        raise HTTPException(status_code=404, detail="Assignment not found")

    assignment.assignment_status = payload.status
    if payload.notes:
        assignment.notes = payload.notes
    assignment.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(assignment)

    record_activity(
        db=db,
        user_id=assignment.user_id,
        activity_type="assignment_status",
        description=f"Assignment #{assignment.id} {payload.status}",
        entity_id=assignment.team_schedule_id,
        entity_type=ENTITY_TYPE,
    )
    return assignment

"""
Job notification fan-out.

Turns job lifecycle changes into one persisted notification per affected
user plus an activity entry. Every storage call runs in the threadpool with
its own session and a timeout, so one slow or failing recipient is logged and
skipped while the rest still get their notification.

A worker thread cannot be interrupted, so a timed-out call keeps running in the
background. Its session refuses to commit once the deadline has passed; only a
commit that had already started before the deadline can still land.
"""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

import structlog
from sqlalchemy import event
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.requests import HTTPConnection

from ..models.models import TeamMember, TeamScheduleAssignment
from .audit import record_activity
from .notifications import create_notification
from .recipients import (
    JOB_ASSIGNMENT,
    JOB_CANCELLED,
    JOB_COMPLETED,
    JOB_DISPATCHED,
    TEAM_JOB,
    Recipient,
    creation_recipients,
    transition_recipients,
)


logger = structlog.get_logger(__name__)

ENTITY_TYPE = "team_schedule"

TEMPLATES = {
    JOB_ASSIGNMENT: ("New Job Assignment", 'You have been assigned to "{title}"{where}'),
    TEAM_JOB: ("New Team Job", 'A new job "{title}" has been created for your team{where}'),
    JOB_DISPATCHED: ("Job Dispatched", '"{title}" has been dispatched{where}'),
    JOB_COMPLETED: ("Job Completed", '"{title}" has been marked as completed'),
    JOB_CANCELLED: ("Job Cancelled", '"{title}" has been cancelled'),
}


@dataclass(frozen=True)
class JobRef:
    """Detached view of a job, safe to hand to worker threads."""
    id: int
    team_id: int
    title: str
    location: Optional[str] = None

    @classmethod
    def from_schedule(cls, schedule) -> "JobRef":
        return cls(id=schedule.id, team_id=schedule.team_id, title=schedule.title, location=schedule.location)


@dataclass
class FanoutResult:
    notified: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    # deadline passed; the write was rolled back unless its commit had already begun
    timed_out: List[int] = field(default_factory=list)


class WriteAbandoned(Exception):
    """Raised inside a worker when a storage call tries to commit after its deadline."""


def team_member_ids(db: Session, team_id: int) -> List[int]:
    rows = db.query(TeamMember.user_id).filter(TeamMember.team_id == team_id).order_by(TeamMember.joined_at, TeamMember.user_id).all()
    return [r[0] for r in rows]


def assigned_user_ids(db: Session, team_schedule_id: int) -> List[int]:
    rows = (
        db.query(TeamScheduleAssignment.user_id)
        .filter(TeamScheduleAssignment.team_schedule_id == team_schedule_id)
        .order_by(TeamScheduleAssignment.id)
        .all()
    )
    return [r[0] for r in rows]


def render(notification_type: str, job: JobRef):
    title, template = TEMPLATES[notification_type]
    where = f" at {job.location}" if job.location else ""
    return title, template.format(title=job.title, where=where)


class JobNotifier:
    def __init__(self, session_factory: Callable[[], Session], timeout: float = 5.0, actor_id: int = 1) -> None:
        self.session_factory = session_factory
        self.timeout = timeout
        self.actor_id = actor_id

    async def job_created(
        self,
        job: JobRef,
        assigned_ids: Iterable[int],
        priority: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> FanoutResult:
        members = await self._lookup(team_member_ids, job.team_id, job=job)
        result = await self._deliver(job, creation_recipients(members, assigned_ids, priority))
        await self._activity(actor_id, "create_job", f'Job "{job.title}" created for team #{job.team_id}', job)
        return result

    async def status_changed(
        self,
        job: JobRef,
        previous_status: Optional[str],
        new_status: Optional[str],
        actor_id: Optional[int] = None,
    ) -> FanoutResult:
        if not new_status or new_status == previous_status:
            return FanoutResult()
        members = await self._lookup(team_member_ids, job.team_id, job=job)
        assigned = await self._lookup(assigned_user_ids, job.id, job=job)
        result = await self._deliver(job, transition_recipients(previous_status, new_status, members, assigned))
        await self._activity(
            actor_id,
            "status_change",
            f'Job "{job.title}" status changed from {previous_status} to {new_status}',
            job,
        )
        return result

    async def location_changed(
        self,
        job: JobRef,
        previous_location: Optional[str],
        new_location: Optional[str],
        actor_id: Optional[int] = None,
    ) -> None:
        if previous_location == new_location:
            return
        await self._activity(
            actor_id,
            "update_location",
            f'Job "{job.title}" location updated to {new_location or "unspecified"}',
            job,
        )

    async def _deliver(self, job: JobRef, recipients: List[Recipient]) -> FanoutResult:
        result = FanoutResult()
        for r in recipients:
            title, message = render(r.notification_type, job)
            try:
                await self._call(
                    create_notification,
                    user_id=r.user_id,
                    title=title,
                    message=message,
                    notification_type=r.notification_type,
                    priority=r.priority,
                    entity_id=job.id,
                    entity_type=ENTITY_TYPE,
                )
            except (asyncio.TimeoutError, WriteAbandoned):
                logger.warning("notification_create_timeout", user_id=r.user_id, job_id=job.id, notification_type=r.notification_type, timeout=self.timeout)
                result.timed_out.append(r.user_id)
                continue
            except Exception as e:
                logger.warning("notification_create_failed", user_id=r.user_id, job_id=job.id, notification_type=r.notification_type, error=str(e))
                result.failed.append(r.user_id)
                continue
            result.notified.append(r.user_id)
        logger.info(
            "job_fanout_done",
            job_id=job.id,
            notified=len(result.notified),
            failed=len(result.failed),
            timed_out=len(result.timed_out),
        )
        return result

    async def _lookup(self, fn, *args, job: JobRef) -> List[int]:
        try:
            return await self._call(fn, *args)
        except (asyncio.TimeoutError, WriteAbandoned):
            logger.warning("fanout_lookup_timeout", lookup=fn.__name__, job_id=job.id)
        except Exception as e:
            logger.warning("fanout_lookup_failed", lookup=fn.__name__, job_id=job.id, error=str(e))
        return []

    async def _activity(self, actor_id: Optional[int], activity_type: str, description: str, job: JobRef) -> None:
        try:
            await self._call(
                record_activity,
                user_id=actor_id if actor_id is not None else self.actor_id,
                activity_type=activity_type,
                description=description,
                entity_id=job.id,
                entity_type=ENTITY_TYPE,
            )
        except Exception as e:
            logger.warning("activity_write_failed", activity_type=activity_type, job_id=job.id, error=str(e))

    async def _call(self, fn, *args, **kwargs):
        deadline = time.monotonic() + self.timeout
        return await asyncio.wait_for(
            run_in_threadpool(self._in_session, deadline, fn, *args, **kwargs),
            timeout=self.timeout,
        )

    def _in_session(self, deadline: float, fn, *args, **kwargs):
        db = self.session_factory()

        def refuse_late_commit(session):
            if time.monotonic() > deadline:
                raise WriteAbandoned(fn.__name__)

        event.listen(db, "before_commit", refuse_late_commit)
        try:
            return fn(db, *args, **kwargs)
        finally:
            db.close()


def get_job_notifier(conn: HTTPConnection) -> JobNotifier:
    return conn.app.state.job_notifier

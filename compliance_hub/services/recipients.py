"""
Who hears about a job, and how loudly.

Pure functions over member and assignee ids so both the persisted
notification feed and the live channel can share the same rule.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional


JOB_ASSIGNMENT = "job_assignment"
TEAM_JOB = "team_job"
JOB_DISPATCHED = "job_dispatched"
JOB_COMPLETED = "job_completed"
JOB_CANCELLED = "job_cancelled"


@dataclass(frozen=True)
class Recipient:
    user_id: int
    notification_type: str
    priority: str


def _unique(ids: Iterable[int]) -> List[int]:
    seen = set()
    ordered = []
    for uid in ids:
        if uid in seen:
            continue
        seen.add(uid)
        ordered.append(uid)
    return ordered


def creation_recipients(team_member_ids: Iterable[int], assigned_ids: Iterable[int], priority: Optional[str] = None) -> List[Recipient]:
    """Assignees get a personal assignment; every other member hears about the team job once."""
    assigned = _unique(assigned_ids)
    recipients = [Recipient(uid, JOB_ASSIGNMENT, priority or "medium") for uid in assigned]
    team_priority = "high" if priority == "high" else "medium"
    direct = set(assigned)
    for uid in _unique(team_member_ids):
        if uid in direct:
            continue
        recipients.append(Recipient(uid, TEAM_JOB, team_priority))
    return recipients


def transition_recipients(
    previous_status: Optional[str],
    new_status: Optional[str],
    team_member_ids: Iterable[int],
    assigned_ids: Iterable[int],
) -> List[Recipient]:
    """
    Recipients for a status change. Unchanged or unrecognised transitions notify nobody.

    pending -> active: assignees (or the whole team when nobody was assigned), high
    * -> completed / cancelled: the whole team, medium
    """
    if not new_status or new_status == previous_status:
        return []

    members = _unique(team_member_ids)
    if previous_status == "pending" and new_status == "active":
        targets = _unique(assigned_ids) or members
        return [Recipient(uid, JOB_DISPATCHED, "high") for uid in targets]
    if new_status == "completed":
        return [Recipient(uid, JOB_COMPLETED, "medium") for uid in members]
    if new_status == "cancelled":
        return [Recipient(uid, JOB_CANCELLED, "medium") for uid in members]
    return []

import asyncio
import time

import pytest

from compliance_hub.db import SessionLocal
from compliance_hub.models.models import Activity, Notification, TeamMember, User
from compliance_hub.services import job_notifications
from compliance_hub.services.job_notifications import JobNotifier, JobRef, render


def notifications_by_user(db):
    return {n.user_id: n for n in db.query(Notification).all()}


def test_render_includes_location_when_known():
    job = JobRef(id=1, team_id=1, title="Gate check", location="North gate")
    assert render("job_assignment", job) == ("New Job Assignment", 'You have been assigned to "Gate check" at North gate')
    assert render("job_completed", job) == ("Job Completed", '"Gate check" has been marked as completed')
    assert render("team_job", JobRef(id=1, team_id=1, title="Gate check"))[1] == 'A new job "Gate check" has been created for your team'


@pytest.mark.asyncio
async def test_job_created_notifies_assignees_and_team(seeded_team, db):
    m1, m2, m3 = seeded_team["member_ids"]
    notifier = JobNotifier(SessionLocal, timeout=5.0, actor_id=seeded_team["dispatcher_id"])
    job = JobRef(id=77, team_id=seeded_team["team_id"], title="Perimeter sweep")

    result = await notifier.job_created(job, [m1], priority="high")

    assert sorted(result.notified) == sorted([m1, m2, m3])
    assert result.failed == []
    rows = notifications_by_user(db)
    assert rows[m1].type == "job_assignment" and rows[m1].priority == "high"
    assert rows[m2].type == "team_job" and rows[m2].priority == "high"
    assert all(n.entity_id == 77 and n.entity_type == "team_schedule" for n in rows.values())

    activity = db.query(Activity).one()
    assert activity.activity_type == "create_job"
    assert activity.user_id == seeded_team["dispatcher_id"]


@pytest.mark.asyncio
async def test_one_failing_recipient_does_not_stop_the_rest(seeded_team, db, monkeypatch):
    extra = [User(username=f"reserve{i}", full_name=f"Reserve {i}") for i in (1, 2)]
    db.add_all(extra)
    db.flush()
    for user in extra:
        db.add(TeamMember(team_id=seeded_team["team_id"], user_id=user.id))
    db.commit()
    m1, m2, m3 = seeded_team["member_ids"]
    everyone = [m1, m2, m3] + [u.id for u in extra]
    real_create = job_notifications.create_notification

    def flaky_create(session, **kwargs):
        if kwargs["user_id"] == m3:
            raise RuntimeError("storage unavailable")
        return real_create(session, **kwargs)

    monkeypatch.setattr(job_notifications, "create_notification", flaky_create)
    notifier = JobNotifier(SessionLocal)
    job = JobRef(id=5, team_id=seeded_team["team_id"], title="Escort")

    result = await notifier.status_changed(job, "active", "completed")

    assert result.failed == [m3]
    assert sorted(result.notified) == sorted(u for u in everyone if u != m3)
    assert set(notifications_by_user(db)) == set(everyone) - {m3}
    assert db.query(Activity).filter(Activity.activity_type == "status_change").count() == 1


@pytest.mark.asyncio
async def test_unchanged_status_is_a_no_op(seeded_team, db):
    notifier = JobNotifier(SessionLocal)
    job = JobRef(id=5, team_id=seeded_team["team_id"], title="Escort")

    result = await notifier.status_changed(job, "active", "active")

    assert result.notified == [] and result.failed == []
    assert db.query(Notification).count() == 0
    assert db.query(Activity).count() == 0


@pytest.mark.asyncio
async def test_dispatch_without_assignees_reaches_whole_team(seeded_team, db):
    notifier = JobNotifier(SessionLocal)
    job = JobRef(id=9, team_id=seeded_team["team_id"], title="Patrol")

    result = await notifier.status_changed(job, "pending", "active")

    assert sorted(result.notified) == sorted(seeded_team["member_ids"])
    assert {n.type for n in db.query(Notification).all()} == {"job_dispatched"}


@pytest.mark.asyncio
async def test_failed_activity_write_is_logged_not_raised(seeded_team, db, monkeypatch):
    def broken_activity(session, **kwargs):
        raise RuntimeError("audit down")

    monkeypatch.setattr(job_notifications, "record_activity", broken_activity)
    notifier = JobNotifier(SessionLocal)
    job = JobRef(id=9, team_id=seeded_team["team_id"], title="Patrol", location="Dock 4")

    await notifier.location_changed(job, None, "Dock 4")
    result = await notifier.status_changed(job, "active", "cancelled")

    assert len(result.notified) == 3
    assert db.query(Activity).count() == 0


@pytest.mark.asyncio
async def test_slow_recipient_times_out_and_its_write_is_rolled_back(seeded_team, db, monkeypatch):
    m1, m2, m3 = seeded_team["member_ids"]
    real_create = job_notifications.create_notification

    def slow_for_m2(session, **kwargs):
        if kwargs["user_id"] == m2:
            time.sleep(1.0)
        return real_create(session, **kwargs)

    monkeypatch.setattr(job_notifications, "create_notification", slow_for_m2)
    notifier = JobNotifier(SessionLocal, timeout=0.3)
    job = JobRef(id=5, team_id=seeded_team["team_id"], title="Escort")

    result = await notifier.status_changed(job, "active", "completed")

    assert result.timed_out == [m2]
    assert result.failed == []
    assert sorted(result.notified) == sorted([m1, m3])

    # let the abandoned worker reach its commit
    await asyncio.sleep(1.2)
    db.expire_all()
    assert set(notifications_by_user(db)) == {m1, m3}


@pytest.mark.asyncio
async def test_member_lookup_timeout_notifies_nobody_but_still_logs_activity(seeded_team, db, monkeypatch):
    real_lookup = job_notifications.team_member_ids

    def slow_lookup(session, team_id):
        time.sleep(1.0)
        return real_lookup(session, team_id)

    monkeypatch.setattr(job_notifications, "team_member_ids", slow_lookup)
    notifier = JobNotifier(SessionLocal, timeout=0.3)
    job = JobRef(id=5, team_id=seeded_team["team_id"], title="Escort")

    result = await notifier.status_changed(job, "active", "completed")

    assert result.notified == [] and result.failed == [] and result.timed_out == []
    assert db.query(Notification).count() == 0
    assert db.query(Activity).filter(Activity.activity_type == "status_change").count() == 1

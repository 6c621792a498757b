from compliance_hub.services.recipients import (
    JOB_ASSIGNMENT,
    JOB_CANCELLED,
    JOB_COMPLETED,
    JOB_DISPATCHED,
    TEAM_JOB,
    Recipient,
    creation_recipients,
    transition_recipients,
)


MEMBERS = [10, 11, 12]


def test_creation_splits_assignees_from_rest_of_team():
    recipients = creation_recipients(MEMBERS, [11], "low")

    assert recipients == [
        Recipient(11, JOB_ASSIGNMENT, "low"),
        Recipient(10, TEAM_JOB, "medium"),
        Recipient(12, TEAM_JOB, "medium"),
    ]


def test_creation_each_user_notified_once():
    recipients = creation_recipients([10, 10, 11], [11, 11, 12])
    ids = [r.user_id for r in recipients]
    assert sorted(ids) == [10, 11, 12]
    assert len(ids) == len(set(ids))


def test_creation_high_priority_reaches_team_as_high():
    recipients = creation_recipients(MEMBERS, [], "high")
    assert {r.priority for r in recipients} == {"high"}
    assert {r.notification_type for r in recipients} == {TEAM_JOB}


def test_creation_assignment_defaults_to_medium():
    recipients = creation_recipients([], [5])
    assert recipients == [Recipient(5, JOB_ASSIGNMENT, "medium")]


def test_creation_urgent_only_raises_direct_assignments():
    recipients = creation_recipients([1, 2], [1], "urgent")
    assert recipients == [Recipient(1, JOB_ASSIGNMENT, "urgent"), Recipient(2, TEAM_JOB, "medium")]


def test_dispatch_goes_to_assignees():
    recipients = transition_recipients("pending", "active", MEMBERS, [12])
    assert recipients == [Recipient(12, JOB_DISPATCHED, "high")]


def test_dispatch_without_assignees_goes_to_team():
    recipients = transition_recipients("pending", "active", MEMBERS, [])
    assert [r.user_id for r in recipients] == MEMBERS
    assert all(r.priority == "high" for r in recipients)


def test_completed_and_cancelled_go_to_whole_team():
    completed = transition_recipients("active", "completed", MEMBERS, [10])
    cancelled = transition_recipients("pending", "cancelled", MEMBERS, [10])

    assert [(r.user_id, r.notification_type, r.priority) for r in completed] == [(u, JOB_COMPLETED, "medium") for u in MEMBERS]
    assert [r.notification_type for r in cancelled] == [JOB_CANCELLED] * 3


def test_unchanged_or_unknown_transition_notifies_nobody():
    assert transition_recipients("active", "active", MEMBERS, [10]) == []
    assert transition_recipients("pending", None, MEMBERS, [10]) == []
    assert transition_recipients("pending", "scheduled", MEMBERS, [10]) == []
    assert transition_recipients("scheduled", "active", MEMBERS, [10]) == []

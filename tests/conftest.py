import os
import tempfile

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="compliance-hub-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["RATE_LIMIT"] = "100000/minute"
os.environ["AUTO_CREATE_DB"] = "true"

from fastapi.testclient import TestClient  # noqa: E402

from compliance_hub.db import Base, SessionLocal, engine  # noqa: E402
from compliance_hub.main import app  # noqa: E402
from compliance_hub.models.models import Team, TeamMember, User  # noqa: E402
from compliance_hub.services.collab_hub import CollaborationHub  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    app.state.hub = CollaborationHub()
    with TestClient(app) as c:
        yield c


@pytest.fixture
def seeded_team(db):
    """A dispatcher plus a team of three officers."""
    dispatcher = User(username="dispatcher", full_name="Dana Dispatcher")
    officers = [User(username=f"officer{i}", full_name=f"Officer {i}") for i in range(1, 4)]
    db.add_all([dispatcher, *officers])
    db.flush()
    team = Team(name="Night Patrol", created_by=dispatcher.id)
    db.add(team)
    db.flush()
    for officer in officers:
        db.add(TeamMember(team_id=team.id, user_id=officer.id))
    db.commit()
    return {
        "team_id": team.id,
        "dispatcher_id": dispatcher.id,
        "member_ids": [o.id for o in officers],
    }

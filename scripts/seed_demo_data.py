"""
Seed the local database with a demo dispatch team.

Usage:
  python scripts/seed_demo_data.py

This script is idempotent: running it multiple times will upsert the same
records based on unique fields (username for users, name for teams).
"""

from compliance_hub.db import SessionLocal, Base, engine
from compliance_hub.models.models import Team, TeamMember, User


DEMO_USERS = [
    ("dispatcher", "Dana Dispatcher", "dispatcher@example.com"),
    ("officer.alvarez", "Sam Alvarez", "alvarez@example.com"),
    ("officer.chen", "Robin Chen", "chen@example.com"),
    ("officer.okafor", "Jo Okafor", "okafor@example.com"),
]


def ensure_user(session, username: str, full_name: str, email: str) -> User:
    user = session.query(User).filter(User.username == username).first()
    if user:
        user.full_name = full_name
        user.email = email
        session.add(user)
        session.flush()
        return user
    user = User(username=username, full_name=full_name, email=email)
    session.add(user)
    session.flush()
    return user


def ensure_team(session, name: str, description: str, created_by: int) -> Team:
    team = session.query(Team).filter(Team.name == name).first()
    if team:
        return team
    team = Team(name=name, description=description, created_by=created_by)
    session.add(team)
    session.flush()
    return team


def ensure_member(session, team: Team, user: User, is_team_lead: bool = False) -> TeamMember:
    member = session.query(TeamMember).filter(TeamMember.team_id == team.id, TeamMember.user_id == user.id).first()
    if member:
        member.is_team_lead = is_team_lead
        return member
    member = TeamMember(team_id=team.id, user_id=user.id, is_team_lead=is_team_lead)
    session.add(member)
    session.flush()
    return member


def main():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        users = [ensure_user(session, *row) for row in DEMO_USERS]
        dispatcher, officers = users[0], users[1:]
        team = ensure_team(session, "Night Patrol", "Demo patrol team", created_by=dispatcher.id)
        for i, officer in enumerate(officers):
            ensure_member(session, team, officer, is_team_lead=(i == 0))
        session.commit()
        print(f"Seeded {len(users)} users and team '{team.name}' (id={team.id}) with {len(officers)} members")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()

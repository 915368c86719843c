import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["SHELL_ENABLED"] = "false"

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

import models  # noqa: F401
from core.database import get_session
from core.security import create_access_token, get_password_hash
from main import app
from models import AppUser, Branch, StaffMember

@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)

@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session

@pytest.fixture(name="client")
def client_fixture(session):
    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()

def make_owner(session: Session, email: str = "owner@example.com", password: str = "secret123") -> AppUser:
    owner = AppUser(email=email, name="Asha Rao", password_hash=get_password_hash(password))
    session.add(owner)
    session.commit()
    session.refresh(owner)
    return owner

def make_branch(session: Session, owner: AppUser, name: str, minutes_ago: int = 0) -> Branch:
    branch = Branch(owner_id=owner.id, name=name, created_at=datetime.utcnow() - timedelta(minutes=minutes_ago))
    session.add(branch)
    session.commit()
    session.refresh(branch)
    return branch

def make_staff(session: Session, owner: AppUser, branch: Branch = None, username: str = "cashier", password: str = "secret123") -> StaffMember:
    staff = StaffMember(
        owner_id=owner.id,
        branch_id=branch.id if branch else None,
        name="Ravi",
        email=f"{username}@tabill.com",
        username=username,
        role="cashier",
        password_hash=get_password_hash(password),
    )
    session.add(staff)
    session.commit()
    session.refresh(staff)
    return staff

def owner_headers(owner: AppUser) -> dict:
    token = create_access_token(data={"sub": owner.uid, "kind": "owner"})
    return {"Authorization": f"Bearer {token}"}

def staff_headers(staff: StaffMember) -> dict:
    token = create_access_token(data={"sub": staff.auth_uid, "kind": "staff"})
    return {"Authorization": f"Bearer {token}"}

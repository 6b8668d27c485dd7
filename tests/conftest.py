"""
Shared fixtures: an in-memory SQLite database per test, a TestClient wired
to it, and small factories for users, families and members.
"""

import os
import tempfile

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["LOCAL_MEDIA_PATH"] = tempfile.mkdtemp(prefix="family-tree-media-")
os.environ["SECRET_KEY"] = "test-secret-key"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import hash_password, token_for_user
from app.database import Base, get_db
from app.main import app
from app.models.enums import Gender
from app.models.family import Family
from app.models.family_member import FamilyMember
from app.models.user import User
from app.services.notification_service import Notifier

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db, monkeypatch):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    # The socket route opens its own short-lived sessions
    monkeypatch.setattr("app.routers.websocket_router.SessionLocal", TestingSessionLocal)
    # No `with`: the lifespan (create_all on the real engine, scheduler) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def notifier(db):
    return Notifier(db)


# --------------------------------------------------
# FACTORIES
# --------------------------------------------------
@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(name="Test User", email=None, password=None):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            name=name,
            hashed_password=hash_password(password) if password else None,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_family(db):
    def _make_family(admin, family_id="1234", name="Nguyen Family", users=()):
        family = Family(id=family_id, name=name, admin_id=admin.id)
        family.users.append(admin)
        for user in users:
            family.users.append(user)
        db.add(family)
        db.commit()
        db.refresh(family)
        return family

    return _make_family


@pytest.fixture
def make_member(db):
    def _make_member(family, name, gender=Gender.MALE, generation=1, **fields):
        member = FamilyMember(
            family_id=family.id,
            name=name,
            gender=gender,
            generation=generation,
            **fields,
        )
        db.add(member)
        db.commit()
        db.refresh(member)
        return member

    return _make_member


@pytest.fixture
def married_pair(db, make_member):
    """Father F and mother M, generation 1, married to each other."""

    def _married_pair(family, father_name="Father F", mother_name="Mother M"):
        father = make_member(family, father_name, Gender.MALE, 1, marital_status="MARRIED")
        mother = make_member(family, mother_name, Gender.FEMALE, 1, marital_status="MARRIED")
        father.spouse_id = mother.id
        mother.spouse_id = father.id
        db.commit()
        return father, mother

    return _married_pair


@pytest.fixture
def auth_headers():
    def _auth_headers(user):
        return {"Authorization": f"Bearer {token_for_user(user)}"}

    return _auth_headers

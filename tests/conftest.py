import os

os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import app
from family_finance.core.clock import FixedClock
from family_finance.core.database import Base
from family_finance.core.deps import get_clock, get_db
from family_finance.core.models import User

NOW = datetime(2024, 6, 1, 9, 0, 0)
PASSWORD = "password123"


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: FixedClock(NOW)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def member(client, db):
    """Registers and logs in a household member; returns id and auth headers."""

    def _make(name, role="MEMBER", can_delete=False, relationship="Family"):
        email = f"{name.split()[0].lower()}@household.net"
        resp = client.post("/api/auth/register", json={
            "name": name,
            "email": email,
            "password": PASSWORD,
            "relationship": relationship,
            "role": role,
        })
        assert resp.status_code == 201, resp.text
        member_id = resp.json()["id"]

        if can_delete:
            db.query(User).filter(User.id == member_id).update({User.can_delete: True})
            db.commit()

        resp = client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
        assert resp.status_code == 200, resp.text
        # requests below authenticate with the header only
        client.cookies.clear()
        token = resp.json()["access_token"]
        return SimpleNamespace(id=member_id, email=email, headers={"Authorization": f"Bearer {token}"})

    return _make


@pytest.fixture
def household(member):
    return SimpleNamespace(
        admin=member("Alex Johnson", role="ADMIN"),
        jane=member("Jane Doe"),
        sam=member("Sam Lee"),
        viewer=member("Michael Smith", role="VIEW_ONLY"),
    )

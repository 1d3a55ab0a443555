"""Shared test fixtures."""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from campuscares.core.database import get_session
from campuscares.engine.time_policy import event_timezone
from campuscares.main import app
from campuscares.models import Opportunity, Registration, Viewer
from campuscares.repository import OpportunityRepository
from campuscares.store.sql import SqlOpportunityStore

HOST_ID = 1
ALICE_ID = 2
BOB_ID = 3
ADMIN_ID = 99
ORG_X = 10
ORG_Y = 20


def local_now() -> datetime:
    return datetime.now(event_timezone())


def starting_in(delta: timedelta) -> dict:
    """Civil date/time fields for an event starting ``delta`` from now."""
    start = (local_now() + delta).replace(second=0, microsecond=0)
    return {"date": start.date(), "time": start.time().replace(tzinfo=None)}


def viewer_headers(viewer: Viewer) -> dict[str, str]:
    headers = {"X-Viewer-Id": str(viewer.id)}
    if viewer.organizations:
        headers["X-Viewer-Organizations"] = ",".join(str(o) for o in sorted(viewer.organizations))
    if viewer.admin:
        headers["X-Viewer-Admin"] = "true"
    return headers


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Create a test client with the test database session."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="store")
def store_fixture(session: Session) -> SqlOpportunityStore:
    return SqlOpportunityStore(session)


@pytest.fixture(name="repository")
def repository_fixture(store: SqlOpportunityStore) -> OpportunityRepository:
    return OpportunityRepository(store)


@pytest.fixture(name="host")
def host_fixture() -> Viewer:
    return Viewer(id=HOST_ID)


@pytest.fixture(name="alice")
def alice_fixture() -> Viewer:
    return Viewer(id=ALICE_ID)


@pytest.fixture(name="bob")
def bob_fixture() -> Viewer:
    return Viewer(id=BOB_ID)


@pytest.fixture(name="admin")
def admin_fixture() -> Viewer:
    return Viewer(id=ADMIN_ID, admin=True)


@pytest.fixture(name="make_opportunity")
def make_opportunity_fixture(session: Session):
    """Factory for persisted opportunities, three days out and approved by default."""

    def make(registrants: tuple[int, ...] = (), **overrides) -> Opportunity:
        fields = {
            "name": "Park Cleanup",
            "description": "Pick up litter along the river trail",
            "host_user_id": HOST_ID,
            "created_by": HOST_ID,
            "total_slots": 5,
            "duration": 120,
            "address": "Riverside Park",
            "approved": True,
            "causes": ["environment"],
            **starting_in(timedelta(days=3)),
        }
        fields.update(overrides)
        opportunity = Opportunity(**fields)
        session.add(opportunity)
        session.flush()
        signed_up = datetime.now(UTC) - timedelta(days=1)
        for offset, user_id in enumerate(registrants):
            session.add(
                Registration(
                    user_id=user_id,
                    opportunity_id=opportunity.id,
                    registered_at=signed_up + timedelta(minutes=offset),
                )
            )
        session.commit()
        session.refresh(opportunity)
        return opportunity

    return make


@pytest.fixture(name="sample_opportunity")
def sample_opportunity_fixture(make_opportunity) -> Opportunity:
    """An approved public opportunity hosted by HOST_ID, three days out."""
    return make_opportunity()


def detail_payload(**overrides) -> dict:
    """A backend ``GET /api/opps/{id}`` body."""
    payload = {
        "id": 7,
        "name": "Beach Day",
        "date": "2026-11-02T19:00:00Z",
        "total_slots": 10,
        "duration": 120,
        "host_user_id": 1,
        "causes": ["ocean", "ocean", "community"],
        "involved_users": [
            {"id": 1, "user": "Hana", "registered": False, "attended": False},
            {"id": 2, "user": "Ali", "registered": True, "attended": True},
        ],
    }
    payload.update(overrides)
    return payload

"""
Test configuration and fixtures.

Provides:
- SQLite database file with the schema recreated for every test
- Factories for consultants, clients, leads and the rotation config
- A recording notifier installed as the process-wide gateway
- HTTPX AsyncClient bound to the FastAPI app
"""
import os
import tempfile
from typing import AsyncGenerator, Callable, Generator

# Must be set before the app modules read settings
_DB_PATH = os.path.join(tempfile.gettempdir(), f"lead_cascade_test_{os.getpid()}.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["TESTING"] = "1"
os.environ["INTERNAL_SECRET"] = "test-internal-secret"
os.environ["NOTIFY_CHANNELS"] = "push"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from app.core.deps import get_db
from app.db.base import Base
from app.db.models import Client, Consultant, Lead
from app.db.session import SessionLocal, engine
from app.main import app
from app.services import automation_config_service
from app.services.notification_service import NotifierGateway, set_notifier


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def _schema() -> Generator[None, None, None]:
    """Fresh tables for every test; services commit for real."""
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield
    engine.dispose()


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    session = SessionLocal()
    yield session
    session.close()


# =============================================================================
# Notifier
# =============================================================================

class RecordingNotifier(NotifierGateway):
    """Gateway double that records events instead of delivering them."""

    def __init__(self):
        super().__init__([])
        self.assignments: list[tuple] = []
        self.finalized: list[tuple] = []
        self.summaries: list[tuple] = []

    def notify_assignment(self, consultant, client, assignment) -> None:
        self.assignments.append((consultant.id, client.id, assignment.sequence))

    def notify_cascade_finalized(self, client, winner, displaced) -> None:
        self.finalized.append(
            (client.id, winner.id if winner else None, [c.id for c in displaced])
        )

    def notify_performance_summary(self, consultant, summary) -> None:
        self.summaries.append((consultant.id, summary))


@pytest.fixture(autouse=True)
def notifier() -> Generator[RecordingNotifier, None, None]:
    recorder = RecordingNotifier()
    set_notifier(recorder)
    yield recorder
    set_notifier(None)


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def make_consultant(db: Session) -> Callable[..., Consultant]:
    def _make(name: str = "Consultant", **kwargs) -> Consultant:
        consultant = Consultant(display_name=name, is_active=kwargs.pop("is_active", True), **kwargs)
        db.add(consultant)
        db.commit()
        return consultant

    return _make


@pytest.fixture
def make_client(db: Session) -> Callable[..., Client]:
    def _make(name: str = "Maria Client", **kwargs) -> Client:
        client = Client(full_name=name, **kwargs)
        db.add(client)
        db.commit()
        return client

    return _make


@pytest.fixture
def make_lead(db: Session) -> Callable[..., Lead]:
    def _make(client: Client, source: str = "website") -> Lead:
        lead = Lead(client_id=client.id, source=source)
        db.add(lead)
        db.commit()
        return lead

    return _make


@pytest.fixture
def set_rotation(db: Session) -> Callable[..., None]:
    def _set(consultants: list[Consultant], sla_hours: int = 24) -> None:
        automation_config_service.save_config(
            db, rotation_order=[c.id for c in consultants], sla_hours=sla_hours
        )
        db.commit()

    return _set


@pytest.fixture
def team(make_consultant, set_rotation) -> list[Consultant]:
    """Three active consultants in rotation order [U1, U2, U3]."""
    members = [make_consultant(name) for name in ("U1", "U2", "U3")]
    set_rotation(members)
    return members


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient sharing the test session."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()

# tests/conftest.py

import os

# Point the application engine at SQLite before anything imports it
os.environ.setdefault("DATABASE_URL", "sqlite://")

from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.testclient import TestClient

from quote_engine.database import Base, get_db
from quote_engine.dependencies import get_ledger, get_notifier, get_policy_gate, get_quote_service, get_thread_service
from quote_engine.main import app
from quote_engine.models import db_models  # noqa: F401
from quote_engine.models.db_models import UserDB, UserRole, AccountStatus


# --- Test Database Setup ---
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


# --- Users ---
def make_user(db, role: UserRole, display_name: str, hourly_rate=None) -> UserDB:
    user = UserDB(
        id=str(uuid4()),
        email=f"{role.value}-{uuid4().hex[:8]}@example.com",
        display_name=display_name,
        role=role,
        hourly_rate=hourly_rate,
        account_status=AccountStatus.ACTIVE,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def customer(db_session):
    return make_user(db_session, UserRole.CUSTOMER, "Cara Jones")


@pytest.fixture
def agent(db_session):
    return make_user(db_session, UserRole.AGENT, "Sam Fletcher", hourly_rate=45)


@pytest.fixture
def other_agent(db_session):
    return make_user(db_session, UserRole.AGENT, "Priya Shah", hourly_rate=60)


@pytest.fixture
def admin(db_session):
    return make_user(db_session, UserRole.ADMIN, "Platform Admin")


# --- Notifications ---
class RecordingNotifier:
    """Keeps every notification instead of sending it."""

    def __init__(self):
        self.sent = []

    def notify(self, notification):
        self.sent.append(notification)

    def texts(self):
        return [n.text for n in self.sent]


@pytest.fixture
def notifier():
    return RecordingNotifier()


# --- Services wired the same way the API wires them ---
@pytest.fixture
def services(db_session, notifier):
    ledger = get_ledger(db_session)
    gate = get_policy_gate(ledger)
    thread = get_thread_service(db_session, gate, notifier)
    quotes = get_quote_service(db_session, thread)
    return SimpleNamespace(
        ledger=ledger,
        gate=gate,
        thread=thread,
        quotes=quotes,
        dispatcher=thread.dispatcher,
    )


@pytest.fixture
def open_quote(services, customer, agent):
    """A clean pending request from customer to agent."""
    result = services.quotes.create(
        customer=customer,
        agent_id=agent.id,
        title="Fix leaking tap",
        description="Tap in kitchen drips constantly",
    )
    return result.quote


# --- Test Client Fixtures ---
@pytest.fixture(scope="function")
def client(db_session, notifier):
    """
    TestClient bound to the per-test SQLite session and the recording notifier.
    """
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_notifier] = lambda: notifier

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()

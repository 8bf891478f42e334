"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite schema per test
- Company/user/contact/channel/queue factories
- Captured outbound messages and realtime pushes
- HTTPX AsyncClient with session cookie and CSRF header
"""
import os
import uuid
from dataclasses import dataclass, field
from typing import AsyncGenerator, Generator

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("ENV", "test")
os.environ["MESSAGING_GATEWAY_URL"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from ticketflow.core.deps import COOKIE_NAME, get_db
from ticketflow.core.security import create_session_token
from ticketflow.db.base import Base
from ticketflow.db.enums import Profile
from ticketflow.db.models import Channel, Company, Contact, Queue, QueueMember, User
from ticketflow.db.session import SessionLocal, engine
from ticketflow.main import app
from ticketflow.services import messaging_service, realtime_service, settings_service


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Session on a freshly created schema.

    The in-memory database lives on one shared connection, so dropping the
    tables after each test isolates tests without savepoints.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _reset_completion_cache():
    messaging_service.completion_cache.clear()
    yield
    messaging_service.completion_cache.clear()


# =============================================================================
# Side effect capture
# =============================================================================

@dataclass
class SentMessage:
    channel_id: uuid.UUID
    address: str
    body: str


@pytest.fixture
def sent_messages(monkeypatch: pytest.MonkeyPatch) -> list[SentMessage]:
    """Every message handed to the gateway during the test."""
    sent: list[SentMessage] = []

    def _dispatch(channel_id, address, body):
        sent.append(SentMessage(channel_id=channel_id, address=address, body=body))
        return True

    monkeypatch.setattr(messaging_service, "dispatch_message", _dispatch)
    return sent


@dataclass
class Published:
    events: list[tuple[uuid.UUID, str, dict]] = field(default_factory=list)
    notices: list[tuple[uuid.UUID, uuid.UUID | None, str]] = field(default_factory=list)

    def actions(self, topic_suffix: str) -> list[str]:
        return [payload.get("action") for _, topic, payload in self.events if topic.endswith(topic_suffix)]


@pytest.fixture
def published(monkeypatch: pytest.MonkeyPatch) -> Published:
    """Realtime pushes and user toasts emitted during the test."""
    captured = Published()

    def _publish(company_id, topic, payload):
        captured.events.append((company_id, topic, payload))

    def _notify(company_id, user_id, message, level="ERROR"):
        captured.notices.append((company_id, user_id, message))

    monkeypatch.setattr(realtime_service, "publish", _publish)
    monkeypatch.setattr(realtime_service, "notify_user", _notify)
    return captured


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def company(db: Session) -> Company:
    row = Company(name="Test Company")
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def other_company(db: Session) -> Company:
    row = Company(name="Other Company")
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def channel(db: Session, company: Company) -> Channel:
    row = Channel(
        company_id=company.id,
        name="Principal",
        is_default=True,
        completion_message="Obrigado pelo contato!",
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def second_channel(db: Session, company: Company) -> Channel:
    row = Channel(company_id=company.id, name="Secundario")
    db.add(row)
    db.commit()
    return row


def make_user(db: Session, company: Company, *, name: str, profile: Profile = Profile.USER, **kwargs) -> User:
    user = User(
        company_id=company.id,
        name=name,
        email=f"{name.lower().replace(' ', '.')}-{uuid.uuid4().hex[:6]}@test.com",
        profile=profile,
        **kwargs,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def admin_user(db: Session, company: Company) -> User:
    return make_user(db, company, name="Admin", profile=Profile.ADMIN)


@pytest.fixture
def agent_user(db: Session, company: Company) -> User:
    return make_user(db, company, name="Agent Ana", number="5511999990001")


@pytest.fixture
def other_agent(db: Session, company: Company) -> User:
    return make_user(db, company, name="Agent Bruno", number="5511999990002")


def make_contact(db: Session, company: Company, *, name: str = "Maria", number: str | None = None, **kwargs) -> Contact:
    contact = Contact(
        company_id=company.id,
        name=name,
        number=number or f"55119{uuid.uuid4().int % 10**8:08d}",
        **kwargs,
    )
    db.add(contact)
    db.commit()
    return contact


@pytest.fixture
def contact(db: Session, company: Company) -> Contact:
    return make_contact(db, company, name="Maria", number="5511988887777")


@pytest.fixture
def queue(db: Session, company: Company) -> Queue:
    row = Queue(company_id=company.id, name="Suporte")
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def sales_queue(db: Session, company: Company) -> Queue:
    row = Queue(company_id=company.id, name="Vendas")
    db.add(row)
    db.commit()
    return row


def add_member(db: Session, queue: Queue, user: User) -> QueueMember:
    member = QueueMember(queue_id=queue.id, user_id=user.id)
    db.add(member)
    db.commit()
    return member


def enable(db: Session, company: Company, key, value: str = "enabled") -> None:
    settings_service.set_setting(db, company.id, key, value)
    db.commit()


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient for public endpoints."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


def _client_for(user: User) -> AsyncClient:
    token = create_session_token(
        user_id=user.id,
        company_id=user.company_id,
        profile=user.profile.value,
        token_version=user.token_version,
    )
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={COOKIE_NAME: token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    )


@pytest.fixture(scope="function")
async def authed_client(db: Session, admin_user: User) -> AsyncGenerator[AsyncClient, None]:
    """Admin AsyncClient with session cookie and CSRF header."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with _client_for(admin_user) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def agent_client(db: Session, agent_user: User) -> AsyncGenerator[AsyncClient, None]:
    """Non-admin AsyncClient."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with _client_for(agent_user) as c:
        yield c

    app.dependency_overrides.clear()

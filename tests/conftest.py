"""Pytest configuration and fixtures."""

import importlib
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("APP_ENV", "development")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.dependencies import get_whatsapp_client
from app.models.contact import Contact
from app.models.message import Message  # noqa: F401
from app.models.user import User, UserRole
from app.services.auth import AuthService
from app.services.whatsapp import SendResult


class FakeWhatsAppClient:
    """Records sends instead of calling the Cloud API."""

    configured = True

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.failing_numbers: set[str] = set()
        self.restarts = 0

    def send(self, destination: str, body: str) -> SendResult:
        if destination in self.failing_numbers:
            return SendResult(success=False, error="Recipient is not on WhatsApp")
        self.sent.append((destination, body))
        return SendResult(success=True, message_id=f"wamid.{len(self.sent)}")

    def get_status(self) -> dict[str, bool]:
        return {"configured": True, "connected": True}

    def restart(self) -> None:
        self.restarts += 1

    def close(self) -> None:
        pass


@pytest.fixture(name="db_session")
def db_session_fixture():
    """Create an in-memory SQLite database for tests."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="whatsapp")
def whatsapp_fixture() -> FakeWhatsAppClient:
    return FakeWhatsAppClient()


@pytest.fixture(name="client")
def client_fixture(db_session: Session, whatsapp: FakeWhatsAppClient):
    """Create a test client with overridden DB and WhatsApp dependencies and no rate limiting."""
    from app.rate_limit import limiter
    from main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_whatsapp_client] = lambda: whatsapp
    limiter.enabled = False
    with TestClient(app) as c:
        yield c
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture(name="make_user")
def make_user_fixture(db_session: Session):
    """Factory that registers a user and returns its id, email and bearer headers."""

    def _make_user(
        email: str = "agent@example.com",
        password: str = "password123",
        name: str = "Test User",
        role: UserRole | None = None,
        is_active: bool = True,
    ) -> dict:
        result = AuthService().register(db_session, name, email, password, role)
        assert result.success, result.error
        if not is_active:
            user = db_session.get(User, result.user_id)
            user.is_active = False
            db_session.commit()
        return {
            "user_id": result.user_id,
            "email": result.email,
            "password": password,
            "role": result.role,
            "token": result.token,
            "headers": {"Authorization": f"Bearer {result.token}"},
        }

    return _make_user


@pytest.fixture(name="test_user")
def test_user_fixture(make_user) -> dict:
    return make_user()


@pytest.fixture(name="admin")
def admin_fixture(make_user) -> dict:
    return make_user(email="admin@example.com", name="Admin", role=UserRole.ADMIN)


@pytest.fixture(name="manager")
def manager_fixture(make_user) -> dict:
    return make_user(email="manager@example.com", name="Manager", role=UserRole.MANAGER)


@pytest.fixture(name="contact")
def contact_fixture(db_session: Session) -> Contact:
    contact = Contact(phone_number="5511999990000", name="Maria Silva", company="Acme", tags=["vip"])
    db_session.add(contact)
    db_session.commit()
    db_session.refresh(contact)
    return contact


@pytest.fixture(name="default_settings")
def default_settings_fixture(monkeypatch):
    """Settings as loaded when APP_ENV and WHATSAPP_APP_SECRET are not set."""
    from app import config

    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.delenv("WHATSAPP_APP_SECRET", raising=False)
    module = importlib.reload(config)
    yield module.Settings()
    monkeypatch.undo()
    importlib.reload(config)

"""
Test configuration and fixtures for pytest.

This module provides shared fixtures used across all tests:
- Test database (SQLite in-memory for speed)
- Credential stores (SQL and in-memory)
- Recording event emitter and a file store under tmp_path
- Google clients wired to httpx.MockTransport
- Test client (FastAPI TestClient) with the orchestrator overridden
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generator, List, Optional
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from drive_broker.core.timestamps import format_timestamp
from drive_broker.db.base import Base
from drive_broker.db.session import get_db
from drive_broker.deps import get_orchestrator
from drive_broker.environments.base import TokenResult, UserInfo
from drive_broker.environments.google.auth.client import GoogleAuthClient
from drive_broker.environments.google.drive.client import GoogleDriveClient
from drive_broker.main import app
from drive_broker.models.user_credential import UserCredentialRecord  # noqa: F401
from drive_broker.schemas.credential import UserCredential
from drive_broker.services.app_logs import AppLogs
from drive_broker.services.credential_store import InMemoryCredentialStore, SqlCredentialStore
from drive_broker.services.events import EventEmitter
from drive_broker.services.files import LocalFileStore
from drive_broker.services.session_orchestrator import SessionOrchestrator


API_BASE = "https://drive.test/drive/v3"
UPLOAD_BASE = "https://drive.test/upload/drive/v3"


# ---------------------------------------------------------------------------
# TEST DATABASE SETUP
# ---------------------------------------------------------------------------
# Use SQLite in-memory for fast tests (no PostgreSQL dependency)
# StaticPool keeps the same connection across all operations

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},  # Required for SQLite
    poolclass=StaticPool,  # Keep connection alive across operations
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ---------------------------------------------------------------------------
# DATABASE FIXTURES
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Create a fresh database for each test function.

    - Creates all tables
    - Yields a session for the test
    - Drops all tables after test (clean slate)
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def sql_store(db: Session) -> SqlCredentialStore:
    return SqlCredentialStore(TestingSessionLocal)


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


# ---------------------------------------------------------------------------
# COLLABORATOR FIXTURES
# ---------------------------------------------------------------------------

class RecordingEvents(EventEmitter):
    """
    Event emitter that records every call.

    ack is what send_sync answers. ack=False means nobody acknowledges;
    an exception instance is raised from send_sync.
    """

    def __init__(self, ack: Any = None):
        self.ack = {"ok": True} if ack is None else ack
        self.sync_calls: List[tuple] = []
        self.connected: List[dict] = []
        self.disconnected: List[Optional[str]] = []

    async def send_sync(self, event_name, data, function_id, user_id):
        self.sync_calls.append((event_name, data, function_id, user_id))
        if isinstance(self.ack, Exception):
            raise self.ack
        return self.ack or None

    async def send_user_connected_event(self, function_id, user_id, event):
        self.connected.append(event)

    async def send_user_disconnected_event(self, function_id, user_id):
        self.disconnected.append(user_id)


@pytest.fixture
def events() -> RecordingEvents:
    return RecordingEvents()


@pytest.fixture
def make_events():
    """Build a RecordingEvents with a custom acknowledgement."""
    return RecordingEvents


@pytest.fixture
def files(tmp_path) -> LocalFileStore:
    return LocalFileStore(str(tmp_path / "files"))


@pytest.fixture
def logs() -> AppLogs:
    return MagicMock(spec=AppLogs)


@pytest.fixture
def auth_client() -> MagicMock:
    """
    GoogleAuthClient double; async methods are AsyncMocks via spec.

    Defaults: a fresh token is valid, the profile is "Jane Doe".
    """
    client = MagicMock(spec=GoogleAuthClient)
    client.validate_or_refresh.side_effect = _echo_tokens
    client.get_user_info.return_value = UserInfo(
        provider_user_id="google-1",
        email="jane@example.com",
        name="Jane Doe",
        picture_url="https://lh3.googleusercontent.com/a/jane",
    )
    client.build_authorization_url.return_value = "https://accounts.google.com/o/oauth2/v2/auth?x=1"
    return client


async def _echo_tokens(user_id, credential):
    if credential.access_token:
        return TokenResult(
            access_token=credential.access_token,
            refresh_token=credential.refresh_token,
            expiration_time=credential.expiration_time,
        )
    return TokenResult(error="No token available")


# ---------------------------------------------------------------------------
# HTTP FIXTURES
# ---------------------------------------------------------------------------

class MockGoogle:
    """
    Programmable stand-in for Google's HTTP endpoints.

    Handlers are registered per (method, path) and receive the httpx.Request;
    every request is kept in .requests.
    """

    def __init__(self):
        self.routes = {}
        self.requests: List[httpx.Request] = []

    def on(self, method: str, url: str, handler: Callable[[httpx.Request], httpx.Response]):
        self.routes[(method.upper(), url)] = handler

    def json(self, method: str, url: str, payload: Any, status_code: int = 200, headers=None):
        self.on(method, url, lambda request: httpx.Response(status_code, json=payload, headers=headers))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        route = self.routes.get((request.method, url))
        if route is None:
            return httpx.Response(404, json={"error": {"code": 404, "message": f"No route {request.method} {url}"}})
        return route(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def google() -> MockGoogle:
    return MockGoogle()


@pytest.fixture
def drive_client(google: MockGoogle) -> GoogleDriveClient:
    return GoogleDriveClient(base_url=API_BASE, upload_url=UPLOAD_BASE, transport=google.transport)


@pytest.fixture
def orchestrator(store, auth_client, drive_client, events, files, logs) -> SessionOrchestrator:
    return SessionOrchestrator(store, auth_client, drive_client, events, files, logs)


# ---------------------------------------------------------------------------
# DATA FIXTURES
# ---------------------------------------------------------------------------

def future_timestamp(seconds: int = 3600) -> str:
    return format_timestamp(datetime.now(timezone.utc) + timedelta(seconds=seconds))


@pytest.fixture
def connected_user(store: InMemoryCredentialStore) -> UserCredential:
    """A stored, connected credential for user "user-1"."""
    return store.save(UserCredential(
        user_id="user-1",
        access_token="ya29.valid",
        refresh_token="1//refresh",
        expiration_time=future_timestamp(),
        status_message="Connection established as Jane Doe.",
    ))


# ---------------------------------------------------------------------------
# CLIENT FIXTURES
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def client(db: Session, orchestrator: SessionOrchestrator) -> Generator[TestClient, None, None]:
    """
    Create a test client wired to the test database and orchestrator.
    """
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()

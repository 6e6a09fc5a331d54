############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# conftest.py: Pytest configuration and shared test fixtures
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Pytest configuration and shared fixtures for the LAB Chain directory tests.

Each test gets its own in-memory SQLite database, so tests never share state.
"""

from typing import AsyncGenerator, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio

from backend.app.db.session import Database
from backend.app.security.sessions import SessionManager
from backend.app.services.accounts import AccountService
from backend.app.services.approval import ApprovalEngine
from backend.app.services.duplicates import DuplicateChecker
from backend.app.services.ledger import RequestLedger
from backend.app.services.notifier import Notifier
from backend.app.services.results import EmailResult
from backend.app.settings import Settings

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingNotifier(Notifier):
    """Notifier that records calls instead of sending email."""

    def __init__(self, result: Optional[EmailResult] = None):
        self.calls: List[Tuple[str, object]] = []
        self.result = result or EmailResult(success=True)

    async def _record(self, event: str, request) -> EmailResult:
        self.calls.append((event, request))
        return self.result

    async def node_request_approved(self, request):
        return await self._record("node_request_approved", request)

    async def node_request_rejected(self, request, reason):
        return await self._record("node_request_rejected", request)

    async def token_request_approved(self, request):
        return await self._record("token_request_approved", request)

    async def token_request_rejected(self, request, reason):
        return await self._record("token_request_rejected", request)

    async def token_transferred(self, request):
        return await self._record("token_transferred", request)


@pytest.fixture
def test_settings() -> Settings:
    """Settings for tests: in-memory database, no email, no background sweeper."""
    return Settings(
        _env_file=None,
        database_url=TEST_DATABASE_URL,
        secret_key="test-secret-key",
        email_enabled=False,
        session_cleanup_interval=0,
        auto_create_tables=False,
        log_format="console",
    )


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    """Fresh in-memory database with all tables created."""
    db = Database(TEST_DATABASE_URL)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def accounts(database) -> AccountService:
    return AccountService(database, password_min_length=8)


@pytest.fixture
def session_manager(database) -> SessionManager:
    return SessionManager(database, secret_key="test-secret-key")


@pytest.fixture
def ledger(database) -> RequestLedger:
    return RequestLedger(database)


@pytest.fixture
def duplicate_checker(database) -> DuplicateChecker:
    return DuplicateChecker(database)


@pytest.fixture
def recording_notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def approval(database, recording_notifier) -> ApprovalEngine:
    return ApprovalEngine(database, notifier=recording_notifier)


@pytest.fixture
def node_payload():
    """A valid boot node submission."""
    return {
        "node_type": "bootnode",
        "name": "Vientiane Boot 1",
        "endpoint": "enode://abc123@10.0.0.5:30303",
        "location": "Vientiane, LA",
        "contact_email": "operator@example.com",
        "contact_name": "Somchai",
        "description": "Community boot node",
    }


@pytest.fixture
def token_payload():
    """A valid faucet request."""
    return {
        "first_name": "Noy",
        "last_name": "Phommachanh",
        "email": "noy@example.com",
        "wallet_address": "0x" + "ab" * 20,
        "requested_amount": "100",
        "reason": "Testing smart contracts",
    }


@pytest.fixture
def app(database, test_settings):
    """Application wired to the per-test database."""
    from backend.app.main import create_app

    return create_app(database=database, settings=test_settings)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client talking to the app in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest_asyncio.fixture
async def admin_client(client) -> httpx.AsyncClient:
    """Client logged in as the first admin (created through first-time setup)."""
    response = await client.post(
        "/api/auth/setup", json={"username": "admin", "password": "correct horse"}
    )
    assert response.status_code == 201
    return client

"""
Shared pytest fixtures for the Quest Board test suite.

This module provides fixtures that are automatically available to all test files:
- Temporary test databases with the production schema
- A recording email transport and a fully wired RegistrationService
- Session and sign-up request factories
- FastAPI TestClient instances with player and admin identities

Every fixture is function scoped so each test runs against a fresh database
and a fresh in-memory token/rate-limit cache.
"""

from collections.abc import Callable, Generator
from datetime import timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from quest_board.config import config, use_test_database
from quest_board.core.cache import InMemoryCache
from quest_board.core.clock import utc_now
from quest_board.core.coordinator import CapacityCoordinator
from quest_board.core.eligibility import SignupRequest
from quest_board.core.gatekeeper import AdmissionGatekeeper, RateLimiter, TokenStore
from quest_board.core.ledger import RegistrationLedger
from quest_board.db import sessions_repo
from quest_board.db.connection import connection_scope
from quest_board.db.schema import init_database
from quest_board.db.types import SessionRecord
from quest_board.notifications.dispatcher import NotificationDispatcher
from quest_board.services.registration_service import RegistrationService

ADMIN_EMAIL = "dm@questboard.test"

# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path(tmp_path: Path) -> Generator[Path, None, None]:
    """Point the config at a temporary database file for one test."""
    with use_test_database(tmp_path / "test_quest_board.db") as db_path:
        yield db_path


@pytest.fixture(scope="function")
def test_db(temp_db_path: Path) -> Generator[None, None, None]:
    """Initialize a test database with schema but no data."""
    init_database()
    yield


@pytest.fixture(scope="function")
def make_session(test_db) -> Callable[..., SessionRecord]:
    """
    Factory inserting a Scheduled session.

    Example:
        session = make_session(capacity=2, level_tier="tier1")
    """

    def _make(capacity: int = 4, **kwargs) -> SessionRecord:
        kwargs.setdefault("title", "The Sunken Crypt")
        kwargs.setdefault("campaign", "Westmarch")
        kwargs.setdefault("session_date", (utc_now() + timedelta(days=7)).date().isoformat())
        with connection_scope(write=True) as conn:
            return sessions_repo.create_session(conn, capacity=capacity, **kwargs)

    return _make


# ============================================================================
# NOTIFICATION FIXTURES
# ============================================================================


class RecordingTransport:
    """Email transport double that records every send.

    Attributes:
        result: Value returned from ``send`` (``sent`` by default).
        error: When set, ``send`` raises it instead.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict]] = []
        self.result = "sent"
        self.error: Exception | None = None

    def send(self, recipient: str, kind: str, data: dict) -> str:
        if self.error is not None:
            raise self.error
        self.sent.append((recipient, kind, data))
        return self.result

    def kinds_for(self, recipient: str) -> list[str]:
        return [kind for to, kind, _ in self.sent if to == recipient]


@pytest.fixture(scope="function")
def transport() -> RecordingTransport:
    return RecordingTransport()


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


def build_service(
    transport: RecordingTransport,
    *,
    waitlist_enabled: bool = True,
    require_approval: bool = False,
    player_cancel_enabled: bool = True,
    allowed_email_domains: tuple[str, ...] = (),
    max_attempts: int = 5,
) -> RegistrationService:
    """Wire a RegistrationService with test-friendly collaborators."""
    cache = InMemoryCache()
    gatekeeper = AdmissionGatekeeper(
        TokenStore(cache),
        RateLimiter(cache, max_attempts=max_attempts),
    )
    coordinator = CapacityCoordinator(
        RegistrationLedger(),
        waitlist_enabled=waitlist_enabled,
        require_approval=require_approval,
    )
    return RegistrationService(
        gatekeeper,
        coordinator,
        NotificationDispatcher(transport),
        player_cancel_enabled=player_cancel_enabled,
        allowed_email_domains=allowed_email_domains,
        base_url="http://questboard.test",
    )


@pytest.fixture(scope="function")
def service_factory(test_db, transport: RecordingTransport) -> Callable[..., RegistrationService]:
    """Build a service with non-default flags, e.g. ``service_factory(waitlist_enabled=False)``."""

    def _build(**flags) -> RegistrationService:
        return build_service(transport, **flags)

    return _build


@pytest.fixture(scope="function")
def service(service_factory) -> RegistrationService:
    """Service with waitlist on and no approval gate."""
    return service_factory()


@pytest.fixture(scope="function")
def make_request(service: RegistrationService) -> Callable[..., SignupRequest]:
    """
    Factory building a valid SignupRequest with a fresh form token.

    Example:
        request = make_request(session.id, "ana@example.com", character_level=3)
    """

    def _make(session_id: str, email: str, **overrides) -> SignupRequest:
        local = email.split("@", 1)[0]
        fields = {
            "session_id": session_id,
            "email": email,
            "name": local.title(),
            "character_name": f"{local.title()} the Bold",
            "character_class": ["Fighter"],
            "character_level": 3,
            "character_race": "Human",
            "token": service.issue_form_token(),
        }
        fields.update(overrides)
        return SignupRequest(**fields)

    return _make


@pytest.fixture(scope="function")
def signup(service: RegistrationService, make_request) -> Callable:
    """Sign a player up and return the SignupResult."""

    def _signup(session_id: str, email: str, **overrides):
        return service.signup(make_request(session_id, email, **overrides))

    return _signup


# ============================================================================
# FASTAPI TEST CLIENT FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def admin_configured(monkeypatch) -> str:
    """Register ADMIN_EMAIL as the only admin for the test."""
    monkeypatch.setattr(config.security, "admin_emails", [ADMIN_EMAIL])
    return ADMIN_EMAIL


@pytest.fixture(scope="function")
def test_client(service: RegistrationService, admin_configured) -> TestClient:
    """
    FastAPI TestClient bound to the test service.

    Example:
        def test_health(test_client):
            assert test_client.get("/health").status_code == 200
    """
    from quest_board.api.server import create_app

    return TestClient(create_app(service, init_db=False))


def _identity_headers(email: str, name: str = "") -> dict[str, str]:
    return {"X-User-Email": email, "X-User-Name": name or email.split("@", 1)[0].title()}


@pytest.fixture(scope="function")
def headers_for() -> Callable[..., dict[str, str]]:
    """Build identity headers for a player email."""
    return _identity_headers


@pytest.fixture(scope="function")
def admin_headers(admin_configured: str) -> dict[str, str]:
    return _identity_headers(admin_configured, "Dungeon Master")

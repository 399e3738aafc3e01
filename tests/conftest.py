"""Shared pytest fixtures for mirror-quickstart tests.

This module provides reusable fixtures for credential storage, the OAuth
manager, Mirror API client mocks and the web application.
"""

from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from mirror_quickstart.auth.credentials_store import CredentialsStore
from mirror_quickstart.auth.models import CredentialRecord
from mirror_quickstart.auth.oauth_manager import CredentialsResult, OAuthManager
from mirror_quickstart.config import ClientSecrets, Settings
from mirror_quickstart.mirror.models import (
    Contact,
    Subscription,
    SubscriptionListResponse,
    TimelineItem,
    TimelineListResponse,
)

TEST_USER_ID = "108234567890123456789"

# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def client_secrets() -> ClientSecrets:
    """Create OAuth client secrets for a web application."""
    return ClientSecrets.model_validate(
        {
            "web": {
                "client_id": "test-client-id.apps.googleusercontent.com",
                "client_secret": "test-client-secret",  # pragma: allowlist secret
                "redirect_uris": ["http://localhost:4567/oauth2callback"],
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": "https://oauth2.googleapis.com/token",
            }
        }
    )


@pytest.fixture
def static_dir(tmp_path: Path) -> Path:
    """Create a static directory holding one image."""
    images = tmp_path / "static" / "images"
    images.mkdir(parents=True)
    (images / "chipotle-tube-640x360.jpg").write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")
    return tmp_path / "static"


@pytest.fixture
def settings(tmp_path: Path, static_dir: Path) -> Settings:
    """Create settings pointing at temporary files."""
    return Settings(
        client_secrets_path=tmp_path / "client_secrets.json",
        credentials_db=tmp_path / "credentials.sqlite3",
        session_secret="test-session-secret",  # pragma: allowlist secret
        static_dir=static_dir,
    )


# =============================================================================
# Credential Fixtures
# =============================================================================


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Get the path for a temporary credentials database."""
    return tmp_path / "credentials.sqlite3"


@pytest.fixture
def credentials_store(temp_db_path: Path) -> CredentialsStore:
    """Create a CredentialsStore backed by a temporary database."""
    return CredentialsStore(temp_db_path)


@pytest.fixture
def stored_record(credentials_store: CredentialsStore) -> CredentialRecord:
    """Store valid credentials for the test user."""
    return credentials_store.put(
        TEST_USER_ID,
        "stored_access_token",
        "stored_refresh_token",
        datetime.now(timezone.utc) + timedelta(hours=1),
    )


@pytest.fixture
def oauth_manager(
    client_secrets: ClientSecrets, credentials_store: CredentialsStore
) -> OAuthManager:
    """Create an OAuthManager with temporary storage."""
    return OAuthManager(client_secrets, credentials_store)


@pytest.fixture
def mock_google_credentials() -> MagicMock:
    """Create a mock Google OAuth2 Credentials object with a refresh token."""
    mock_creds = MagicMock()
    mock_creds.token = "new_access_token"
    mock_creds.refresh_token = "new_refresh_token"
    mock_creds.expiry = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)
    return mock_creds


# =============================================================================
# HTTP Helpers
# =============================================================================


@pytest.fixture
def make_response() -> Callable[..., MagicMock]:
    """Return a factory for mock httpx Response objects."""

    def create_mock_response(
        json_data: dict[str, Any] | None = None,
        status_code: int = 200,
        content: bytes = b"",
    ) -> MagicMock:
        mock_response = MagicMock(spec=httpx.Response)
        mock_response.status_code = status_code
        mock_response.json.return_value = json_data if json_data is not None else {}
        mock_response.content = content
        if status_code >= 400:
            mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
                f"HTTP {status_code}",
                request=MagicMock(spec=httpx.Request),
                response=mock_response,
            )
        else:
            mock_response.raise_for_status = MagicMock()
        return mock_response

    return create_mock_response


# =============================================================================
# Mirror Client Mocks
# =============================================================================


@pytest.fixture
def mock_mirror() -> MagicMock:
    """Create a mock MirrorClient usable as an async context manager.

    Provides defaults for the calls the dashboard makes:
    - list_timeline() -> one text item
    - get_contact() -> the demo contact
    - list_subscriptions() -> a timeline subscription
    """
    mock = MagicMock()
    mock.__aenter__ = AsyncMock(return_value=mock)
    mock.__aexit__ = AsyncMock(return_value=None)

    mock.list_timeline = AsyncMock(
        return_value=TimelineListResponse(items=[TimelineItem(id="item-1", text="Hello Glass")])
    )
    mock.insert_timeline_item = AsyncMock(return_value=TimelineItem(id="new-item"))
    mock.get_timeline_item = AsyncMock(return_value=TimelineItem(id="item-1", text="Hello Glass"))
    mock.patch_timeline_item = AsyncMock(return_value=TimelineItem(id="item-1"))
    mock.delete_timeline_item = AsyncMock(return_value=None)
    mock.get_timeline_attachment = AsyncMock()
    mock.download = AsyncMock(return_value=b"")
    mock.get_contact = AsyncMock(
        return_value=Contact(id="python-quick-start", display_name="Python Quick Start")
    )
    mock.insert_contact = AsyncMock(return_value=Contact(id="python-quick-start"))
    mock.delete_contact = AsyncMock(return_value=None)
    mock.get_location = AsyncMock()
    mock.list_subscriptions = AsyncMock(
        return_value=SubscriptionListResponse(
            items=[Subscription(id="timeline", collection="timeline")]
        )
    )
    mock.insert_subscription = AsyncMock(return_value=Subscription(id="timeline"))
    mock.delete_subscription = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def client_factory(mock_mirror: MagicMock) -> MagicMock:
    """Create a client factory that always hands out ``mock_mirror``."""
    return MagicMock(return_value=mock_mirror)


# =============================================================================
# Web Application Fixtures
# =============================================================================


@pytest.fixture
def mock_oauth(credentials_store: CredentialsStore) -> MagicMock:
    """Create a mock OAuthManager whose code exchange signs in the test user."""
    mock = MagicMock(spec=OAuthManager)
    mock.store = credentials_store
    mock.build_authorization_url.return_value = (
        "https://accounts.google.com/o/oauth2/auth?client_id=test&access_type=offline"
    )

    async def get_credentials(code: str, state: str | None = None) -> CredentialsResult:
        record = credentials_store.put(TEST_USER_ID, "access_from_code", "refresh_from_code")
        return CredentialsResult(record=record)

    mock.get_credentials = AsyncMock(side_effect=get_credentials)
    return mock


@pytest.fixture
def app(settings, credentials_store, mock_oauth, client_factory):
    """Create the web application with mocked OAuth and Mirror API access."""
    from mirror_quickstart.web import create_app

    return create_app(
        settings,
        store=credentials_store,
        oauth=mock_oauth,
        client_factory=client_factory,
    )


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client that does not follow redirects."""
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client


@pytest.fixture
def logged_in_client(client: TestClient, mock_mirror: MagicMock) -> TestClient:
    """Sign the test user in through /oauth2callback, then forget the bootstrap calls."""
    response = client.get("/oauth2callback", params={"code": "test-code"})
    assert response.status_code == 303
    mock_mirror.reset_mock()
    return client

"""Unit tests for OAuthManager class.

Tests cover consent URL construction, code exchange, user identification,
the credential decision table and token refresh.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest
from google.oauth2.credentials import Credentials

from mirror_quickstart.auth.credentials_store import CredentialsStore
from mirror_quickstart.auth.errors import (
    CodeExchangeError,
    NoRefreshTokenError,
    NoUserIdError,
)
from mirror_quickstart.auth.models import CredentialRecord, UserInfo
from mirror_quickstart.auth.oauth_manager import MIRROR_SCOPES, OAuthManager

USER_ID = "108234567890123456789"


def _query(url: str) -> dict[str, list[str]]:
    return parse_qs(urlparse(url).query)


@pytest.mark.unit
class TestBuildAuthorizationUrl:
    """Tests for OAuthManager.build_authorization_url() method."""

    def test_should_request_offline_access_with_consent(
        self, oauth_manager: OAuthManager
    ) -> None:
        """Verify the URL always forces a refresh token to be issued."""
        url = oauth_manager.build_authorization_url()

        assert url.startswith("https://accounts.google.com/o/oauth2/auth")
        query = _query(url)
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]
        assert query["response_type"] == ["code"]
        assert query["client_id"] == ["test-client-id.apps.googleusercontent.com"]
        assert query["redirect_uri"] == ["http://localhost:4567/oauth2callback"]

    def test_should_request_mirror_scopes(self, oauth_manager: OAuthManager) -> None:
        query = _query(oauth_manager.build_authorization_url())

        assert query["scope"][0].split(" ") == MIRROR_SCOPES

    def test_should_include_login_hint_and_state(self, oauth_manager: OAuthManager) -> None:
        query = _query(oauth_manager.build_authorization_url(USER_ID, state="xyz"))

        assert query["login_hint"] == [USER_ID]
        assert query["state"] == ["xyz"]

    def test_should_omit_login_hint_for_unknown_user(self, oauth_manager: OAuthManager) -> None:
        query = _query(oauth_manager.build_authorization_url(""))

        assert "login_hint" not in query


@pytest.mark.unit
class TestExchangeCode:
    """Tests for OAuthManager.exchange_code() method."""

    @pytest.mark.asyncio
    async def test_should_return_credentials(
        self, oauth_manager: OAuthManager, mock_google_credentials: MagicMock
    ) -> None:
        with patch.object(oauth_manager, "_fetch_token", return_value=mock_google_credentials):
            credentials = await oauth_manager.exchange_code("auth-code")

        assert credentials is mock_google_credentials

    @pytest.mark.asyncio
    async def test_should_wrap_failures(self, oauth_manager: OAuthManager) -> None:
        """Verify token endpoint failures surface as CodeExchangeError."""
        with patch.object(
            oauth_manager, "_fetch_token", side_effect=ValueError("invalid_grant")
        ):
            with pytest.raises(CodeExchangeError) as exc_info:
                await oauth_manager.exchange_code("bad-code")

        assert "invalid_grant" in str(exc_info.value)
        assert exc_info.value.authorization_url is None


@pytest.mark.unit
class TestFetchUserInfo:
    """Tests for OAuthManager.fetch_user_info() method."""

    def _patch_http(self, response: MagicMock):
        mock_client = MagicMock()
        mock_client.get = AsyncMock(return_value=response)
        mock_client_class = MagicMock()
        mock_client_class.return_value.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client_class.return_value.__aexit__ = AsyncMock(return_value=None)
        return patch("httpx.AsyncClient", mock_client_class), mock_client

    @pytest.mark.asyncio
    async def test_should_return_user_info(
        self, oauth_manager: OAuthManager, mock_google_credentials: MagicMock, make_response
    ) -> None:
        patcher, mock_client = self._patch_http(
            make_response({"id": USER_ID, "name": "Glass Explorer", "verified_email": True})
        )

        with patcher:
            user_info = await oauth_manager.fetch_user_info(mock_google_credentials)

        assert user_info == UserInfo(id=USER_ID, name="Glass Explorer")
        headers = mock_client.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer new_access_token"

    @pytest.mark.asyncio
    async def test_should_raise_when_id_missing(
        self, oauth_manager: OAuthManager, mock_google_credentials: MagicMock, make_response
    ) -> None:
        patcher, _ = self._patch_http(make_response({"name": "No Id"}))

        with patcher:
            with pytest.raises(NoUserIdError):
                await oauth_manager.fetch_user_info(mock_google_credentials)

    @pytest.mark.asyncio
    async def test_should_raise_on_http_error(
        self, oauth_manager: OAuthManager, mock_google_credentials: MagicMock, make_response
    ) -> None:
        patcher, _ = self._patch_http(make_response(status_code=401))

        with patcher:
            with pytest.raises(NoUserIdError):
                await oauth_manager.fetch_user_info(mock_google_credentials)


@pytest.mark.unit
class TestGetCredentials:
    """Tests for OAuthManager.get_credentials() decision table."""

    @pytest.mark.asyncio
    async def test_should_store_new_refresh_token(
        self,
        oauth_manager: OAuthManager,
        credentials_store: CredentialsStore,
        mock_google_credentials: MagicMock,
    ) -> None:
        with (
            patch.object(
                oauth_manager, "exchange_code", AsyncMock(return_value=mock_google_credentials)
            ),
            patch.object(
                oauth_manager, "fetch_user_info", AsyncMock(return_value=UserInfo(id=USER_ID))
            ),
        ):
            result = await oauth_manager.get_credentials("auth-code")

        assert result.ok
        assert result.record.user_id == USER_ID
        assert result.record.access_token == "new_access_token"
        assert result.record.refresh_token == "new_refresh_token"
        assert result.record.expires_at is not None
        assert credentials_store.get(USER_ID) == result.record

    @pytest.mark.asyncio
    async def test_should_replace_stored_refresh_token(
        self,
        oauth_manager: OAuthManager,
        credentials_store: CredentialsStore,
        mock_google_credentials: MagicMock,
    ) -> None:
        credentials_store.put(USER_ID, "old_access", "old_refresh")

        with (
            patch.object(
                oauth_manager, "exchange_code", AsyncMock(return_value=mock_google_credentials)
            ),
            patch.object(
                oauth_manager, "fetch_user_info", AsyncMock(return_value=UserInfo(id=USER_ID))
            ),
        ):
            await oauth_manager.get_credentials("auth-code")

        assert credentials_store.get(USER_ID).refresh_token == "new_refresh_token"

    @pytest.mark.asyncio
    async def test_should_fall_back_to_stored_credentials(
        self,
        oauth_manager: OAuthManager,
        credentials_store: CredentialsStore,
        mock_google_credentials: MagicMock,
    ) -> None:
        """Verify a repeat consent without a refresh token reuses the stored one."""
        stored = credentials_store.put(USER_ID, "stored_access", "stored_refresh")
        mock_google_credentials.refresh_token = None

        with (
            patch.object(
                oauth_manager, "exchange_code", AsyncMock(return_value=mock_google_credentials)
            ),
            patch.object(
                oauth_manager, "fetch_user_info", AsyncMock(return_value=UserInfo(id=USER_ID))
            ),
        ):
            result = await oauth_manager.get_credentials("auth-code")

        assert result.ok
        assert result.record == stored
        assert credentials_store.get(USER_ID) == stored

    @pytest.mark.asyncio
    async def test_should_require_consent_without_any_refresh_token(
        self,
        oauth_manager: OAuthManager,
        credentials_store: CredentialsStore,
        mock_google_credentials: MagicMock,
    ) -> None:
        mock_google_credentials.refresh_token = None

        with (
            patch.object(
                oauth_manager, "exchange_code", AsyncMock(return_value=mock_google_credentials)
            ),
            patch.object(
                oauth_manager, "fetch_user_info", AsyncMock(return_value=UserInfo(id=USER_ID))
            ),
        ):
            result = await oauth_manager.get_credentials("auth-code", state="s1")

        assert not result.ok
        assert result.record is None
        assert isinstance(result.error, NoRefreshTokenError)
        query = _query(result.error.authorization_url)
        assert query["scope"][0].split(" ") == MIRROR_SCOPES
        assert query["access_type"] == ["offline"]
        assert query["login_hint"] == [USER_ID]
        assert query["state"] == ["s1"]
        assert credentials_store.get(USER_ID) is None

    @pytest.mark.asyncio
    async def test_should_require_consent_when_stored_record_has_no_refresh_token(
        self,
        oauth_manager: OAuthManager,
        credentials_store: CredentialsStore,
        mock_google_credentials: MagicMock,
    ) -> None:
        credentials_store.put(USER_ID, "stored_access", None)
        mock_google_credentials.refresh_token = None

        with (
            patch.object(
                oauth_manager, "exchange_code", AsyncMock(return_value=mock_google_credentials)
            ),
            patch.object(
                oauth_manager, "fetch_user_info", AsyncMock(return_value=UserInfo(id=USER_ID))
            ),
        ):
            result = await oauth_manager.get_credentials("auth-code")

        assert isinstance(result.error, NoRefreshTokenError)

    @pytest.mark.asyncio
    async def test_should_return_exchange_error_with_consent_url(
        self, oauth_manager: OAuthManager
    ) -> None:
        """Verify a rejected code yields an error carrying a URL without login hint."""
        with patch.object(
            oauth_manager,
            "exchange_code",
            AsyncMock(side_effect=CodeExchangeError("invalid_grant")),
        ):
            result = await oauth_manager.get_credentials("bad-code")

        assert isinstance(result.error, CodeExchangeError)
        query = _query(result.error.authorization_url)
        assert query["access_type"] == ["offline"]
        assert "login_hint" not in query

    @pytest.mark.asyncio
    async def test_should_propagate_no_user_id(
        self,
        oauth_manager: OAuthManager,
        credentials_store: CredentialsStore,
        mock_google_credentials: MagicMock,
    ) -> None:
        with (
            patch.object(
                oauth_manager, "exchange_code", AsyncMock(return_value=mock_google_credentials)
            ),
            patch.object(
                oauth_manager,
                "fetch_user_info",
                AsyncMock(side_effect=NoUserIdError("no id")),
            ),
        ):
            with pytest.raises(NoUserIdError):
                await oauth_manager.get_credentials("auth-code")

        assert credentials_store.list_user_ids() == []


@pytest.mark.unit
class TestRecordToCredentials:
    """Tests for OAuthManager.record_to_credentials() method."""

    def test_should_carry_client_configuration(self, oauth_manager: OAuthManager) -> None:
        record = CredentialRecord(user_id=USER_ID, access_token="a", refresh_token="r")

        credentials = oauth_manager.record_to_credentials(record)

        assert credentials.token == "a"
        assert credentials.refresh_token == "r"
        assert credentials.client_id == "test-client-id.apps.googleusercontent.com"
        assert credentials.token_uri == "https://oauth2.googleapis.com/token"

    def test_should_convert_expiry_to_naive_utc(self, oauth_manager: OAuthManager) -> None:
        expires_at = datetime(2030, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        record = CredentialRecord(user_id=USER_ID, access_token="a", expires_at=expires_at)

        credentials = oauth_manager.record_to_credentials(record)

        assert credentials.expiry == datetime(2030, 1, 1, 12, 0)


@pytest.mark.unit
class TestRefresh:
    """Tests for OAuthManager.refresh() method."""

    @pytest.mark.asyncio
    async def test_should_store_refreshed_token(
        self, oauth_manager: OAuthManager, credentials_store: CredentialsStore
    ) -> None:
        record = credentials_store.put(
            USER_ID,
            "expired_access",
            "stored_refresh",
            datetime.now(timezone.utc) - timedelta(minutes=5),
        )
        new_expiry = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)

        def fake_refresh(credentials: Credentials, request: object) -> None:
            credentials.token = "refreshed_access"
            credentials.expiry = new_expiry

        with patch.object(Credentials, "refresh", autospec=True, side_effect=fake_refresh):
            refreshed = await oauth_manager.refresh(record)

        assert refreshed.access_token == "refreshed_access"
        assert refreshed.refresh_token == "stored_refresh"
        assert not refreshed.is_expired()
        assert credentials_store.get(USER_ID) == refreshed

    @pytest.mark.asyncio
    async def test_should_reject_record_without_refresh_token(
        self, oauth_manager: OAuthManager
    ) -> None:
        record = CredentialRecord(user_id=USER_ID, access_token="a")

        with pytest.raises(NoRefreshTokenError) as exc_info:
            await oauth_manager.refresh(record)

        assert _query(exc_info.value.authorization_url)["login_hint"] == [USER_ID]

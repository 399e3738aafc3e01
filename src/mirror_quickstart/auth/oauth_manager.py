"""OAuth2 helper for the Mirror API quick start.

This module drives the server-side OAuth2 web flow using
google-auth-oauthlib: building the consent screen URL, exchanging the
authorization code, identifying the user and deciding which credentials
to keep.

Google only issues a refresh token the first time a user consents. Later
code exchanges omit it, so ``get_credentials`` falls back to the refresh
token stored from the first consent before asking the user to approve
offline access again.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from mirror_quickstart.auth.credentials_store import CredentialsStore
from mirror_quickstart.auth.errors import (
    CodeExchangeError,
    GetCredentialsError,
    NoRefreshTokenError,
    NoUserIdError,
)
from mirror_quickstart.auth.models import CredentialRecord, UserInfo
from mirror_quickstart.config import ClientSecrets

# Google may return additional previously-granted scopes in the token response
os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")

logger = logging.getLogger(__name__)

MIRROR_SCOPES = [
    "https://www.googleapis.com/auth/glass.timeline",
    "https://www.googleapis.com/auth/glass.location",
    "https://www.googleapis.com/auth/userinfo.profile",
]

USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


@dataclass
class CredentialsResult:
    """Outcome of turning an authorization code into stored credentials.

    Exactly one of ``record`` and ``error`` is set. When ``error`` is set,
    ``error.authorization_url`` is where the user must be sent next.

    Attributes:
        record: Credentials to use for the user.
        error: Why no usable credentials could be obtained.
    """

    record: CredentialRecord | None = None
    error: GetCredentialsError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class OAuthManager:
    """OAuth2 web-flow manager backed by a ``CredentialsStore``.

    Attributes:
        client_secrets: OAuth client configuration.
        store: Where per-user credentials are persisted.

    Example:
        ```python
        manager = OAuthManager(load_client_secrets(), CredentialsStore())

        # Step 1: send the browser to the consent screen
        url = manager.build_authorization_url()

        # Step 2: handle the redirect back
        result = await manager.get_credentials(code)
        if not result.ok:
            redirect(result.error.authorization_url)
        ```
    """

    def __init__(self, client_secrets: ClientSecrets, store: CredentialsStore) -> None:
        """Initialize OAuth manager.

        Args:
            client_secrets: OAuth client ID, secret and endpoints.
            store: Credential store for persisting tokens.
        """
        self.client_secrets = client_secrets
        self.store = store

    def _make_flow(self) -> Flow:
        """Create a Flow for this client.

        The code verifier is not auto-generated: the consent redirect and
        the code exchange happen in different requests, on different Flow
        instances.
        """
        return Flow.from_client_config(
            self.client_secrets.to_client_config(),
            scopes=MIRROR_SCOPES,
            redirect_uri=self.client_secrets.redirect_uri,
            autogenerate_code_verifier=False,
        )

    @staticmethod
    def _expiry_of(credentials: Credentials) -> datetime | None:
        """Return the credentials' expiry as a timezone-aware datetime."""
        if credentials.expiry is None:
            return None
        expiry = credentials.expiry
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return expiry

    def record_to_credentials(self, record: CredentialRecord) -> Credentials:
        """Convert a stored record into google-auth Credentials.

        Args:
            record: Stored credentials.

        Returns:
            Credentials able to refresh themselves against the token endpoint.
        """
        expiry = record.expires_at
        if expiry is not None and expiry.tzinfo is not None:
            # google-auth compares expiry against a naive UTC timestamp
            expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)

        return Credentials(
            token=record.access_token,
            refresh_token=record.refresh_token,
            token_uri=self.client_secrets.token_uri,
            client_id=self.client_secrets.client_id,
            client_secret=self.client_secrets.client_secret,
            scopes=MIRROR_SCOPES,
            expiry=expiry,
        )

    def build_authorization_url(self, user_id: str | None = None, state: str | None = None) -> str:
        """Build the consent screen URL.

        Offline access and a forced consent prompt are always requested so
        that Google issues a refresh token.

        Args:
            user_id: Google ID to pre-select on the consent screen, if known.
            state: Opaque value echoed back to the redirect URI.

        Returns:
            Authorization URL to redirect the user to.
        """
        params = {"access_type": "offline", "prompt": "consent"}
        if user_id:
            params["login_hint"] = user_id
        if state:
            params["state"] = state

        auth_url, _ = self._make_flow().authorization_url(**params)
        return auth_url

    def _fetch_token(self, code: str) -> Credentials:
        """Exchange the code for tokens (blocking operation)."""
        flow = self._make_flow()
        flow.fetch_token(code=code)
        return flow.credentials

    async def exchange_code(self, code: str) -> Credentials:
        """Exchange an authorization code for OAuth2 credentials.

        Args:
            code: Authorization code from the OAuth2 redirect.

        Returns:
            Credentials holding an access token and, on first consent,
            a refresh token.

        Raises:
            CodeExchangeError: If the token endpoint rejects the code.
        """
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, self._fetch_token, code)
        except Exception as e:
            logger.exception("An error occurred during code exchange")
            raise CodeExchangeError(f"Code exchange failed: {e}") from e

    async def fetch_user_info(self, credentials: Credentials) -> UserInfo:
        """Query the userinfo endpoint with freshly obtained credentials.

        Args:
            credentials: Credentials to authorize the request.

        Returns:
            The user's profile information.

        Raises:
            NoUserIdError: If the request fails or returns no ID.
        """
        async with httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0)) as client:
            try:
                response = await client.get(
                    USERINFO_URL,
                    headers={
                        "Authorization": f"Bearer {credentials.token}",
                        "Accept": "application/json",
                    },
                )
                response.raise_for_status()
                user_info = UserInfo.model_validate(response.json())
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"An error occurred fetching user info: {e}")
                raise NoUserIdError("Unable to retrieve the user's Google ID.") from e

        if not user_info.id:
            raise NoUserIdError("Unable to retrieve the user's Google ID.")
        return user_info

    def get_stored_credentials(self, user_id: str) -> CredentialRecord | None:
        """Look up previously stored credentials for a user."""
        return self.store.get(user_id)

    async def get_credentials(self, code: str, state: str | None = None) -> CredentialsResult:
        """Resolve the credentials to use after the user returns from consent.

        Exchanges the code and identifies the user. A newly issued refresh
        token is stored under the user's ID. Without one, the refresh token
        stored from an earlier consent is reused. If neither exists the
        result carries a ``NoRefreshTokenError`` with a consent URL.

        Args:
            code: Authorization code to exchange.
            state: State to embed in any authorization URL built on failure.

        Returns:
            CredentialsResult with either a record or an error.

        Raises:
            NoUserIdError: If the user's Google ID cannot be retrieved.
        """
        user_id = ""

        try:
            credentials = await self.exchange_code(code)
        except CodeExchangeError as error:
            error.authorization_url = self.build_authorization_url(user_id, state)
            return CredentialsResult(error=error)

        user_info = await self.fetch_user_info(credentials)
        user_id = user_info.id

        if credentials.refresh_token:
            record = self.store.put(
                user_id,
                credentials.token,
                credentials.refresh_token,
                self._expiry_of(credentials),
            )
            return CredentialsResult(record=record)

        stored = self.store.get(user_id)
        if stored is not None and stored.has_refresh_token:
            return CredentialsResult(record=stored)

        logger.info(f"No refresh token available for user {user_id}; consent required")
        return CredentialsResult(
            error=NoRefreshTokenError(
                "No refresh token was issued or stored.",
                self.build_authorization_url(user_id, state),
            )
        )

    async def refresh(self, record: CredentialRecord) -> CredentialRecord:
        """Refresh an access token and store the new token pair.

        Args:
            record: Stored credentials whose access token has expired.

        Returns:
            The updated record as stored.

        Raises:
            NoRefreshTokenError: If the record has no refresh token.
            google.auth.exceptions.RefreshError: If Google rejects the refresh.
        """
        if not record.has_refresh_token:
            raise NoRefreshTokenError(
                f"Stored credentials for {record.user_id} cannot be refreshed.",
                self.build_authorization_url(record.user_id),
            )

        credentials = self.record_to_credentials(record)

        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, credentials.refresh, Request())
        logger.info(f"Refreshed access token for user {record.user_id}")

        return self.store.put(
            record.user_id,
            credentials.token,
            credentials.refresh_token or record.refresh_token,
            self._expiry_of(credentials),
        )

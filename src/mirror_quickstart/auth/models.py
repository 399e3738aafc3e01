"""Data models for stored OAuth credentials.

The credential store keeps one row per user. The row value is a
serialized ``TokenBundle``; the user ID is the row key, so it is not
repeated inside the bundle.
"""

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, Field


class TokenBundle(BaseModel):
    """Token material serialized into the credentials table.

    Attributes:
        access_token: OAuth2 bearer token.
        refresh_token: Long-lived token used to obtain new access tokens.
        expires_at: When the access token expires, if known.
    """

    access_token: str = Field(..., description="OAuth2 access token")
    refresh_token: str | None = Field(default=None, description="OAuth2 refresh token")
    expires_at: datetime | None = Field(default=None, description="Access token expiry")


class CredentialRecord(TokenBundle):
    """Stored OAuth2 credentials for a single user.

    Attributes:
        user_id: Google account ID the credentials belong to.
    """

    user_id: str = Field(..., description="Google user ID (unique key)")

    @property
    def has_refresh_token(self) -> bool:
        """Whether the record can be refreshed without user interaction."""
        return bool(self.refresh_token)

    def is_expired(self, buffer_seconds: int = 60) -> bool:
        """Check whether the access token has expired.

        Records without a known expiry are treated as valid.

        Args:
            buffer_seconds: Consider the token expired this many seconds early.

        Returns:
            True if the token is expired or about to expire.
        """
        if self.expires_at is None:
            return False

        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) + timedelta(seconds=buffer_seconds) >= expires_at

    def to_bundle(self) -> TokenBundle:
        """Strip the key, leaving only the serialized token material."""
        return TokenBundle(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=self.expires_at,
        )


class UserInfo(BaseModel):
    """Subset of the Google OAuth2 userinfo (v2) response."""

    id: str | None = None
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    picture: str | None = None
    locale: str | None = None

    model_config = {"extra": "ignore"}

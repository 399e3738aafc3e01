"""Errors raised while turning an authorization code into credentials."""


class GetCredentialsError(Exception):
    """Credentials could not be obtained; the user must be sent to consent.

    Attributes:
        authorization_url: Consent screen URL requesting offline access.
    """

    def __init__(self, message: str, authorization_url: str | None = None) -> None:
        super().__init__(message)
        self.authorization_url = authorization_url


class CodeExchangeError(GetCredentialsError):
    """The identity provider rejected the authorization code."""


class NoRefreshTokenError(GetCredentialsError):
    """No refresh token was issued and none is stored for the user."""


class NoUserIdError(Exception):
    """The userinfo endpoint did not return a usable Google ID."""

"""OAuth2 authorization for the Mirror API quick start.

This package handles the server-side OAuth2 web flow and per-user
credential storage.

Quick Start:
    ```python
    from mirror_quickstart.auth import CredentialsStore, OAuthManager
    from mirror_quickstart.config import load_client_secrets

    manager = OAuthManager(load_client_secrets(), CredentialsStore())

    result = await manager.get_credentials(code)
    if result.ok:
        record = result.record
    ```
"""

from mirror_quickstart.auth.credentials_store import CredentialsStore
from mirror_quickstart.auth.errors import (
    CodeExchangeError,
    GetCredentialsError,
    NoRefreshTokenError,
    NoUserIdError,
)
from mirror_quickstart.auth.models import CredentialRecord, TokenBundle, UserInfo
from mirror_quickstart.auth.oauth_manager import MIRROR_SCOPES, CredentialsResult, OAuthManager

__all__ = [
    "OAuthManager",
    "CredentialsStore",
    "CredentialsResult",
    "CredentialRecord",
    "TokenBundle",
    "UserInfo",
    "GetCredentialsError",
    "CodeExchangeError",
    "NoRefreshTokenError",
    "NoUserIdError",
    "MIRROR_SCOPES",
]

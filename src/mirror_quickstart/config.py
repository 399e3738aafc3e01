"""Application configuration.

OAuth client details come from a ``client_secrets.json`` file in the
format downloaded from the Google API Console ("web" application type).
Everything else is read from the environment.

Environment Variables:
    MIRROR_CLIENT_SECRETS: Path to client_secrets.json (default: ./client_secrets.json)
    MIRROR_CREDENTIALS_DB: Path to the SQLite credentials database
        (default: ./credentials.sqlite3)
    MIRROR_SESSION_SECRET: Key used to sign session cookies. A random key is
        generated when unset, which logs everyone out on restart.
    MIRROR_STATIC_DIR: Directory served under /static and used for
        attachments (default: the package's static/ directory)
"""

import json
import logging
import os
import secrets
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_SECRETS = Path("client_secrets.json")
DEFAULT_CREDENTIALS_DB = Path("credentials.sqlite3")
PACKAGE_STATIC_DIR = Path(__file__).parent / "static"

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"  # nosec B105 - public endpoint


class ConfigurationError(Exception):
    """Raised when the application configuration is missing or invalid."""


class WebClientConfig(BaseModel):
    """The "web" section of client_secrets.json."""

    client_id: str = Field(..., description="OAuth client ID")
    client_secret: str = Field(..., description="OAuth client secret")
    redirect_uris: list[str] = Field(..., min_length=1, description="Allowed redirect URIs")
    auth_uri: str = Field(default=GOOGLE_AUTH_URI, description="Authorization endpoint")
    token_uri: str = Field(default=GOOGLE_TOKEN_URI, description="Token endpoint")


class ClientSecrets(BaseModel):
    """Parsed client_secrets.json."""

    web: WebClientConfig

    @property
    def client_id(self) -> str:
        return self.web.client_id

    @property
    def client_secret(self) -> str:
        return self.web.client_secret

    @property
    def redirect_uri(self) -> str:
        """First configured redirect URI; the one sent to the consent screen."""
        return self.web.redirect_uris[0]

    @property
    def token_uri(self) -> str:
        return self.web.token_uri

    def to_client_config(self) -> dict:
        """Return the dict form expected by ``google_auth_oauthlib.flow.Flow``."""
        return {"web": self.web.model_dump()}


def load_client_secrets(path: Path | str = DEFAULT_CLIENT_SECRETS) -> ClientSecrets:
    """Load and validate a client_secrets.json file.

    Args:
        path: Location of the file.

    Returns:
        Parsed client secrets.

    Raises:
        ConfigurationError: If the file is missing or malformed.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(
            f"OAuth client secrets not found at {path}. "
            "Download client_secrets.json from the Google API Console "
            "or set MIRROR_CLIENT_SECRETS."
        )

    try:
        with open(path) as f:
            data = json.load(f)
        return ClientSecrets.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise ConfigurationError(f"Invalid client secrets file {path}: {e}") from e


class Settings(BaseModel):
    """Runtime settings for the web application."""

    client_secrets_path: Path = Field(default=DEFAULT_CLIENT_SECRETS)
    credentials_db: Path = Field(default=DEFAULT_CREDENTIALS_DB)
    session_secret: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    static_dir: Path = Field(default=PACKAGE_STATIC_DIR)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from MIRROR_* environment variables."""
        values: dict[str, str] = {}
        env_map = {
            "MIRROR_CLIENT_SECRETS": "client_secrets_path",
            "MIRROR_CREDENTIALS_DB": "credentials_db",
            "MIRROR_SESSION_SECRET": "session_secret",
            "MIRROR_STATIC_DIR": "static_dir",
        }
        for env_name, field_name in env_map.items():
            value = os.environ.get(env_name)
            if value:
                values[field_name] = value

        if "session_secret" not in values:
            logger.warning("MIRROR_SESSION_SECRET not set; sessions will not survive a restart")

        return cls.model_validate(values)

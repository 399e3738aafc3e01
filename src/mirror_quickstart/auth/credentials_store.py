"""SQLite-backed storage for per-user OAuth credentials.

The OAuth code in ``oauth_manager`` calls into this module; it decides
where and how user credentials are kept. One table holds one row per
Google user ID, the value being a JSON-serialized ``TokenBundle``.

Storage Location: ./credentials.sqlite3 (override with MIRROR_CREDENTIALS_DB)

Every call opens its own connection. Lookups followed by upserts for the
same user are not wrapped in a transaction.
"""

import logging
import sqlite3
from contextlib import closing
from datetime import datetime
from pathlib import Path

from mirror_quickstart.auth.models import CredentialRecord, TokenBundle

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("credentials.sqlite3")

_SCHEMA_EXISTS = "SELECT count(*) FROM sqlite_master WHERE type = 'table' AND name = 'credentials'"
_CREATE_SCHEMA = (
    "CREATE TABLE credentials (userid TEXT NOT NULL UNIQUE, credentials TEXT NOT NULL)"
)


class CredentialsStore:
    """Key-value map of user ID to stored OAuth credentials.

    Attributes:
        db_path: Path to the SQLite database file.

    Example:
        ```python
        store = CredentialsStore(Path("credentials.sqlite3"))
        store.put("1234", "access", "refresh")
        record = store.get("1234")
        ```
    """

    def __init__(self, db_path: Path | str | None = None) -> None:
        """Initialize the store.

        Args:
            db_path: Database file. Defaults to ./credentials.sqlite3.
        """
        self.db_path = Path(db_path) if db_path is not None else DEFAULT_DB_PATH

    def init(self) -> sqlite3.Connection:
        """Open the database, creating the credentials table if missing.

        Safe to call repeatedly; the table is only created when
        ``sqlite_master`` does not list it yet.

        Returns:
            An open connection. The caller is responsible for closing it.
        """
        conn = sqlite3.connect(self.db_path)
        (count,) = conn.execute(_SCHEMA_EXISTS).fetchone()
        if count == 0:
            logger.info(f"Creating credentials table in {self.db_path}")
            with conn:
                conn.execute(_CREATE_SCHEMA)
        return conn

    def get(self, user_id: str) -> CredentialRecord | None:
        """Retrieve stored credentials for a user.

        Args:
            user_id: Google user ID.

        Returns:
            The stored record, or None if the user has never authorized.
        """
        with closing(self.init()) as conn:
            row = conn.execute(
                "SELECT credentials FROM credentials WHERE userid = ?", (user_id,)
            ).fetchone()

        if row is None:
            return None

        bundle = TokenBundle.model_validate_json(row[0])
        return CredentialRecord(user_id=user_id, **bundle.model_dump())

    def list_user_ids(self) -> list[str]:
        """List the IDs of every user with stored credentials."""
        with closing(self.init()) as conn:
            rows = conn.execute("SELECT userid FROM credentials").fetchall()
        return [row[0] for row in rows]

    def put(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None = None,
    ) -> CredentialRecord:
        """Insert or replace the credentials stored for a user.

        Args:
            user_id: Google user ID.
            access_token: OAuth2 access token.
            refresh_token: OAuth2 refresh token, if one was issued.
            expires_at: Access token expiry, if known.

        Returns:
            The record as read back from the database.
        """
        bundle = TokenBundle(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )

        with closing(self.init()) as conn, conn:
            conn.execute(
                "INSERT OR REPLACE INTO credentials (userid, credentials) VALUES (?, ?)",
                (user_id, bundle.model_dump_json()),
            )

        stored = self.get(user_id)
        if stored is None:
            raise sqlite3.DatabaseError(f"Credentials for {user_id} vanished after write")
        return stored

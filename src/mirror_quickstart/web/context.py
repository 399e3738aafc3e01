"""Per-request state passed explicitly to route handlers."""

from dataclasses import dataclass
from typing import Any

from mirror_quickstart.auth.models import CredentialRecord

USER_ID_KEY = "user_id"
MESSAGE_KEY = "message"


class NotAuthorizedError(Exception):
    """The session has no user with stored credentials."""


@dataclass
class RequestContext:
    """The signed-in user and flash message for one request.

    Attributes:
        session: The request's cookie-backed session mapping.
        base_url: Public base URL of the application, without trailing slash.
        record: Stored credentials of the signed-in user, once verified.
    """

    session: dict[str, Any]
    base_url: str
    record: CredentialRecord | None = None

    @property
    def user_id(self) -> str | None:
        return self.session.get(USER_ID_KEY)

    def login(self, user_id: str) -> None:
        self.session[USER_ID_KEY] = user_id

    def flash(self, message: str) -> None:
        """Set a message to show on the next page render."""
        self.session[MESSAGE_KEY] = message

    def pop_message(self) -> str | None:
        """Return the flash message and clear it."""
        return self.session.pop(MESSAGE_KEY, None)

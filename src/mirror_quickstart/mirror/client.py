"""A small facade over the Mirror API REST endpoints.

``MirrorClient`` is built per request from a user's stored credentials.
Each call authorizes with the user's access token, refreshing it first
when it has expired, and returns the response parsed into the models in
``mirror_quickstart.mirror.models``.
"""

import json
import logging
import secrets
from typing import Any

import httpx
from google.auth.exceptions import RefreshError

from mirror_quickstart.auth.models import CredentialRecord
from mirror_quickstart.auth.oauth_manager import OAuthManager
from mirror_quickstart.mirror.models import (
    Attachment,
    AttachmentsListResponse,
    Contact,
    Location,
    Subscription,
    SubscriptionListResponse,
    TimelineItem,
    TimelineListResponse,
)

logger = logging.getLogger(__name__)

MIRROR_API_BASE = "https://www.googleapis.com/mirror/v1"
MIRROR_UPLOAD_BASE = "https://www.googleapis.com/upload/mirror/v1"


class MirrorClientError(Exception):
    """The Mirror API answered with an error status.

    Attributes:
        status_code: HTTP status of the failed response.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @classmethod
    def from_response(cls, response: httpx.Response) -> "MirrorClientError":
        """Build an error from a failed response, using Google's error message if present."""
        message = f"Mirror API request failed with status {response.status_code}"
        try:
            detail = response.json().get("error", {}).get("message")
            if detail:
                message = f"{message}: {detail}"
        except (ValueError, AttributeError):
            pass
        return cls(message, status_code=response.status_code)


def build_multipart_body(
    metadata: dict[str, Any], media: bytes, content_type: str
) -> tuple[bytes, str]:
    """Build a multipart/related upload body.

    Args:
        metadata: JSON resource sent as the first part.
        media: Raw attachment bytes sent as the second part.
        content_type: MIME type of the attachment.

    Returns:
        Tuple of (body bytes, Content-Type header value).
    """
    boundary = f"===============mirror_{secrets.token_hex(12)}=="
    head = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {content_type}\r\n"
        "Content-Transfer-Encoding: binary\r\n\r\n"
    ).encode()
    tail = f"\r\n--{boundary}--".encode()
    return head + media + tail, f'multipart/related; boundary="{boundary}"'


class MirrorClient:
    """Authorized access to one user's Mirror API resources.

    Attributes:
        record: The user's stored credentials. Replaced after a refresh.
        oauth: OAuth manager used to refresh expired access tokens.

    Example:
        ```python
        async with MirrorClient(record, oauth) as mirror:
            timeline = await mirror.list_timeline(3)
            await mirror.insert_timeline_item(TimelineItem(text="Hello"))
        ```
    """

    def __init__(
        self,
        record: CredentialRecord,
        oauth: OAuthManager | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            record: Credentials authorizing access.
            oauth: Manager used to refresh expired tokens. Without one,
                expired tokens are sent as-is.
            http_client: HTTP client to use. Created lazily if not provided.
        """
        self.record = record
        self.oauth = oauth
        self._http_client = http_client

    async def __aenter__(self) -> "MirrorClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client.

        Returns:
            httpx.AsyncClient instance.
        """
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0))
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def can_refresh(self) -> bool:
        return self.oauth is not None and self.record.has_refresh_token

    async def _refresh(self) -> None:
        """Replace the stored access token.

        Raises:
            MirrorClientError: With status 401 if Google rejects the refresh
                token, e.g. because the user revoked access.
        """
        try:
            self.record = await self.oauth.refresh(self.record)
        except RefreshError as e:
            logger.warning(f"Refreshing access token for user {self.record.user_id} failed: {e}")
            raise MirrorClientError(
                f"Stored credentials were rejected: {e}", status_code=401
            ) from e

    async def _get_access_token(self) -> str:
        """Get a valid access token, refreshing if necessary."""
        if self.record.is_expired() and self.can_refresh:
            logger.info(f"Access token for user {self.record.user_id} expired, refreshing")
            await self._refresh()
        return self.record.access_token

    async def _make_raw_request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make an authenticated HTTP request returning the raw response.

        Args:
            method: HTTP method (GET, POST, etc.).
            url: Full URL to request.
            params: Optional query parameters.
            json_data: Optional JSON body data.
            content: Optional raw body content.
            headers: Optional additional headers.

        Returns:
            Raw httpx.Response object.

        Raises:
            MirrorClientError: If the API returns an error status. A 401 is
                retried once with a refreshed token.
        """
        client = await self._get_http_client()

        async def send(access_token: str) -> httpx.Response:
            request_headers = {"Authorization": f"Bearer {access_token}"}
            if headers:
                request_headers.update(headers)
            return await client.request(
                method=method,
                url=url,
                params=params,
                json=json_data,
                content=content,
                headers=request_headers,
            )

        response = await send(await self._get_access_token())
        if response.status_code == 401 and self.can_refresh:
            logger.info(f"Access token for user {self.record.user_id} rejected, refreshing")
            await self._refresh()
            response = await send(self.record.access_token)

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise MirrorClientError.from_response(e.response) from e
        return response

    async def _make_request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated JSON request against the Mirror API.

        Args:
            method: HTTP method.
            path: Path below the API base URL, e.g. "/timeline".
            params: Optional query parameters.
            json_data: Optional JSON body data.

        Returns:
            JSON response as a dictionary.
        """
        response = await self._make_raw_request(
            method,
            f"{MIRROR_API_BASE}{path}",
            params=params,
            json_data=json_data,
            headers={"Accept": "application/json"},
        )
        result: dict[str, Any] = response.json()
        return result

    async def _make_delete_request(self, path: str) -> None:
        await self._make_raw_request("DELETE", f"{MIRROR_API_BASE}{path}")

    async def download(self, url: str) -> bytes:
        """Download content that requires authorization, e.g. attachment data.

        Args:
            url: Absolute URL of the content.

        Returns:
            The response body.
        """
        response = await self._make_raw_request("GET", url)
        return response.content

    # Timeline

    async def list_timeline(self, max_results: int | None = None) -> TimelineListResponse:
        """List the most recent timeline items inserted by this application.

        Paging is not supported.

        Args:
            max_results: Maximum number of items to return.
        """
        params = {"maxResults": max_results} if max_results is not None else None
        data = await self._make_request("GET", "/timeline", params=params)
        return TimelineListResponse.model_validate(data)

    async def insert_timeline_item(
        self,
        item: TimelineItem,
        attachment: bytes | None = None,
        content_type: str | None = None,
    ) -> TimelineItem:
        """Insert a timeline item, with an optional attachment.

        With both an attachment and a content type the item is sent as a
        multipart upload; otherwise only the metadata is inserted.

        Args:
            item: The item to insert.
            attachment: Raw media bytes to attach.
            content_type: MIME type of the attachment.

        Returns:
            The inserted item as returned by the API.
        """
        if attachment is not None and content_type:
            body, body_type = build_multipart_body(item.to_api(), attachment, content_type)
            response = await self._make_raw_request(
                "POST",
                f"{MIRROR_UPLOAD_BASE}/timeline",
                params={"uploadType": "multipart"},
                content=body,
                headers={"Content-Type": body_type, "Accept": "application/json"},
            )
            return TimelineItem.model_validate(response.json())

        data = await self._make_request("POST", "/timeline", json_data=item.to_api())
        return TimelineItem.model_validate(data)

    async def get_timeline_item(self, item_id: str) -> TimelineItem:
        data = await self._make_request("GET", f"/timeline/{item_id}")
        return TimelineItem.model_validate(data)

    async def patch_timeline_item(self, item_id: str, item: TimelineItem) -> TimelineItem:
        """Patch a timeline item, replacing only the fields set on ``item``.

        Args:
            item_id: ID of the item to patch.
            item: Partially populated item holding the new values.

        Returns:
            The updated item.
        """
        data = await self._make_request("PATCH", f"/timeline/{item_id}", json_data=item.to_api())
        return TimelineItem.model_validate(data)

    async def delete_timeline_item(self, item_id: str) -> None:
        await self._make_delete_request(f"/timeline/{item_id}")

    async def list_timeline_attachments(self, item_id: str) -> AttachmentsListResponse:
        data = await self._make_request("GET", f"/timeline/{item_id}/attachments")
        return AttachmentsListResponse.model_validate(data)

    async def get_timeline_attachment(self, item_id: str, attachment_id: str) -> Attachment:
        """Get the metadata of an attachment, including its content URL."""
        data = await self._make_request("GET", f"/timeline/{item_id}/attachments/{attachment_id}")
        return Attachment.model_validate(data)

    # Contacts

    async def get_contact(self, contact_id: str) -> Contact:
        """Get a contact.

        Raises:
            MirrorClientError: If the contact does not exist.
        """
        data = await self._make_request("GET", f"/contacts/{contact_id}")
        return Contact.model_validate(data)

    async def insert_contact(self, contact: Contact) -> Contact:
        data = await self._make_request("POST", "/contacts", json_data=contact.to_api())
        return Contact.model_validate(data)

    async def delete_contact(self, contact_id: str) -> None:
        await self._make_delete_request(f"/contacts/{contact_id}")

    # Locations

    async def get_location(self, location_id: str) -> Location:
        """Get a location by ID, or "latest" for the user's most recent one."""
        data = await self._make_request("GET", f"/locations/{location_id}")
        return Location.model_validate(data)

    # Subscriptions

    async def list_subscriptions(self) -> SubscriptionListResponse:
        data = await self._make_request("GET", "/subscriptions")
        return SubscriptionListResponse.model_validate(data)

    async def insert_subscription(
        self, user_token: str, collection: str, callback_url: str
    ) -> Subscription:
        """Subscribe to notifications for a collection.

        The API only accepts HTTPS callback URLs.

        Args:
            user_token: Token echoed back in notifications; the user's ID.
            collection: "timeline" or "locations".
            callback_url: URL that receives notification POSTs.

        Returns:
            The created subscription.
        """
        subscription = Subscription(
            user_token=user_token,
            collection=collection,
            callback_url=callback_url,
        )
        data = await self._make_request("POST", "/subscriptions", json_data=subscription.to_api())
        return Subscription.model_validate(data)

    async def delete_subscription(self, subscription_id: str) -> None:
        await self._make_delete_request(f"/subscriptions/{subscription_id}")

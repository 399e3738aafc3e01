"""Pydantic models for the Mirror API resources used by the quick start.

Only the fields the application reads or writes are declared. Field names
are snake_case in Python and camelCase on the wire.
"""

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class MirrorModel(BaseModel):
    """Base model mapping snake_case attributes to camelCase JSON."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "ignore",
    }

    def to_api(self) -> dict:
        """Serialize for a request body, omitting unset fields."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class MenuValue(MirrorModel):
    """Display value of a custom menu item."""

    display_name: str | None = None
    icon_url: str | None = None
    state: str | None = None


class MenuItem(MirrorModel):
    """A menu item attached to a timeline card.

    Attributes:
        action: Built-in action (REPLY, SHARE, READ_ALOUD, ...) or CUSTOM.
        id: Identifier sent back in notifications for CUSTOM actions.
        values: Display values for CUSTOM actions.
    """

    action: str
    id: str | None = None
    values: list[MenuValue] | None = None
    payload: str | None = None


class NotificationConfig(MirrorModel):
    """How the device notifies the user when a card is inserted."""

    level: str | None = None


class Attachment(MirrorModel):
    """Media attached to a timeline item."""

    id: str | None = None
    content_type: str | None = None
    content_url: str | None = None
    is_processing_content: bool | None = None


class TimelineItem(MirrorModel):
    """A timeline card."""

    id: str | None = None
    text: str | None = None
    html: str | None = None
    speakable_text: str | None = None
    notification: NotificationConfig | None = None
    menu_items: list[MenuItem] | None = None
    attachments: list[Attachment] | None = None
    created: str | None = None
    updated: str | None = None


class TimelineListResponse(MirrorModel):
    items: list[TimelineItem] = Field(default_factory=list)
    next_page_token: str | None = None


class AttachmentsListResponse(MirrorModel):
    items: list[Attachment] = Field(default_factory=list)


class Contact(MirrorModel):
    """A contact the user can share timeline items with."""

    id: str | None = None
    display_name: str | None = None
    image_urls: list[str] | None = None
    speakable_name: str | None = None


class Location(MirrorModel):
    """A geographic location reported by the device."""

    id: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    timestamp: str | None = None
    display_name: str | None = None


class Subscription(MirrorModel):
    """A notification subscription to a collection."""

    id: str | None = None
    collection: str | None = None
    user_token: str | None = None
    callback_url: str | None = None
    verify_token: str | None = None
    operation: list[str] | None = None


class SubscriptionListResponse(MirrorModel):
    items: list[Subscription] = Field(default_factory=list)


class UserAction(MirrorModel):
    """An action the user took on a timeline item."""

    type: str
    payload: str | None = None


class Notification(MirrorModel):
    """Payload POSTed by the Mirror API to a subscription callback URL."""

    collection: str
    item_id: str | None = None
    operation: str | None = None
    user_token: str | None = None
    verify_token: str | None = None
    user_actions: list[UserAction] = Field(default_factory=list)

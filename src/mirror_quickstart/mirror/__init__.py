"""Mirror API facade and resource models."""

from mirror_quickstart.mirror.client import MirrorClient, MirrorClientError
from mirror_quickstart.mirror.models import (
    Attachment,
    Contact,
    Location,
    MenuItem,
    MenuValue,
    Notification,
    NotificationConfig,
    Subscription,
    TimelineItem,
    UserAction,
)

__all__ = [
    "MirrorClient",
    "MirrorClientError",
    "Attachment",
    "Contact",
    "Location",
    "MenuItem",
    "MenuValue",
    "Notification",
    "NotificationConfig",
    "Subscription",
    "TimelineItem",
    "UserAction",
]

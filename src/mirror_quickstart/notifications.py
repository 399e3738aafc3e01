"""Handling of Mirror API subscription notifications.

The Mirror API POSTs a JSON ``Notification`` to the subscription's
callback URL. Shared timeline items get their caption rewritten; location
updates produce a new timeline card. Other collections are ignored.
"""

import logging

from mirror_quickstart.mirror.client import MirrorClient
from mirror_quickstart.mirror.models import Notification, TimelineItem

logger = logging.getLogger(__name__)

SHARE_BANNER = "Python Quick Start got your photo!"


async def handle_timeline_notification(notification: Notification, mirror: MirrorClient) -> None:
    """Acknowledge each SHARE action by patching the shared item's text."""
    if notification.item_id is None:
        logger.warning("Ignoring timeline notification without an item ID")
        return

    for user_action in notification.user_actions:
        if user_action.type != "SHARE":
            continue

        item = await mirror.get_timeline_item(notification.item_id)
        caption = item.text or ""

        # Patch rather than update so only the text is touched
        await mirror.patch_timeline_item(
            notification.item_id, TimelineItem(text=f"{SHARE_BANNER} {caption}")
        )


async def handle_location_notification(notification: Notification, mirror: MirrorClient) -> None:
    """Insert a card telling the user where they are.

    Without an item ID the user's most recent location is used.
    """
    location = await mirror.get_location(notification.item_id or "latest")
    await mirror.insert_timeline_item(
        TimelineItem(
            text=(
                f"Python Quick Start says you are at "
                f"{location.latitude} by {location.longitude}."
            )
        )
    )


async def handle_notification(notification: Notification, mirror: MirrorClient) -> None:
    """Dispatch a notification on its collection.

    Args:
        notification: Parsed callback payload.
        mirror: Client authorized as the notification's user.
    """
    if notification.collection == "timeline":
        await handle_timeline_notification(notification, mirror)
    elif notification.collection == "locations":
        await handle_location_notification(notification, mirror)
    else:
        logger.warning(
            f"I don't know how to process this notification: {notification.collection}"
        )

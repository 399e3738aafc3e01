"""Application actions that span more than one Mirror API call."""

import logging
from collections.abc import Callable

from mirror_quickstart.auth.credentials_store import CredentialsStore
from mirror_quickstart.auth.models import CredentialRecord
from mirror_quickstart.mirror.client import MirrorClient, MirrorClientError
from mirror_quickstart.mirror.models import Contact, TimelineItem

logger = logging.getLogger(__name__)

ClientFactory = Callable[[CredentialRecord], MirrorClient]

DEMO_CONTACT_ID = "python-quick-start"
DEMO_CONTACT_NAME = "Python Quick Start"
DEMO_CONTACT_IMAGE = "/static/images/chipotle-tube-640x360.jpg"

WELCOME_TEXT = "Welcome to the Mirror API Python Quick Start"
CAT_FACT = "Did you know cats have 167 bones in their tails? Mee-wow!"

# Fan-out inserts are skipped above this many users to save API quota
MAX_FANOUT_USERS = 10


def demo_contact(base_url: str) -> Contact:
    """The contact this application registers for every user."""
    return Contact(
        id=DEMO_CONTACT_ID,
        display_name=DEMO_CONTACT_NAME,
        image_urls=[f"{base_url}{DEMO_CONTACT_IMAGE}"],
    )


async def bootstrap_new_user(mirror: MirrorClient, user_id: str, base_url: str) -> None:
    """Welcome a newly authorized user.

    Inserts a welcome card and the demo contact, then tries to subscribe
    to timeline notifications. Subscribing fails when the application is
    not served over HTTPS; that failure is logged and ignored.

    Args:
        mirror: Client authorized as the new user.
        user_id: The user's Google ID, used as the subscription user token.
        base_url: Public base URL of this application.
    """
    await mirror.insert_timeline_item(TimelineItem(text=WELCOME_TEXT))
    await mirror.insert_contact(demo_contact(base_url))

    try:
        await mirror.insert_subscription(user_id, "timeline", f"{base_url}/notify-callback")
    except MirrorClientError as e:
        logger.info(f"Skipping timeline subscription for {user_id}: {e}")


async def insert_for_all_users(store: CredentialsStore, client_factory: ClientFactory) -> str:
    """Insert a cat fact into every stored user's timeline.

    Nothing is inserted when more than ``MAX_FANOUT_USERS`` users are
    registered.

    Args:
        store: Credential store listing the registered users.
        client_factory: Builds a client authorized as a given user.

    Returns:
        Message describing what happened, for display to the user.
    """
    user_ids = store.list_user_ids()
    if len(user_ids) > MAX_FANOUT_USERS:
        return f"Found {len(user_ids)} users. Aborting to save your quota."

    for user_id in user_ids:
        record = store.get(user_id)
        if record is None:
            continue
        async with client_factory(record) as mirror:
            await mirror.insert_timeline_item(TimelineItem(text=CAT_FACT))

    return f"Sent a cat fact to {len(user_ids)} users."

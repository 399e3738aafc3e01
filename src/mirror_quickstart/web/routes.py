"""HTTP routes of the quick start.

Every route except the OAuth2 callback and the notification callback
requires a signed-in user with stored credentials; otherwise the
``require_user`` dependency raises ``NotAuthorizedError`` and the app
redirects to /oauth2callback to start authorization.
"""

import logging
from collections.abc import AsyncIterator
from pathlib import Path

from fastapi import APIRouter, Depends, Form, HTTPException, Request, status
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response

from mirror_quickstart.mirror.client import MirrorClient, MirrorClientError
from mirror_quickstart.mirror.models import (
    MenuItem,
    MenuValue,
    Notification,
    NotificationConfig,
    TimelineItem,
)
from mirror_quickstart.notifications import handle_notification
from mirror_quickstart.services import (
    DEMO_CONTACT_ID,
    DEMO_CONTACT_NAME,
    bootstrap_new_user,
    demo_contact,
    insert_for_all_users,
)
from mirror_quickstart.web.context import NotAuthorizedError, RequestContext

logger = logging.getLogger(__name__)

router = APIRouter()

# Relative to the static directory; offered as the "Insert a picture" attachment
DEMO_PICTURE_PATH = "images/chipotle-tube-640x360.jpg"


# ============== Dependencies ==============


def get_context(request: Request) -> RequestContext:
    """Wrap the request's session in a RequestContext."""
    return RequestContext(
        session=request.session,
        base_url=str(request.base_url).rstrip("/"),
    )


def require_user(
    request: Request, ctx: RequestContext = Depends(get_context)
) -> RequestContext:
    """Verify the session belongs to a user with stored credentials."""
    if ctx.user_id is None:
        raise NotAuthorizedError("No user in session")

    record = request.app.state.store.get(ctx.user_id)
    if record is None:
        raise NotAuthorizedError(f"No stored credentials for {ctx.user_id}")

    ctx.record = record
    return ctx


async def get_mirror(
    request: Request, ctx: RequestContext = Depends(require_user)
) -> AsyncIterator[MirrorClient]:
    """Provide a Mirror client authorized as the signed-in user."""
    async with request.app.state.client_factory(ctx.record) as mirror:
        yield mirror


def _redirect_home() -> RedirectResponse:
    return RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)


def _read_static_file(static_dir: Path, relative_path: str) -> bytes:
    """Read a file from the static directory, refusing paths that escape it."""
    root = static_dir.resolve()
    path = (root / relative_path.lstrip("/")).resolve()
    if root not in path.parents or not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attachment not found")
    return path.read_bytes()


# ============== Dashboard ==============


@router.get("/", response_class=HTMLResponse)
async def index(
    request: Request,
    ctx: RequestContext = Depends(require_user),
    mirror: MirrorClient = Depends(get_mirror),
):
    """Render the dashboard."""
    message = ctx.pop_message()
    timeline = await mirror.list_timeline(3)

    try:
        contact = await mirror.get_contact(DEMO_CONTACT_ID)
    except MirrorClientError as e:
        if e.status_code == status.HTTP_401_UNAUTHORIZED:
            raise
        contact = None

    timeline_subscription_exists = False
    location_subscription_exists = False
    for subscription in (await mirror.list_subscriptions()).items:
        if subscription.id == "timeline":
            timeline_subscription_exists = True
        elif subscription.id == "locations":
            location_subscription_exists = True

    return request.app.state.templates.TemplateResponse(
        request,
        "index.html",
        {
            "message": message,
            "timeline": timeline.items,
            "contact": contact,
            "contact_name": DEMO_CONTACT_NAME,
            "timeline_subscription_exists": timeline_subscription_exists,
            "location_subscription_exists": location_subscription_exists,
            "picture_path": DEMO_PICTURE_PATH,
            "picture_available": (request.app.state.static_dir / DEMO_PICTURE_PATH).is_file(),
        },
    )


# ============== Timeline ==============


@router.post("/insert-item")
async def insert_item(
    request: Request,
    message: str = Form(""),
    image_url: str | None = Form(None, alias="imageUrl"),
    content_type: str | None = Form(None, alias="contentType"),
    ctx: RequestContext = Depends(require_user),
    mirror: MirrorClient = Depends(get_mirror),
):
    """Insert a timeline item, attaching a static image when one is chosen."""
    attachment = None
    if image_url and content_type:
        attachment = _read_static_file(request.app.state.static_dir, image_url)

    await mirror.insert_timeline_item(TimelineItem(text=message), attachment, content_type)

    ctx.flash("Inserted a timeline item.")
    return _redirect_home()


@router.post("/insert-item-with-action")
async def insert_item_with_action(
    ctx: RequestContext = Depends(require_user),
    mirror: MirrorClient = Depends(get_mirror),
):
    """Insert a timeline item the user can reply to, share or act on."""
    item = TimelineItem(
        text="What did you have for lunch?",
        speakable_text="What did you eat? Bacon?",
        notification=NotificationConfig(level="DEFAULT"),
        menu_items=[
            MenuItem(action="REPLY"),
            MenuItem(action="READ_ALOUD"),
            MenuItem(action="SHARE"),
            MenuItem(
                action="CUSTOM",
                id="safe-for-later",
                values=[
                    MenuValue(
                        display_name="Drill Into",
                        icon_url=f"{ctx.base_url}/static/images/drill.png",
                    )
                ],
            ),
        ],
    )
    await mirror.insert_timeline_item(item)

    ctx.flash("Inserted a timeline item that you can reply to.")
    return _redirect_home()


@router.post("/insert-pretty-item")
async def insert_pretty_item(
    request: Request,
    blue_line: str = Form(""),
    green_line: str = Form(""),
    yellow_line: str = Form(""),
    red_line: str = Form(""),
    ctx: RequestContext = Depends(require_user),
    mirror: MirrorClient = Depends(get_mirror),
):
    """Insert a timeline item whose HTML is rendered from a template fragment."""
    html = request.app.state.templates.get_template("pretty.html").render(
        blue_line=blue_line,
        green_line=green_line,
        yellow_line=yellow_line,
        red_line=red_line,
    )
    await mirror.insert_timeline_item(TimelineItem(html=html))

    ctx.flash("Inserted a pretty timeline item.")
    return _redirect_home()


@router.post("/insert-all-users")
async def insert_all_users(request: Request, ctx: RequestContext = Depends(require_user)):
    """Insert a timeline item into every registered user's timeline."""
    message = await insert_for_all_users(request.app.state.store, request.app.state.client_factory)

    ctx.flash(message)
    return _redirect_home()


@router.post("/delete-item")
async def delete_item(
    item_id: str = Form(..., alias="itemId"),
    ctx: RequestContext = Depends(require_user),
    mirror: MirrorClient = Depends(get_mirror),
):
    await mirror.delete_timeline_item(item_id)

    ctx.flash("Deleted the timeline item.")
    return _redirect_home()


# ============== Contacts ==============


@router.post("/insert-contact")
async def insert_contact(
    ctx: RequestContext = Depends(require_user),
    mirror: MirrorClient = Depends(get_mirror),
):
    await mirror.insert_contact(demo_contact(ctx.base_url))

    ctx.flash(f"Inserted the {DEMO_CONTACT_NAME} contact.")
    return _redirect_home()


@router.post("/delete-contact")
async def delete_contact(
    ctx: RequestContext = Depends(require_user),
    mirror: MirrorClient = Depends(get_mirror),
):
    await mirror.delete_contact(DEMO_CONTACT_ID)

    ctx.flash(f"Deleted the {DEMO_CONTACT_NAME} contact.")
    return _redirect_home()


# ============== Subscriptions ==============


@router.post("/insert-subscription")
async def insert_subscription(
    subscription_id: str = Form(..., alias="subscriptionId"),
    ctx: RequestContext = Depends(require_user),
    mirror: MirrorClient = Depends(get_mirror),
):
    """Subscribe to a collection. Only works when served over HTTPS."""
    callback_url = f"{ctx.base_url}/notify-callback"

    try:
        await mirror.insert_subscription(ctx.user_id, subscription_id, callback_url)
        ctx.flash(f"Subscribed to {subscription_id} notifications.")
    except MirrorClientError as e:
        if e.status_code == status.HTTP_401_UNAUTHORIZED:
            raise
        logger.warning(f"Subscription to {subscription_id} failed: {e}")
        ctx.flash("Could not subscribe because the application is not running as HTTPS.")

    return _redirect_home()


@router.post("/delete-subscription")
async def delete_subscription(
    subscription_id: str = Form(..., alias="subscriptionId"),
    ctx: RequestContext = Depends(require_user),
    mirror: MirrorClient = Depends(get_mirror),
):
    await mirror.delete_subscription(subscription_id)

    ctx.flash(f"Unsubscribed from {subscription_id} notifications.")
    return _redirect_home()


# ============== Attachments ==============


@router.get("/attachment-proxy")
async def attachment_proxy(
    timeline_item_id: str,
    attachment_id: str,
    mirror: MirrorClient = Depends(get_mirror),
):
    """Serve attachment data, which cannot be loaded without authorization."""
    attachment = await mirror.get_timeline_attachment(timeline_item_id, attachment_id)
    content = await mirror.download(attachment.content_url)
    return Response(content=content, media_type=attachment.content_type)


# ============== Callbacks ==============


@router.get("/oauth2callback")
async def oauth2callback(
    request: Request,
    code: str | None = None,
    error: str | None = None,
    ctx: RequestContext = Depends(get_context),
):
    """Handle both steps of the OAuth2 web flow.

    With a ``code``, exchange it and sign the user in. Without one, send
    unauthenticated users to the consent screen.
    """
    oauth = request.app.state.oauth
    store = request.app.state.store

    if error:
        logger.warning(f"Authorization denied: {error}")
        return PlainTextResponse(f"Authorization failed: {error}", status_code=403)

    if code:
        result = await oauth.get_credentials(code)
        if not result.ok:
            return RedirectResponse(result.error.authorization_url)

        record = result.record
        ctx.login(record.user_id)

        async with request.app.state.client_factory(record) as mirror:
            await bootstrap_new_user(mirror, record.user_id, ctx.base_url)

        return _redirect_home()

    if ctx.user_id is None or store.get(ctx.user_id) is None:
        return RedirectResponse(oauth.build_authorization_url())

    return _redirect_home()


@router.post("/notify-callback")
async def notify_callback(request: Request):
    """Receive a subscription notification from the Mirror API.

    The payload is JSON in the request body. The notification's user
    token is the Google ID under which the user's credentials are stored.
    """
    try:
        notification = Notification.model_validate(await request.json())
    except ValueError as e:
        logger.warning(f"Ignoring malformed notification: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed notification")

    record = None
    if notification.user_token:
        record = request.app.state.store.get(notification.user_token)
    if record is None:
        logger.warning(f"Ignoring notification for unknown user {notification.user_token}")
        return Response(status_code=status.HTTP_200_OK)

    async with request.app.state.client_factory(record) as mirror:
        await handle_notification(notification, mirror)

    return Response(status_code=status.HTTP_200_OK)

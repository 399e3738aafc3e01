"""FastAPI application factory for the Mirror API quick start."""

import logging
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.middleware.sessions import SessionMiddleware

from mirror_quickstart.__version__ import __version__
from mirror_quickstart.auth.credentials_store import CredentialsStore
from mirror_quickstart.auth.errors import NoUserIdError
from mirror_quickstart.auth.models import CredentialRecord
from mirror_quickstart.auth.oauth_manager import OAuthManager
from mirror_quickstart.config import Settings, load_client_secrets
from mirror_quickstart.mirror.client import MirrorClient, MirrorClientError
from mirror_quickstart.services import ClientFactory
from mirror_quickstart.web.context import USER_ID_KEY, NotAuthorizedError
from mirror_quickstart.web.routes import router

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"


def create_app(
    settings: Settings | None = None,
    store: CredentialsStore | None = None,
    oauth: OAuthManager | None = None,
    client_factory: ClientFactory | None = None,
) -> FastAPI:
    """Create and configure the web application.

    Args:
        settings: Application settings. Read from the environment if not provided.
        store: Credential store. Built from ``settings.credentials_db`` if not provided.
        oauth: OAuth manager. Built from the client secrets file if not provided.
        client_factory: Builds a Mirror client for a user's credentials.
            Defaults to ``MirrorClient`` refreshing through ``oauth``.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or Settings.from_env()
    store = store or CredentialsStore(settings.credentials_db)
    if oauth is None:
        oauth = OAuthManager(load_client_secrets(settings.client_secrets_path), store)

    def default_client_factory(record: CredentialRecord) -> MirrorClient:
        return MirrorClient(record, oauth)

    app = FastAPI(
        title="Mirror API Python Quick Start",
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )
    app.add_middleware(SessionMiddleware, secret_key=settings.session_secret)

    app.state.settings = settings
    app.state.store = store
    app.state.oauth = oauth
    app.state.client_factory = client_factory or default_client_factory
    app.state.static_dir = settings.static_dir
    app.state.templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

    @app.exception_handler(NotAuthorizedError)
    async def not_authorized(request: Request, exc: NotAuthorizedError) -> RedirectResponse:
        logger.debug(f"Redirecting {request.url.path} to authorization: {exc}")
        return RedirectResponse("/oauth2callback", status_code=status.HTTP_303_SEE_OTHER)

    @app.exception_handler(MirrorClientError)
    async def mirror_error(request: Request, exc: MirrorClientError) -> Response:
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            # Stored credentials were revoked or expired for good; consent again
            user_id = request.session.get(USER_ID_KEY)
            logger.info(f"Mirror API rejected credentials for user {user_id}: {exc}")
            return RedirectResponse(
                request.app.state.oauth.build_authorization_url(user_id),
                status_code=status.HTTP_303_SEE_OTHER,
            )

        logger.error(f"Mirror API request for {request.url.path} failed: {exc}")
        return HTMLResponse(
            f"<html><body><h1>Mirror API Error</h1><p>{exc}</p></body></html>",
            status_code=status.HTTP_502_BAD_GATEWAY,
        )

    @app.exception_handler(NoUserIdError)
    async def no_user_id(request: Request, exc: NoUserIdError) -> HTMLResponse:
        logger.error(f"Authorization failed: {exc}")
        return HTMLResponse(
            f"<html><body><h1>Authorization Failed</h1><p>{exc}</p></body></html>",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    store.init().close()

    if settings.static_dir.is_dir():
        app.mount("/static", StaticFiles(directory=str(settings.static_dir)), name="static")
    else:
        logger.warning(f"Static directory {settings.static_dir} not found; /static disabled")

    app.include_router(router)
    return app

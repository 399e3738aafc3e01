"""Web interface of the Mirror API quick start.

Run with ``mirror-quickstart serve`` or any ASGI server:

    uvicorn --factory mirror_quickstart.web:create_app
"""

from mirror_quickstart.web.app import create_app
from mirror_quickstart.web.context import NotAuthorizedError, RequestContext

__all__ = ["create_app", "RequestContext", "NotAuthorizedError"]

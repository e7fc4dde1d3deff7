"""Request-scoped middleware for API requests."""

import logging
from uuid import UUID, uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)


def _inbound_request_id(request: Request) -> str | None:
    value = request.headers.get("X-Request-ID")
    if not value:
        return None
    try:
        return str(UUID(value))
    except ValueError:
        logger.debug("Ignoring malformed X-Request-ID header %r", value)
        return None


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Gives every request an ID, echoed in the X-Request-ID response header.

    A well-formed UUID sent by the caller is reused so ledger log lines can
    be correlated across services; anything else is replaced.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = _inbound_request_id(request) or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

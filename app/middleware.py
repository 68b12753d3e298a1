"""Request-id middleware for the Pali server.

Every request gets a ULID request id. It is bound into the logging context,
so each log line emitted while the request is in flight carries it, and
it is echoed back in the ``X-Request-ID`` response header. A client-supplied
``X-Request-ID`` is reused when present.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.utils.logger import clear_request_id, set_request_id
from app.utils.ulid import generate_ulid

REQUEST_ID_HEADER = "X-Request-ID"

# Longer client-supplied ids are replaced, not truncated.
_MAX_REQUEST_ID_LENGTH = 128


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Registration (in create_app() in app/main.py):
        application.add_middleware(RequestIdMiddleware)
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        if incoming and len(incoming) <= _MAX_REQUEST_ID_LENGTH and incoming.isprintable():
            request_id = incoming
        else:
            request_id = generate_ulid()

        set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

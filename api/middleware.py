"""Request-scoped middleware for API requests."""

import logging
from typing import Callable
from uuid import UUID, uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from utils.request_context import clear_request_context, set_request_context

logger = logging.getLogger(__name__)

# Returns (issuer_id, user_id) for an authenticated request, None otherwise
Identify = Callable[[Request], tuple[UUID, UUID] | None]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Resolves the caller and sets the request context.

    Authentication itself happens elsewhere: `identify` maps a request to
    (issuer_id, user_id). The issuer drives RLS and query scoping; the user,
    client IP and user agent are recorded on audit entries.

    Public paths bypass identification entirely.
    """

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, identify: Identify):
        super().__init__(app)
        self._identify = identify

    def _is_public_path(self, path: str) -> bool:
        return any(path == public_path or path.startswith(public_path) for public_path in self.PUBLIC_PATHS)

    async def dispatch(self, request: Request, call_next):
        if self._is_public_path(request.url.path):
            return await call_next(request)

        identity = self._identify(request)
        if identity is None:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Authentication required",
                    request_id=getattr(request.state, "request_id", None),
                ).model_dump(mode="json"),
            )

        issuer_id, user_id = identity
        set_request_context(
            issuer_id,
            user_id,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        request.state.issuer_id = issuer_id
        request.state.user_id = user_id

        try:
            return await call_next(request)
        finally:
            # Always clear context
            clear_request_context()


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None

"""Request body size limit for the rules API."""

import logging
from collections.abc import Callable

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

TOO_LARGE_BODY = (
    '{"error":"RequestTooLarge","message":"Request body exceeds maximum allowed size",'
    '"details":{}}'
)


def max_body_bytes(max_source_bytes: int) -> int:
    """
    Body size limit for a rule request.

    JSON escaping can double a source (quotes, backslashes) and the request
    carries a little envelope around it.
    """
    return max_source_bytes * 2 + 4096


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Reject request bodies above `max_size_bytes` with 413.

    Checks the Content-Length header first, then the actual body of
    POST/PUT/PATCH requests so a missing or false header cannot bypass it.
    """

    def __init__(self, app, max_size_bytes: int):
        super().__init__(app)
        self.max_size_bytes = max_size_bytes

    def _too_large(self, request: Request, size: int, source: str) -> Response:
        logger.warning(
            f"Request size {size} bytes ({source}) exceeds limit {self.max_size_bytes} bytes",
            extra={"path": request.url.path},
        )
        return Response(
            content=TOO_LARGE_BODY,
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            media_type="application/json",
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit():
            size = int(content_length)
            if size > self.max_size_bytes:
                return self._too_large(request, size, "from header")

        if request.method in ("POST", "PUT", "PATCH"):
            body = await request.body()
            if len(body) > self.max_size_bytes:
                return self._too_large(request, len(body), "actual")

        return await call_next(request)

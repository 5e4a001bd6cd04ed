"""
FastAPI middleware for request logging.

Assigns every request a short ID and logs it without leaking feed tokens,
which are bearer secrets embedded in the URL path.
"""

import logging
import re
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_FEED_TOKEN_PATH = re.compile(r"^(/feeds/(?:tokens/)?)([^/.]+)")


def _redact(match: re.Match) -> str:
    prefix, token = match.group(1), match.group(2)
    if token == "tokens":
        # Token management collection, not a token
        return match.group(0)
    return f"{prefix}{token[:8]}…"


def redact_path(path: str) -> str:
    """Replace a feed token in a path with its first characters."""
    return _FEED_TOKEN_PATH.sub(_redact, path)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging requests and tracking timing.

    Features:
    - Reuses the caller's X-Request-ID or generates a short one
    - Logs request start and completion with feed tokens redacted
    - Adds X-Request-ID header to response
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        """Process request with logging and timing."""
        req_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]
        path = redact_path(request.url.path)

        logger.info(
            f"[{req_id}] {request.method} {path}",
            extra={"request_id": req_id, "method": request.method, "path": path},
        )

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.time() - start_time
            logger.error(
                f"[{req_id}] {request.method} {path} failed after {elapsed:.2f}s: {e}",
                extra={"request_id": req_id, "elapsed_ms": elapsed * 1000},
                exc_info=True,
            )
            raise

        elapsed = time.time() - start_time
        logger.info(
            f"[{req_id}] {response.status_code} in {elapsed:.2f}s",
            extra={
                "request_id": req_id,
                "status_code": response.status_code,
                "elapsed_ms": elapsed * 1000,
            },
        )

        response.headers[REQUEST_ID_HEADER] = req_id
        return response

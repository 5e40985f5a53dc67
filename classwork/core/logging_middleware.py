import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("classwork.requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One line per request: METHOD path -> status (duration)."""

    async def dispatch(self, request: Request, call_next):
        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("%s %s -> unhandled error (%.2fs)",
                             request.method, request.url.path, time.monotonic() - start)
            raise

        logger.info(
            "%s %s -> %s (%.2fs)",
            request.method,
            request.url.path,
            response.status_code,
            time.monotonic() - start,
        )
        return response

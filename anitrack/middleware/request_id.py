"""
Request ID middleware for FastAPI.

Generates a unique request_id for each incoming request, exposes it in the
X-Request-ID response header and sets it in the logging context so every log
line written while handling the request carries it.
"""

import logging
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from anitrack.core.logging_config import clear_request_id, set_request_id

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that tags each request with a request_id.

    The id is taken from an incoming X-Request-ID header or generated as a
    UUID4. It is stored in request.state.request_id and echoed back in the
    response header. While the request runs it is also set in the logging
    context, so every log line carries it.
    """

    async def dispatch(self, request: Request, call_next):
        """Process the request with request_id set in context."""
        # Honour an upstream id (load balancer, gateway) when present
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        request.state.request_id = request_id
        set_request_id(request_id)

        try:
            logger.debug(f"{request.method} {request.url.path} - Request started")

            response: Response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            logger.debug(
                f"{request.method} {request.url.path} - Request completed with status {response.status_code}"
            )

            return response

        except Exception as e:
            logger.error(f"{request.method} {request.url.path} - Request failed: {e}")
            raise
        finally:
            clear_request_id()

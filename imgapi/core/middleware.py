"""Application middleware."""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from imgapi.core.logging import request_id_var

logger = logging.getLogger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Extracts or generates a request correlation ID for every request.

    Behaviour:
    - If the client sends an ``X-Request-ID`` header, that value is reused.
    - Otherwise a fresh UUID4 hex string is generated.
    - The ID is stored in ``request.state.request_id``, injected into the
      ``request_id_var`` ContextVar (so all loggers pick it up automatically),
      and echoed back in the ``X-Request-ID`` response header.
    - A "Request started" and a "Request finished" record bracket every
      request, carrying the client details and the final status code.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        started = time.monotonic()
        logger.info(
            "Request started",
            extra={
                "method": request.method,
                "uri": request.url.path,
                "query": request.url.query,
                "host": request.headers.get("host", ""),
                "remote_address": request.client.host if request.client else "",
                "user_agent": request.headers.get("user-agent", ""),
            },
        )
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "Request finished",
                extra={
                    "method": request.method,
                    "uri": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round((time.monotonic() - started) * 1000, 2),
                },
            )
            return response
        finally:
            request_id_var.reset(token)

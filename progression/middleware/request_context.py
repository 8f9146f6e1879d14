"""Request context middleware — assigns a unique ID to every request.

The ID is bound into the same ContextVar-backed context the worker uses
for job identifiers (progression.core.context), so every log line
emitted while serving the request carries it, and an event accepted by
POST /v1/events/challenge-completed can be traced from the request that
enqueued it.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from progression.core.context import bind_job_context

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request, log one summary line.

    1. Reads X-Request-ID (if the client sent one) or generates a UUID
    2. Binds it into the logging context for the rest of the request
    3. Logs method, path, status and duration on completion
    4. Echoes the ID back in the X-Request-ID response header
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())

        with bind_job_context(request_id=req_id):
            start = time.monotonic()
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)

            logger.info(
                "%s %s → %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )

        response.headers["X-Request-ID"] = req_id
        return response

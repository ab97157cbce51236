"""FastAPI middleware for correlation ID handling."""

import uuid
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from shared.logging_config import set_correlation_id

CORRELATION_ID_HEADER = 'X-Correlation-ID'


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds a correlation ID to every request and echoes it back"""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or str(uuid.uuid4())
        set_correlation_id(correlation_id)

        logging.debug(
            "Request received",
            extra={"method": request.method, "path": request.url.path}
        )

        response = await call_next(request)
        response.headers[CORRELATION_ID_HEADER] = correlation_id

        # Polling clients hit GET /tasks constantly; keep reads at debug
        log = logging.debug if request.method == "GET" else logging.info
        log(
            "Request handled",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code
            }
        )
        return response

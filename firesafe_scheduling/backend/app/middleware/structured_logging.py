# backend/app/middleware/structured_logging.py
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

log = logging.getLogger("firesafe.request")


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Emits one log line per request with:
      request_id, user_id, method, path, status_code, latency_ms

    Must be added before RequestIDMiddleware so it runs inside it and sees
    request.state.request_id.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        t0 = time.time()

        # headers are good enough for the request line; handlers resolve the principal
        user_id = request.headers.get(settings.dev_header_user_id) or request.headers.get(
            settings.gateway_header_user_id
        )
        request_id: Optional[str] = getattr(request.state, "request_id", None)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            latency_ms = int((time.time() - t0) * 1000)
            log.info(
                "http_request %s %s -> %d (%dms)",
                request.method,
                request.url.path,
                status_code,
                latency_ms,
                extra={
                    "request_id": request_id,
                    "user_id": user_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    "latency_ms": latency_ms,
                },
            )

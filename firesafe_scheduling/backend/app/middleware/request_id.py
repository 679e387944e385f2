# backend/app/middleware/request_id.py
from __future__ import annotations

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# caller ids are echoed into every log line and audit row
_SAFE_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def get_request_id() -> str | None:
    return request_id_ctx.get()


def accept_request_id(raw: str | None) -> str:
    """The caller's id when it is short and inert, else a fresh uuid4 hex."""
    rid = (raw or "").strip()
    return rid if _SAFE_ID.match(rid) else uuid.uuid4().hex


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Correlates one request across its JSON log lines and the audit rows its
    transaction writes. The header name comes from settings so a gateway's
    own correlation header can be reused.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        header = settings.request_id_header
        rid = accept_request_id(request.headers.get(header))

        request.state.request_id = rid
        token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers[header] = rid
        return response

from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
principal_ctx_var: ContextVar[str | None] = ContextVar("principal_id", default=None)
company_ctx_var: ContextVar[str | None] = ContextVar("company_id", default=None)
logger = logging.getLogger("portal.request")

SILENT_PREFIXES = ("/static", "/health", "/metrics")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with a correlation id and log its outcome.

    The auth dependencies fill ``principal_ctx_var`` and ``company_ctx_var``
    once the user and the selected company are known, so every log line
    emitted while serving the request carries them.
    """

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(self.header_name) or uuid4().hex
        token = request_id_ctx_var.set(request_id)
        principal_token = principal_ctx_var.set(None)
        company_token = company_ctx_var.set(None)
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)
            principal_ctx_var.reset(principal_token)
            company_ctx_var.reset(company_token)
        duration_ms = (time.perf_counter() - start) * 1000
        response.headers[self.header_name] = request_id
        response.headers.setdefault("X-Response-Time", f"{duration_ms:.2f}ms")
        if request.url.path.startswith(SILENT_PREFIXES):
            return response
        extra = {
            "extra_data": {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            }
        }
        # The endpoint runs in its own task; its context vars do not flow back here.
        principal = getattr(request.state, "principal", None)
        company = getattr(request.state, "company_id", None)
        if principal:
            extra["extra_data"]["principal"] = principal
        if company:
            extra["extra_data"]["company_id"] = company
        logger.info("request.completed", extra=extra)
        return response

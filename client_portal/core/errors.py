from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

PUBLIC_PREFIXES = ("/login", "/api", "/static", "/health", "/metrics")


class PortalError(Exception):
    """Base class for failures the portal reports back to the user."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "portal_error"

    def __init__(self, message: str, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFound(PortalError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class AccessDenied(PortalError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "access_denied"


class InvalidTransition(PortalError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_transition"


class WizardError(PortalError):
    status_code = status.HTTP_409_CONFLICT
    code = "wizard_error"


class ProfileError(PortalError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "profile_error"


class CallableError(PortalError):
    """A backend callable function answered with an error or not at all."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "callable_error"

    def __init__(self, message: str, *, function: str, remote_status: str | None = None) -> None:
        super().__init__(message, details={"function": function, "status": remote_status})
        self.function = function
        self.remote_status = remote_status


class IdentityError(PortalError):
    """The identity provider rejected a sign-in or account operation."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "identity_error"

    def __init__(self, message: str, *, provider_code: str | None = None) -> None:
        super().__init__(message, details={"provider_code": provider_code} if provider_code else None)
        self.provider_code = provider_code


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


def _wants_login_redirect(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    path = request.url.path
    return "text/html" in accept and not path.startswith(PUBLIC_PREFIXES)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Browsers hitting a protected page go to the login form; API clients get JSON.
    if exc.status_code == status.HTTP_401_UNAUTHORIZED and _wants_login_redirect(request):
        return RedirectResponse(url=f"/login?next={request.url.path}", status_code=302)
    detail = exc.detail
    if isinstance(detail, str):
        message = detail
    else:
        try:
            message = HTTPStatus(exc.status_code).phrase
        except ValueError:
            message = "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(status_code=exc.status_code, code="http_error", message=message, details=details)


async def validation_exception_handler(request: Request, exc):  # type: ignore[override]
    from fastapi.exceptions import RequestValidationError

    if isinstance(exc, RequestValidationError):
        return ErrorEnvelope(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="validation_error",
            message="Validation failed",
            details={"errors": exc.errors()},
        )
    raise exc


async def portal_error_handler(request: Request, exc: PortalError):
    logger.info(
        "portal.error",
        extra={"extra_data": {"code": exc.code, "path": request.url.path, "error": exc.message}},
    )
    return ErrorEnvelope(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )

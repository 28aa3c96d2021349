"""Application wiring for the client portal.

Configuration, the store schema, sessions, middlewares, routers and error
handlers are assembled here; ``client_portal.main`` adds health, metrics and
logging on top.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from .core.config import settings
from .core.errors import (
    PortalError,
    http_exception_handler,
    portal_error_handler,
    validation_exception_handler,
)
from .db.session import Base, engine
from .middlewares import RequestIdMiddleware, SecurityHeadersMiddleware

# Registers every table with the metadata before ``create_all``.
from . import models as _models  # noqa: F401

app = FastAPI(title=settings.APP_NAME)

app.mount("/static", StaticFiles(directory=str(settings.STATIC_DIR)), name="static")

Base.metadata.create_all(bind=engine)

# Last added runs first: request ids wrap everything, sessions sit inside.
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.APP_SECRET,
    session_cookie=settings.SESSION_COOKIE_NAME,
    max_age=settings.SESSION_MAX_AGE,
    same_site="lax",
    https_only=settings.SESSION_HTTPS_ONLY,
)
if settings.ALLOWED_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIdMiddleware)

from .routers import auth_ui as auth_ui_router  # noqa: E402

app.include_router(auth_ui_router.router)

from .routers import ui as ui_router  # noqa: E402

app.include_router(ui_router.router)

from .routers import ui_deliveries as ui_deliveries_router  # noqa: E402

app.include_router(ui_deliveries_router.router)

from .routers import ui_profile as ui_profile_router  # noqa: E402

app.include_router(ui_profile_router.router)

from .routers import api_auth as api_auth_router  # noqa: E402

app.include_router(api_auth_router.router)

from .routers import api_projects as api_projects_router  # noqa: E402

app.include_router(api_projects_router.router)

from .routers import api_deliveries as api_deliveries_router  # noqa: E402

app.include_router(api_deliveries_router.router)

from .routers import api_tickets as api_tickets_router  # noqa: E402

app.include_router(api_tickets_router.router)

app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(PortalError, portal_error_handler)


__all__ = ["app"]

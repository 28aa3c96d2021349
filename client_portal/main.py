from prometheus_fastapi_instrumentator import Instrumentator

from .core.config import settings
from .core.logging import configure_logging
from . import app as portal_app

configure_logging()
app = portal_app
app.title = settings.APP_NAME
instrumentator = Instrumentator(excluded_handlers=["/metrics", "/health", "/static.*"])


@app.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}


instrumentator.instrument(app).expose(app, include_in_schema=False)


def run() -> None:
    import uvicorn

    uvicorn.run("client_portal.main:app", host=settings.HOST, port=settings.PORT)

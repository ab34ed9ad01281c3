from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles

from chirpy.api.error_handling import register_exception_handlers
from chirpy.api.routes import router
from chirpy.config import get_settings
from chirpy.logging import get_logger, set_correlation_id
from chirpy.service.runtime import get_runtime

logger = get_logger(__name__)

__version__ = "0.1.0"

APP_PREFIX = "/app"

METRICS_TEMPLATE = """
<html>
  <body>
    <h1>Welcome, Chirpy Admin</h1>
    <p>Chirpy has been visited {hits} times!</p>
  </body>
</html>
"""


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the runtime before the first request is served."""
    runtime = get_runtime()
    logger.info("chirpy_started", database_path=runtime.settings.database_path)
    yield
    logger.info("chirpy_stopped")


app = FastAPI(title="Chirpy", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def add_correlation_id(request, call_next):
    """Tag each request with a correlation ID.

    Taken from the X-Request-ID header when the client sends one, otherwise
    generated. It is set in context for structured logging and echoed back
    in the X-Request-ID response header.
    """
    client_request_id = request.headers.get("X-Request-ID")
    correlation_id = set_correlation_id(client_request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


@app.middleware("http")
async def count_app_hits(request: Request, call_next):
    path = request.url.path
    if path == APP_PREFIX or path.startswith(APP_PREFIX + "/"):
        get_runtime().metrics.increment()
    return await call_next(request)


register_exception_handlers(app)
app.include_router(router)


@app.get("/api/healthz", response_class=PlainTextResponse, tags=["ops"])
def health() -> str:
    return "OK"


@app.get("/admin/metrics", response_class=HTMLResponse, tags=["ops"])
def metrics() -> str:
    return METRICS_TEMPLATE.format(hits=get_runtime().metrics.hits)


@app.post("/api/reset", response_class=PlainTextResponse, tags=["ops"])
def reset_metrics() -> str:
    get_runtime().metrics.reset()
    logger.info("metrics_reset")
    return "OK"


_static_root = Path(get_settings().static_root)
if _static_root.is_dir():
    app.mount(APP_PREFIX, StaticFiles(directory=str(_static_root), html=True), name="app")
else:
    logger.info("static_root_missing", static_root=str(_static_root))


def create_app() -> FastAPI:
    return app

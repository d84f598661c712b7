"""FastAPI application wiring for the realty chat router.

- Configures logging, CORS for the embeddable widget, Prometheus metrics and
  per-client rate limiting.
- Mounts the chat, intent, training-data and history routers.
- Maps domain errors to JSON bodies: invalid requests answer 400 with
  ``{error}``, anything unexpected answers 500 with a safe apology.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .config import get_settings
from .core.db import ensure_schema, get_database
from .errors import InvalidRequest
from .rate_limit import limiter
from .routers import chat, conversations, intents, training

logger = logging.getLogger(__name__)

SERVER_ERROR_REPLY = (
    "Sorry, I encountered an error while processing your request. Please try again."
)
CORS_ALLOWED_HEADERS = [
    "authorization",
    "api-key",
    "apikey",
    "content-type",
    "client-info",
    "x-client-info",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if not settings.uses_memory_storage:
        try:
            with get_database().connect() as conn:
                ensure_schema(conn)
        except Exception as exc:
            # Requests still work once the database comes up.
            logger.warning("Could not ensure database schema at startup: %s", exc)
    yield


app = FastAPI(title="Realty Chat Router", version=__version__, lifespan=lifespan)
init_logging(app)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
# The widget is embedded on arbitrary agency websites.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(chat.router)
app.include_router(intents.router)
app.include_router(training.router)
app.include_router(conversations.router)

# Expose Prometheus metrics
Instrumentator().instrument(app).expose(
    app, include_in_schema=False, endpoint="/api/metrics"
)


@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest) -> JSONResponse:
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred.",
            "response": SERVER_ERROR_REPLY,
        },
    )


@app.get("/api/health")
async def health():
    """Liveness/readiness probe with a minimal JSON body."""
    return {"status": "ok"}


@app.get("/api/version")
async def version():
    """Return version information for the application."""
    return {
        "version": __version__,
        "build_date": __build_date__,
        "commit_sha": __commit_sha__,
    }


@app.options("/api/{path:path}", include_in_schema=False)
async def options_fallback(path: str) -> PlainTextResponse:
    """Answer OPTIONS requests that are not CORS preflights."""
    return PlainTextResponse(
        "ok",
        headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": ", ".join(CORS_ALLOWED_HEADERS),
        },
    )

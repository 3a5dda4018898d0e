import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from emgurus.adapters.sqlite.migrator import SQLiteMigrator
from emgurus.api.deps import get_context, get_rules, get_settings
from emgurus.app_shell.config import cors_origins, validate_ops_rules
from emgurus.domain.errors import ReviewError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Load rules, validate the environment and migrate (fail-fast)
    try:
        rules = get_rules()
        validate_ops_rules(rules, settings.data_dir)
        SQLiteMigrator(settings.db_path, str(settings.migrations_dir)).run_migrations()
        logger.info("Rules loaded from %s", settings.rules_path)
    except Exception:
        logger.critical("Startup failed", exc_info=True)
        sys.exit(1)

    ctx = get_context()
    # Deliver anything left over from a previous run.
    ctx.outbox.drain()

    yield

    close = getattr(ctx.email, "close", None)
    if callable(close):
        close()


app = FastAPI(
    title="EMGurus Review API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.exception_handler(ReviewError)
async def review_error_handler(request: Request, exc: ReviewError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": {"error": exc.code, "message": exc.message, "field": exc.field}},
    )


# --- Routers ---
from emgurus.api.routes import assignments, blogs, exams, flags, notifications  # noqa: E402

app.include_router(blogs.router, prefix="/blogs", tags=["Blogs"])
app.include_router(exams.router, prefix="/exams", tags=["Exams"])
app.include_router(exams.guru_router, prefix="/exams-guru-review", tags=["Exam Review"])
app.include_router(exams.curate_router, prefix="/exams-admin-curate", tags=["Exam Curation"])
app.include_router(assignments.router, prefix="/assignments", tags=["Assignments"])
app.include_router(flags.router, prefix="/flags", tags=["Flags"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
app.include_router(
    notifications.dispatch_router, prefix="/notifications-dispatch", tags=["Notifications"]
)


# CORS (Allow Frontend)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(get_rules(), get_settings().origin_allowlist),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "emgurus-review"}

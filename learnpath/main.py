from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from learnpath.api.certificates import router as certificates_router
from learnpath.api.courses import router as courses_router
from learnpath.api.dashboard import router as dashboard_router
from learnpath.api.enrollments import router as enrollments_router
from learnpath.api.health import router as health_router
from learnpath.api.metrics_endpoint import router as metrics_router
from learnpath.api.progress import router as progress_router
from learnpath.core.config import SETTINGS
from learnpath.core.errors import (
    AlreadyExists,
    LearnpathError,
    NotFound,
    Unauthorized,
    Unavailable,
)
from learnpath.core.logging import setup_logging
from learnpath.db.change_feed import RedisChangeFeed, change_feed
from learnpath.db.engine import lifespan_db
from learnpath.db.redis import lifespan_redis
from learnpath.middleware.metrics import MetricsMiddleware
from learnpath.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan_change_feed():
    """Start listening for other instances' writes; stop on shutdown."""
    if not isinstance(change_feed, RedisChangeFeed):
        yield
        return
    await change_feed.start()
    try:
        yield
    finally:
        await change_feed.stop()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order even if one step fails.
    async with lifespan_db():
        async with lifespan_redis():
            async with lifespan_change_feed():
                yield


app = FastAPI(
    title="learnpath",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) → Metrics → CORS → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)


_STATUS_BY_ERROR: tuple[tuple[type[LearnpathError], int], ...] = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (AlreadyExists, status.HTTP_409_CONFLICT),
    (Unauthorized, status.HTTP_403_FORBIDDEN),
    (Unavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


@app.exception_handler(LearnpathError)
async def handle_learnpath_error(request: Request, exc: LearnpathError) -> JSONResponse:
    code = next(
        (c for kind, c in _STATUS_BY_ERROR if isinstance(exc, kind)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if code >= 500:
        logger.error(
            "%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc
        )
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc)})


app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(progress_router)
app.include_router(enrollments_router)
app.include_router(courses_router)
app.include_router(certificates_router)
app.include_router(dashboard_router)

logger.info(
    "learnpath started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)

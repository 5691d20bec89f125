"""FastAPI application for the ICP screener (JSON API only)."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from icp_screener.errors import InvalidInput, ScreenerError, UpstreamError, UpstreamTimeout
from icp_screener.web.deps import close_db, get_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown: open the DB, run migrations, recover stale rows."""
    logger.info("Starting ICP screener API...")
    reset = get_store().reset_stale_processing()
    if reset:
        logger.info("Reset %d companies left in processing", reset)
    yield
    close_db()
    logger.info("ICP screener API shut down.")


app = FastAPI(
    title="ICP Screener",
    description="Narrative-gap ICP screening, discovery and outreach",
    lifespan=lifespan,
)


def error_status(exc: ScreenerError) -> int:
    if isinstance(exc, InvalidInput):
        return 400
    if isinstance(exc, UpstreamTimeout):
        return 504
    if isinstance(exc, UpstreamError):
        # Provider 4xx (bad filters, unknown campaign) pass through; the rest is a bad gateway
        if exc.status_code and 400 <= exc.status_code < 500 and exc.status_code != 429:
            return exc.status_code
        return 502
    return 500


@app.exception_handler(ScreenerError)
async def screener_error_handler(request: Request, exc: ScreenerError) -> JSONResponse:
    status = error_status(exc)
    if status >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(exc.as_error_dict(), status_code=status)


# --- Register routers ---
from icp_screener.web.routers.screening import router as screening_router
from icp_screener.web.routers.training import router as training_router
from icp_screener.web.routers.discovery import router as discovery_router
from icp_screener.web.routers.outreach import router as outreach_router
from icp_screener.web.routers.proxy import router as proxy_router

app.include_router(screening_router, prefix="/api")
app.include_router(training_router, prefix="/api")
app.include_router(discovery_router, prefix="/api")
app.include_router(outreach_router, prefix="/api")
app.include_router(proxy_router, prefix="/api")


@app.get("/api/health")
async def health():
    return {"status": "ok"}

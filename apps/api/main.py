"""
AMC Measures API - FastAPI application entry point.
"""
from __future__ import annotations

import logging
import sys
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from packages.db.database import init_db
from packages.shared.errors import ConfigurationError, DataAccessError
from packages.shared.settings import audit_logging_enabled, security_headers_enabled

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("amc")

app = FastAPI(
    title="AMC Measures API",
    description="Automated measure calculation for clinical quality reporting",
    version="0.1.0",
)


@app.middleware("http")
async def request_audit_middleware(request: Request, call_next):
    started = time.perf_counter()
    request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    user_id = request.headers.get("X-User-Id", "anonymous")

    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id

    if security_headers_enabled():
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")

    if audit_logging_enabled():
        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "request_audit request_id=%s method=%s path=%s status=%s duration_ms=%s user_id=%s",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            user_id,
        )

    return response


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=400, content={"detail": exc.message, "details": exc.details})


@app.exception_handler(DataAccessError)
async def data_access_error_handler(request: Request, exc: DataAccessError):
    logger.error(f"Data access failure on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=503, content={"detail": exc.message})


@app.on_event("startup")
def startup():
    """Initialize database tables on startup."""
    logger.info("Initializing database...")
    init_db()
    logger.info("Database initialized")


# Register routes
from apps.api.routes.reports import router as reports_router  # noqa: E402

app.include_router(reports_router)


@app.get("/health")
def health():
    return {"status": "ok", "version": "0.1.0"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("apps.api.main:app", host="0.0.0.0", port=8000, reload=True)

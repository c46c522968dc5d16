"""FastAPI application entrypoint with lifecycle management."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api import router as api_router
from app.config.settings import get_config
from app.errors.exceptions import AuditError, ValidationError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def _error_response(code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=code, content={"error": {"code": code, "message": message}})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Loads configuration once so a bad environment fails at startup.
    """
    logger.info("Starting up Lighthouse Audit API...")
    config = get_config()
    logger.info(
        f"Audit backend: {config.audit_backend.value}; "
        f"queue configured: {config.queue_configured}; "
        f"storage configured: {config.storage_configured}"
    )
    try:
        yield
    finally:
        logger.info("Lighthouse Audit API shutdown complete")


app = FastAPI(
    title="Lighthouse Audit API",
    description="Batch web performance audits with Lighthouse or PageSpeed Insights, "
    "fanned out through Cloud Tasks and stored in BigQuery",
    version=VERSION,
    lifespan=lifespan,
)

app.include_router(api_router)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return _error_response(400, "; ".join(messages))


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _error_response(400, str(exc))


@app.exception_handler(AuditError)
async def audit_error_handler(request: Request, exc: AuditError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return _error_response(500, str(exc))


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": "Lighthouse Audit API",
        "version": VERSION,
        "docs": "/docs",
    }

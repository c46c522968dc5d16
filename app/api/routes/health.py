"""Health check endpoint."""

from typing import Any

from fastapi import APIRouter, Depends

from app.api.deps import get_settings
from app.config.settings import Config
from app.core.lighthouse import _check_lighthouse_available
from app.errors.exceptions import LighthouseNotFoundError, PlaywrightBrowsersNotInstalledError
from app.schemas.common import AuditBackend
from app.services.browser import check_playwright_browsers_available

router = APIRouter()


@router.get("/health")
async def health_check(config: Config = Depends(get_settings)) -> dict[str, Any]:  # noqa: B008
    """
    Report liveness and whether the configured backend can run audits.

    The PSI backend needs neither Lighthouse nor Playwright locally.
    """
    lighthouse_status = {"available": True, "error": None}
    try:
        _check_lighthouse_available()
    except LighthouseNotFoundError as e:
        lighthouse_status = {"available": False, "error": str(e)}

    playwright_status = {"available": True, "error": None}
    try:
        check_playwright_browsers_available()
    except PlaywrightBrowsersNotInstalledError as e:
        playwright_status = {"available": False, "error": str(e)}

    if config.audit_backend is AuditBackend.LIGHTHOUSE:
        ready = bool(lighthouse_status["available"] and playwright_status["available"])
    else:
        ready = True

    return {
        "status": "healthy" if ready else "unhealthy",
        "ready": ready,
        "alive": True,
        "backend": config.audit_backend.value,
        "dependencies": {
            "lighthouse_cli": lighthouse_status,
            "playwright_browsers": playwright_status,
        },
        "queue_configured": config.queue_configured,
        "storage_configured": config.storage_configured,
    }

"""HTTP API package."""

from fastapi import APIRouter

from app.api.routes import audits, health, tasks

router = APIRouter()
router.include_router(health.router, tags=["health"])
router.include_router(audits.router, tags=["audits"])
router.include_router(tasks.router, tags=["tasks"])

"""API router package."""

from fastapi import APIRouter

from tasktrack.api.v1 import health, tasks

router = APIRouter()

router.include_router(health.router, tags=["Health"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])

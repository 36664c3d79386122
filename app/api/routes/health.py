from __future__ import annotations

from fastapi import APIRouter

from app.config import settings

router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/ready")
async def readiness_check():
    """Report which optional providers are configured."""
    return {
        "status": "ready",
        "version": settings.app_version,
        "environment": settings.environment,
        "search": "configured" if settings.exa_api_key else "not configured",
    }

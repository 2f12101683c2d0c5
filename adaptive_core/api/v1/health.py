"""
Health check endpoint.
"""
from fastapi import APIRouter

from adaptive_core.core.config import settings
from adaptive_core.core.datetime_utils import utc_now

router = APIRouter()


@router.get("/health")
def health_check():
    """
    Health check endpoint.
    Returns basic health status of the API.
    """
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }

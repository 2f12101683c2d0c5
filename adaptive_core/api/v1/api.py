"""
API v1 router combining all v1 endpoints.
"""
from fastapi import APIRouter

from adaptive_core.api.v1 import blueprints, calibration, health, sessions

api_router = APIRouter()

# Include all v1 routers
api_router.include_router(health.router, tags=["health"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
api_router.include_router(blueprints.router, prefix="/blueprints", tags=["blueprints"])
api_router.include_router(
    calibration.router, prefix="/calibration", tags=["calibration"]
)

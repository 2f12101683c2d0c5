"""
Shared dependencies for v1 endpoints.

Services are created once per application and kept on ``app.state``;
admin endpoints additionally require the X-Admin-Token header.
"""
import logging
import secrets

from fastapi import Header, Request

from adaptive_core.core.cat.calibration import DifficultyCalibrationEngine
from adaptive_core.core.cat.engine import AdaptiveSessionManager
from adaptive_core.core.config import settings
from adaptive_core.core.error_responses import (
    ErrorMessages,
    raise_not_configured,
    raise_unauthorized,
)
from adaptive_core.core.services import AssessmentServices

logger = logging.getLogger(__name__)


def get_services(request: Request) -> AssessmentServices:
    return request.app.state.services


def get_session_manager(request: Request) -> AdaptiveSessionManager:
    return get_services(request).sessions


def get_calibration_engine(request: Request) -> DifficultyCalibrationEngine:
    return get_services(request).calibration


def verify_admin_token(x_admin_token: str = Header(...)) -> bool:
    """
    Verify admin token from request header.

    Uses constant-time comparison to prevent timing attacks.

    Raises:
        HTTPException: 500 if no token is configured, 401 if invalid
    """
    if not settings.ADMIN_TOKEN:
        raise_not_configured(ErrorMessages.ADMIN_TOKEN_NOT_CONFIGURED)

    if not secrets.compare_digest(x_admin_token, settings.ADMIN_TOKEN):
        logger.warning("Rejected request with invalid admin token")
        raise_unauthorized(ErrorMessages.ADMIN_TOKEN_INVALID)

    return True

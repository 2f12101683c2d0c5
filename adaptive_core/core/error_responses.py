"""
Standardized error response messages and builders.

This module provides consistent error messages and HTTPException builders
for the API, plus the mapping from core AssessmentError types onto HTTP
status codes.

Error Message Format Guidelines:
- Use sentence case (capitalize first letter only)
- End with a period for complete sentences
- Include relevant IDs in parentheses when helpful for debugging: "(ID: abc)"

Usage:
    from adaptive_core.core.error_responses import ErrorMessages, raise_not_found

    if result is None:
        raise_not_found(ErrorMessages.SESSION_NOT_FOUND)

    try:
        manager.submit_answer(...)
    except AssessmentError as e:
        raise_for_assessment_error(e)
"""

import logging
from typing import Dict, NoReturn, Optional

from fastapi import HTTPException, status

from adaptive_core.core.cat.errors import (
    AssessmentError,
    BlueprintInvalid,
    BlueprintNotFound,
    ConcurrentCalibrationConflict,
    InsufficientItemPool,
    ItemMismatch,
    ItemNotFound,
    SessionAlreadyCompleted,
    SessionBusy,
    SessionIncomplete,
    SessionNotFound,
)

logger = logging.getLogger(__name__)

# Seconds clients should wait before retrying a busy session
RETRY_AFTER_SECONDS = 1


class ErrorMessages:
    """Centralized error message constants and templates."""

    # ==========================================================================
    # Authentication Errors (401)
    # ==========================================================================
    ADMIN_TOKEN_INVALID = "Invalid admin token."

    # ==========================================================================
    # Not Found Errors (404)
    # ==========================================================================
    SESSION_NOT_FOUND = "Assessment session not found."
    BLUEPRINT_NOT_FOUND = "Blueprint not found."
    ITEM_NOT_FOUND = "Item not found."

    # ==========================================================================
    # Conflict Errors (409)
    # ==========================================================================
    SESSION_BUSY = (
        "Another request for this session is in progress. Please retry shortly."
    )
    CALIBRATION_CONFLICT = (
        "Calibration data changed concurrently. Please retry shortly."
    )
    INSUFFICIENT_ITEM_POOL = (
        "Not enough items are available to satisfy the blueprint's bank minimums."
    )
    SESSION_INCOMPLETE = (
        "The session has not met a stopping rule yet. Keep answering items."
    )

    # ==========================================================================
    # Bad Request Errors (400)
    # ==========================================================================
    ITEM_MISMATCH = "Answer does not match the session's current item."

    # ==========================================================================
    # Configuration Errors (500)
    # ==========================================================================
    ADMIN_TOKEN_NOT_CONFIGURED = "Admin token not configured on server."

    @staticmethod
    def blueprint_invalid(errors: str) -> str:
        """Message listing blueprint validation failures."""
        return f"Blueprint is invalid: {errors}"

    @staticmethod
    def session_already_finished(session_id: str) -> str:
        return (
            f"Assessment session is no longer in progress (ID: {session_id}). "
            "Only in-progress sessions can be modified."
        )


# ==============================================================================
# HTTPException Builder Functions
# ==============================================================================


def raise_bad_request(detail: str) -> NoReturn:
    """Raise a 400 Bad Request exception."""
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=detail,
    )


def raise_unauthorized(detail: str) -> NoReturn:
    """Raise a 401 Unauthorized exception.

    Use for authentication failures (invalid/missing credentials).
    """
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
    )


def raise_not_found(detail: str) -> NoReturn:
    """Raise a 404 Not Found exception."""
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=detail,
    )


def raise_conflict(detail: str, retry_after: Optional[int] = None) -> NoReturn:
    """Raise a 409 Conflict exception.

    Args:
        detail: User-facing error message
        retry_after: When set, adds a Retry-After header for retryable conflicts.

    Raises:
        HTTPException: 409 Conflict
    """
    headers: Optional[Dict[str, str]] = None
    if retry_after is not None:
        headers = {"Retry-After": str(retry_after)}
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=detail,
        headers=headers,
    )


def raise_unprocessable(detail: str) -> NoReturn:
    """Raise a 422 Unprocessable Entity exception."""
    raise HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=detail,
    )


def raise_not_configured(detail: str) -> NoReturn:
    """Raise a 500 error for missing server configuration."""
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=detail,
    )


def raise_for_assessment_error(error: AssessmentError) -> NoReturn:
    """Translate a core AssessmentError into the matching HTTPException."""
    logger.info(f"{type(error).__name__}: {error}")

    if isinstance(error, SessionNotFound):
        raise_not_found(ErrorMessages.SESSION_NOT_FOUND)
    if isinstance(error, BlueprintNotFound):
        raise_not_found(ErrorMessages.BLUEPRINT_NOT_FOUND)
    if isinstance(error, ItemNotFound):
        raise_not_found(ErrorMessages.ITEM_NOT_FOUND)
    if isinstance(error, BlueprintInvalid):
        raise_unprocessable(
            ErrorMessages.blueprint_invalid(error.context.get("errors", error.message))
        )
    if isinstance(error, SessionBusy):
        raise_conflict(ErrorMessages.SESSION_BUSY, retry_after=RETRY_AFTER_SECONDS)
    if isinstance(error, ConcurrentCalibrationConflict):
        raise_conflict(ErrorMessages.CALIBRATION_CONFLICT, retry_after=RETRY_AFTER_SECONDS)
    if isinstance(error, InsufficientItemPool):
        raise_conflict(ErrorMessages.INSUFFICIENT_ITEM_POOL)
    if isinstance(error, SessionIncomplete):
        raise_conflict(ErrorMessages.SESSION_INCOMPLETE)
    if isinstance(error, ItemMismatch):
        raise_bad_request(ErrorMessages.ITEM_MISMATCH)
    if isinstance(error, SessionAlreadyCompleted):
        raise_bad_request(
            ErrorMessages.session_already_finished(
                str(error.context.get("session_id", ""))
            )
        )
    raise_bad_request(error.message)

"""
Computerized Adaptive Testing primitives.

Only the dependency-free building blocks are re-exported here; import the
selector, engine and calibration modules directly.
"""

from .domain import (
    AdministeredItemRecord,
    AssessmentResult,
    AssessmentSession,
    BankScore,
    CalibrationTrend,
    Item,
    ScalingMethod,
    SessionStatus,
    ValidationStatus,
)
from .errors import (
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
from .scale import difficulty_to_theta, probability_correct, theta_to_difficulty

__all__ = [
    "AdministeredItemRecord",
    "AssessmentError",
    "AssessmentResult",
    "AssessmentSession",
    "BankScore",
    "BlueprintInvalid",
    "BlueprintNotFound",
    "CalibrationTrend",
    "ConcurrentCalibrationConflict",
    "InsufficientItemPool",
    "Item",
    "ItemMismatch",
    "ItemNotFound",
    "ScalingMethod",
    "SessionAlreadyCompleted",
    "SessionBusy",
    "SessionIncomplete",
    "SessionNotFound",
    "SessionStatus",
    "ValidationStatus",
    "difficulty_to_theta",
    "probability_correct",
    "theta_to_difficulty",
]

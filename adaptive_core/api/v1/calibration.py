"""
Calibration admin endpoints.

Calibration itself runs automatically as answers arrive; these endpoints
expose the statistics and allow recalibration or manual overrides.
"""
import logging

from fastapi import APIRouter, Depends

from adaptive_core.api.v1.dependencies import get_calibration_engine, verify_admin_token
from adaptive_core.core.cat.calibration import DifficultyCalibrationEngine
from adaptive_core.core.cat.errors import AssessmentError
from adaptive_core.core.error_responses import raise_for_assessment_error
from adaptive_core.schemas.calibration import (
    BankDifficultySummaryResponse,
    CalibrationStatResponse,
    CalibrationUpdateResponse,
    DifficultyAdjustmentRequest,
    PilotItemProgressResponse,
    PilotItemsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_admin_token)])


@router.get("/items/{item_id}", response_model=CalibrationStatResponse)
def get_item_calibration(
    item_id: str,
    engine: DifficultyCalibrationEngine = Depends(get_calibration_engine),
):
    """Current calibration statistics for an item."""
    try:
        stat = engine.get_stat(item_id)
    except AssessmentError as e:
        raise_for_assessment_error(e)
    return CalibrationStatResponse.model_validate(stat)


@router.post("/items/{item_id}/recalibrate", response_model=CalibrationUpdateResponse)
def recalibrate_item(
    item_id: str,
    engine: DifficultyCalibrationEngine = Depends(get_calibration_engine),
):
    """Re-derive an item's difficulty from its recorded responses."""
    try:
        update = engine.recalibrate(item_id)
    except AssessmentError as e:
        raise_for_assessment_error(e)

    logger.info(
        f"Recalibrated item {item_id}: {update.previous_difficulty} -> {update.difficulty}"
    )
    return CalibrationUpdateResponse.model_validate(update)


@router.post("/items/{item_id}/adjust", response_model=CalibrationUpdateResponse)
def adjust_item_difficulty(
    item_id: str,
    request: DifficultyAdjustmentRequest,
    engine: DifficultyCalibrationEngine = Depends(get_calibration_engine),
):
    """Manually override an item's difficulty."""
    try:
        update = engine.adjust_difficulty(item_id, request.difficulty, request.reason)
    except AssessmentError as e:
        raise_for_assessment_error(e)
    return CalibrationUpdateResponse.model_validate(update)


@router.get("/banks/{bank_id}/summary", response_model=BankDifficultySummaryResponse)
def get_bank_summary(
    bank_id: str,
    engine: DifficultyCalibrationEngine = Depends(get_calibration_engine),
):
    """Difficulty distribution and validation counts for a bank."""
    return BankDifficultySummaryResponse.model_validate(
        engine.bank_difficulty_summary(bank_id)
    )


@router.get("/banks/{bank_id}/pilot-items", response_model=PilotItemsResponse)
def get_pilot_items(
    bank_id: str,
    engine: DifficultyCalibrationEngine = Depends(get_calibration_engine),
):
    """Pilot items in a bank, nearest to validation first."""
    progress = engine.pilot_items_pending(bank_id)
    return PilotItemsResponse(
        bank_id=bank_id,
        pilot_threshold=engine.pilot_threshold,
        items=[PilotItemProgressResponse.model_validate(p) for p in progress],
    )

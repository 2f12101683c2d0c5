"""
Pydantic schemas for calibration admin endpoints.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from adaptive_core.core.cat.domain import CalibrationTrend


class CalibrationStatResponse(BaseModel):
    """Schema for an item's calibration statistics."""

    item_id: str
    correct_count: int
    total_count: int
    accuracy_pct: float = Field(..., description="Percent correct (0-100)")
    difficulty: float = Field(..., description="Current difficulty (1-10)")
    trend: CalibrationTrend
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    validated: bool
    version: int
    validated_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        """Pydantic configuration."""

        from_attributes = True


class CalibrationUpdateResponse(BaseModel):
    """Schema for the outcome of a calibration write."""

    item_id: str
    difficulty: float
    previous_difficulty: float
    trend: CalibrationTrend
    confidence_score: float
    validated: bool
    newly_validated: bool
    total_count: int
    accuracy_pct: float
    version: int

    class Config:
        """Pydantic configuration."""

        from_attributes = True


class DifficultyAdjustmentRequest(BaseModel):
    difficulty: float = Field(..., ge=1.0, le=10.0, description="New difficulty (1-10)")
    reason: Optional[str] = Field(None, max_length=500)


class BankDifficultySummaryResponse(BaseModel):
    """Schema for a bank's calibration overview."""

    bank_id: str
    total_items: int
    pilot_items: int
    validated_items: int
    items_with_responses: int
    difficulty_distribution: Dict[int, int] = Field(
        ..., description="Item count per difficulty level (1-10)"
    )
    average_accuracy: Optional[float] = Field(
        None, description="Mean accuracy percent across items with responses"
    )

    class Config:
        """Pydantic configuration."""

        from_attributes = True


class PilotItemProgressResponse(BaseModel):
    item_id: str
    responses: int
    responses_needed: int

    class Config:
        """Pydantic configuration."""

        from_attributes = True


class PilotItemsResponse(BaseModel):
    bank_id: str
    pilot_threshold: int
    items: List[PilotItemProgressResponse]

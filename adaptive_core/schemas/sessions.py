"""
Pydantic schemas for adaptive session endpoints.
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from adaptive_core.core.cat.domain import (
    AssessmentResult,
    AssessmentSession,
    Item,
    SessionStatus,
)


class ItemResponse(BaseModel):
    """Schema for an item presented to a student (answer key excluded)."""

    id: str = Field(..., description="Item identifier")
    bank_id: str = Field(..., description="Item bank the item belongs to")
    difficulty: float = Field(..., description="Difficulty on the 1-10 scale")
    validation_status: str = Field(..., description="pilot or validated")

    @classmethod
    def from_item(cls, item: Item) -> "ItemResponse":
        return cls(
            id=item.id,
            bank_id=item.bank_id,
            difficulty=item.difficulty,
            validation_status=item.validation_status.value,
        )


class BeginSessionRequest(BaseModel):
    """Schema for starting a session."""

    blueprint_id: str = Field(..., min_length=1, max_length=64)


class BeginSessionResponse(BaseModel):
    session_id: str = Field(..., description="New session identifier")
    first_item: ItemResponse = Field(..., description="First item to answer")
    theta: float = Field(..., description="Initial ability estimate")
    se: float = Field(..., description="Initial standard error")


class BankScoreResponse(BaseModel):
    bank_id: str
    score: float = Field(..., description="Percent correct within the bank")
    questions_asked: int
    correct_count: int

    class Config:
        """Pydantic configuration."""

        from_attributes = True


class ConfidenceIntervalSchema(BaseModel):
    lower: float
    upper: float
    confidence_level: float


class AssessmentResultResponse(BaseModel):
    """Schema for the terminal result of a session."""

    session_id: str
    blueprint_id: str
    final_score: float
    scaled_score: float
    percentile_rank: float = Field(..., ge=0.0, le=100.0)
    questions_asked: int
    correct_count: int
    per_bank: List[BankScoreResponse]
    theta: float
    se: float
    confidence_interval: ConfidenceIntervalSchema
    passed: bool
    performance_level: str
    stop_reason: str
    time_forced: bool = Field(
        False, description="True when the time limit ended the session"
    )
    completed_at: datetime

    @classmethod
    def from_result(cls, result: AssessmentResult) -> "AssessmentResultResponse":
        lower, upper = result.confidence_interval
        return cls(
            session_id=result.session_id,
            blueprint_id=result.blueprint_id,
            final_score=result.final_score,
            scaled_score=result.scaled_score,
            percentile_rank=result.percentile_rank,
            questions_asked=result.questions_asked,
            correct_count=result.correct_count,
            per_bank=[BankScoreResponse.model_validate(b) for b in result.per_bank],
            theta=result.theta,
            se=result.se,
            confidence_interval=ConfidenceIntervalSchema(
                lower=lower, upper=upper, confidence_level=result.confidence_level
            ),
            passed=result.passed,
            performance_level=result.performance_level,
            stop_reason=result.stop_reason,
            time_forced=result.time_forced,
            completed_at=result.completed_at,
        )


class NextItemResponse(BaseModel):
    """Either the pending item or the terminal result."""

    status: Literal["item", "completed"]
    item: Optional[ItemResponse] = None
    result: Optional[AssessmentResultResponse] = None


class SubmitAnswerRequest(BaseModel):
    """Schema for answering the pending item."""

    item_id: str = Field(..., min_length=1, max_length=64)
    answers: Union[str, List[str]] = Field(
        ..., description="Single answer, or a list for multi-select items"
    )
    time_spent_ms: int = Field(0, ge=0, description="Time spent on the item")

    @field_validator("answers")
    @classmethod
    def validate_answers(cls, v: Union[str, List[str]]) -> Union[str, List[str]]:
        """Reject empty answers."""
        values = [v] if isinstance(v, str) else v
        if not values or not any(s.strip() for s in values):
            raise ValueError("Answer cannot be empty")
        return v


class SubmitAnswerResponse(BaseModel):
    correct: bool
    theta: float
    se: float
    questions_asked: int
    should_continue: bool
    stop_reason: Optional[str] = None
    next_item: Optional[ItemResponse] = None
    result: Optional[AssessmentResultResponse] = None


class AbortSessionRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class SessionStatusResponse(BaseModel):
    """Schema for checking session status."""

    session_id: str
    blueprint_id: str
    status: str = Field(..., description="in_progress, completed, or aborted")
    theta: float
    se: float
    questions_asked: int
    correct_count: int
    bank_counts: Dict[str, int]
    started_at: datetime
    deadline: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    stop_reason: Optional[str] = None
    time_forced: bool = False
    abort_reason: Optional[str] = None

    @classmethod
    def from_session(cls, session: AssessmentSession) -> "SessionStatusResponse":
        return cls(
            session_id=session.id,
            blueprint_id=session.blueprint_id,
            status=session.status.value,
            theta=session.theta,
            se=session.se,
            questions_asked=session.questions_asked,
            correct_count=session.correct_count,
            bank_counts=dict(session.bank_counts),
            started_at=session.started_at,
            deadline=session.deadline,
            completed_at=session.completed_at,
            stop_reason=session.stop_reason,
            time_forced=session.time_forced,
            abort_reason=session.abort_reason,
        )

    @classmethod
    def from_result(cls, result: AssessmentResult) -> "SessionStatusResponse":
        """Status of a completed session that has been archived."""
        return cls(
            session_id=result.session_id,
            blueprint_id=result.blueprint_id,
            status=SessionStatus.COMPLETED.value,
            theta=result.theta,
            se=result.se,
            questions_asked=result.questions_asked,
            correct_count=result.correct_count,
            bank_counts={b.bank_id: b.questions_asked for b in result.per_bank},
            started_at=result.started_at,
            completed_at=result.completed_at,
            stop_reason=result.stop_reason,
            time_forced=result.time_forced,
        )

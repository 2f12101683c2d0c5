"""
Pydantic schemas for exam blueprints.

A blueprint is validated once, when a session begins (or when it is
registered); the session state machine then works with the frozen model and
never re-parses raw configuration.
"""
import math
from typing import Any, List, Mapping, Optional, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from adaptive_core.core.cat.domain import ScalingMethod
from adaptive_core.core.cat.errors import BlueprintInvalid

# Tolerance for floating-point percentage summation checks
_PERCENTAGE_SUM_TOLERANCE = 1e-9


class BankAllocation(BaseModel):
    """Share of a session drawn from one item bank."""

    model_config = ConfigDict(frozen=True)

    bank_id: str = Field(..., min_length=1, description="Item bank identifier")
    percentage: float = Field(..., ge=0.0, le=100.0, description="Target share (0-100)")
    min_questions: int = Field(..., ge=0, description="Hard minimum items from bank")
    max_questions: int = Field(..., ge=1, description="Maximum items from bank")

    @model_validator(mode="after")
    def validate_bounds(self) -> Self:
        if self.min_questions > self.max_questions:
            raise ValueError(
                f"Bank '{self.bank_id}': min_questions ({self.min_questions}) "
                f"exceeds max_questions ({self.max_questions})"
            )
        return self


class TerminationSettings(BaseModel):
    """Stopping criteria for an adaptive session."""

    model_config = ConfigDict(frozen=True)

    confidence_level: float = Field(
        default=0.95,
        gt=0.0,
        lt=1.0,
        description="Confidence level of the reported ability interval",
    )
    standard_error_threshold: float = Field(
        default=0.30,
        gt=0.0,
        description="Stop once SE(theta) falls to this bound",
    )
    time_limit_seconds: Optional[int] = Field(
        default=None,
        gt=0,
        description="Wall-clock limit; None disables the limit",
    )


class AdaptiveSettings(BaseModel):
    """Adaptive loop configuration."""

    model_config = ConfigDict(frozen=True)

    starting_difficulty: float = Field(default=5.0, ge=1.0, le=10.0)
    difficulty_adjustment: float = Field(default=1.0, gt=0.0)
    min_questions: int = Field(..., ge=1)
    max_questions: int = Field(..., ge=1)
    pilot_item_cap: Optional[int] = Field(
        default=None,
        ge=0,
        description="Pilot items allowed per session (default: share of max_questions)",
    )
    termination: TerminationSettings = Field(default_factory=TerminationSettings)

    @model_validator(mode="after")
    def validate_bounds(self) -> Self:
        if self.min_questions > self.max_questions:
            raise ValueError(
                f"min_questions ({self.min_questions}) exceeds "
                f"max_questions ({self.max_questions})"
            )
        return self


class ReportingScale(BaseModel):
    """Numeric range of the scaled score."""

    model_config = ConfigDict(frozen=True)

    min: float = 200.0
    max: float = 800.0

    @model_validator(mode="after")
    def validate_range(self) -> Self:
        if not self.min < self.max:
            raise ValueError(
                f"reporting_scale.min ({self.min}) must be below max ({self.max})"
            )
        return self


class ScoringSettings(BaseModel):
    """How the terminal ability estimate is reported."""

    model_config = ConfigDict(frozen=True)

    passing_score: float = Field(default=0.0, ge=0.0)
    scaling_method: ScalingMethod = ScalingMethod.IRT
    reporting_scale: ReportingScale = Field(default_factory=ReportingScale)


class Blueprint(BaseModel):
    """Exam configuration: bank allocations plus adaptive and scoring settings."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    bank_allocations: List[BankAllocation] = Field(..., min_length=1)
    adaptive: AdaptiveSettings
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)

    @model_validator(mode="after")
    def validate_allocations(self) -> Self:
        bank_ids = [a.bank_id for a in self.bank_allocations]
        if len(set(bank_ids)) != len(bank_ids):
            raise ValueError(f"Duplicate bank ids in allocations: {bank_ids}")

        total = sum(a.percentage for a in self.bank_allocations)
        if not math.isclose(total, 100.0, rel_tol=0.0, abs_tol=_PERCENTAGE_SUM_TOLERANCE):
            raise ValueError(f"Bank percentages must sum to 100, got {total}")

        total_minimum = sum(a.min_questions for a in self.bank_allocations)
        if total_minimum > self.adaptive.max_questions:
            raise ValueError(
                f"Bank minimums ({total_minimum}) exceed max_questions "
                f"({self.adaptive.max_questions})"
            )
        return self

    def allocation_for(self, bank_id: str) -> BankAllocation:
        for allocation in self.bank_allocations:
            if allocation.bank_id == bank_id:
                return allocation
        raise KeyError(bank_id)


def parse_blueprint(data: Mapping[str, Any]) -> Blueprint:
    """
    Validate raw blueprint configuration.

    Raises:
        BlueprintInvalid: If any allocation or settings invariant is violated.
    """
    try:
        return Blueprint.model_validate(data)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'blueprint'}: {err['msg']}"
            for err in e.errors()
        )
        raise BlueprintInvalid(
            "Blueprint failed validation",
            context={"blueprint_id": data.get("id"), "errors": errors},
        ) from e

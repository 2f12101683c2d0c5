"""
Database models for the adaptive assessment core.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)

from adaptive_core.core.cat.domain import (
    CalibrationTrend,
    ValidationStatus,
)

from .base import Base


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ItemRecord(Base):
    """An assessable item belonging to one bank."""

    __tablename__ = "items"

    id = Column(String(64), primary_key=True)
    bank_id = Column(String(64), nullable=False, index=True)
    prompt = Column(Text, nullable=True)
    answer_options = Column(JSON, nullable=True)  # JSON array for multiple choice
    answer_key = Column(JSON, nullable=False)  # JSON array of accepted answers
    difficulty = Column(Float, nullable=False)  # 1 (very easy) to 10 (very hard)
    discrimination = Column(Float, nullable=False, default=1.0)
    validation_status = Column(
        Enum(ValidationStatus), nullable=False, default=ValidationStatus.PILOT
    )
    # CalibrationStat version that last wrote difficulty/status
    calibration_version = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    __table_args__ = (
        CheckConstraint("difficulty >= 1 AND difficulty <= 10", name="ck_item_difficulty"),
        CheckConstraint("discrimination > 0", name="ck_item_discrimination"),
    )


class CalibrationStatRecord(Base):
    """Versioned response statistics for one item."""

    __tablename__ = "calibration_stats"

    item_id = Column(String(64), ForeignKey("items.id"), primary_key=True)
    correct_count = Column(Integer, nullable=False, default=0)
    total_count = Column(Integer, nullable=False, default=0)
    accuracy_pct = Column(Float, nullable=False, default=0.0)
    difficulty = Column(Float, nullable=False)
    trend = Column(Enum(CalibrationTrend), nullable=False, default=CalibrationTrend.STABLE)
    confidence_score = Column(Float, nullable=False, default=0.0)
    validated = Column(Boolean, nullable=False, default=False)
    validated_at = Column(DateTime(timezone=True), nullable=True)
    # Optimistic-concurrency version; every write increments it by one
    version = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    __table_args__ = (
        CheckConstraint("correct_count <= total_count", name="ck_stat_counts"),
    )


class BlueprintRecord(Base):
    """Raw blueprint configuration, validated when a session begins."""

    __tablename__ = "blueprints"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=True)
    config = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False
    )


class AssessmentResultRecord(Base):
    """Archived result of a completed session."""

    __tablename__ = "assessment_results"

    session_id = Column(String(64), primary_key=True)
    blueprint_id = Column(String(64), nullable=False, index=True)
    final_score = Column(Float, nullable=False)
    scaled_score = Column(Float, nullable=False)
    percentile_rank = Column(Float, nullable=False)
    questions_asked = Column(Integer, nullable=False)
    correct_count = Column(Integer, nullable=False)
    theta = Column(Float, nullable=False)
    standard_error = Column(Float, nullable=False)
    ci_lower = Column(Float, nullable=False)
    ci_upper = Column(Float, nullable=False)
    confidence_level = Column(Float, nullable=False)
    passed = Column(Boolean, nullable=False)
    performance_level = Column(String(32), nullable=False)
    stop_reason = Column(String(32), nullable=False)
    time_forced = Column(Boolean, nullable=False, default=False)
    # Format: [{"bank_id": "...", "score": 75.0, "questions_asked": 4, "correct_count": 3}]
    per_bank = Column(JSON, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False, index=True)

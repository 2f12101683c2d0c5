"""
In-memory domain types for adaptive sessions, items and results.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple, Union

# Discrimination weight applied to items that are not yet validated
NEUTRAL_DISCRIMINATION = 1.0


class ValidationStatus(str, enum.Enum):
    """Calibration status of an item."""

    PILOT = "pilot"
    VALIDATED = "validated"


class SessionStatus(str, enum.Enum):
    """Lifecycle status of an adaptive session."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABORTED = "aborted"


class CalibrationTrend(str, enum.Enum):
    """Direction of the latest difficulty change for an item."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class ScalingMethod(str, enum.Enum):
    """How terminal theta is converted into a final score."""

    IRT = "irt"
    PERCENT = "percent"
    SCALED = "scaled"


AnswerInput = Union[str, Sequence[str]]


def normalize_answers(answer: AnswerInput) -> FrozenSet[str]:
    """Normalize a single answer or a multi-select answer list for grading."""
    values: Iterable[str] = [answer] if isinstance(answer, str) else answer
    return frozenset(v.strip().casefold() for v in values if v and v.strip())


@dataclass(frozen=True)
class Item:
    """A calibrated question as seen by the selector.

    ``calibration_version`` is the CalibrationStat version that last wrote
    difficulty/status; repositories ignore updates carrying an older version.
    """

    id: str
    bank_id: str
    difficulty: float
    discrimination: float = NEUTRAL_DISCRIMINATION
    validation_status: ValidationStatus = ValidationStatus.VALIDATED
    answer_key: Tuple[str, ...] = ()
    calibration_version: int = 0

    @property
    def is_validated(self) -> bool:
        return self.validation_status == ValidationStatus.VALIDATED

    @property
    def effective_discrimination(self) -> float:
        """Discrimination used for estimation: neutral until validated."""
        if self.is_validated and self.discrimination > 0:
            return self.discrimination
        return NEUTRAL_DISCRIMINATION

    def grade(self, answer: AnswerInput) -> bool:
        """Compare a response against the answer key (order and case insensitive)."""
        expected = normalize_answers(self.answer_key)
        return bool(expected) and normalize_answers(answer) == expected


@dataclass(frozen=True)
class AdministeredItemRecord:
    """One answered item in a session's history."""

    item_id: str
    bank_id: str
    presented_difficulty: float
    correct: bool
    time_spent_ms: int
    discrimination: float = NEUTRAL_DISCRIMINATION
    # P(correct) at the theta the item was presented at
    probability_correct: float = 0.5


@dataclass(frozen=True)
class BankScore:
    """Per-bank performance summary.

    Attributes:
        bank_id: Item bank identifier.
        score: Percent correct within the bank (0-100).
        questions_asked: Items administered from the bank.
        correct_count: Correct responses within the bank.
    """

    bank_id: str
    score: float
    questions_asked: int
    correct_count: int


@dataclass(frozen=True)
class AssessmentResult:
    """Terminal, immutable result of a completed session."""

    session_id: str
    blueprint_id: str
    final_score: float
    scaled_score: float
    percentile_rank: float
    questions_asked: int
    correct_count: int
    per_bank: Tuple[BankScore, ...]
    theta: float
    se: float
    confidence_interval: Tuple[float, float]
    confidence_level: float
    passed: bool
    performance_level: str
    stop_reason: str
    time_forced: bool
    started_at: datetime
    completed_at: datetime


@dataclass
class AssessmentSession:
    """In-memory representation of an adaptive session.

    Mutated only by the session state machine while holding the session lock.
    The blueprint is referenced by id; the validated blueprint itself lives in
    the manager's blueprint cache.
    """

    id: str
    blueprint_id: str
    theta: float
    se: float
    started_at: datetime
    bank_counts: Dict[str, int]
    status: SessionStatus = SessionStatus.IN_PROGRESS
    administered: List[AdministeredItemRecord] = field(default_factory=list)
    pending_item: Optional[Item] = None
    pilot_count: int = 0
    deadline: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    stop_reason: Optional[str] = None
    time_forced: bool = False
    abort_reason: Optional[str] = None
    result: Optional[AssessmentResult] = None

    @property
    def questions_asked(self) -> int:
        return len(self.administered)

    @property
    def correct_count(self) -> int:
        return sum(1 for r in self.administered if r.correct)

    @property
    def administered_ids(self) -> Set[str]:
        ids = {r.item_id for r in self.administered}
        if self.pending_item is not None:
            ids.add(self.pending_item.id)
        return ids

"""
Builders for blueprints, items and clocks shared across tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from adaptive_core.core.cat.domain import Item, ValidationStatus

CORRECT_ANSWER = "a"
WRONG_ANSWER = "b"

# (bank_id, percentage, min_questions, max_questions)
DEFAULT_BANKS: Tuple[Tuple[str, float, int, int], ...] = (
    ("math", 50.0, 2, 10),
    ("verbal", 50.0, 2, 10),
)


def blueprint_config(
    blueprint_id: str = "bp-1",
    banks: Sequence[Tuple[str, float, int, int]] = DEFAULT_BANKS,
    min_questions: int = 4,
    max_questions: int = 10,
    standard_error_threshold: float = 0.3,
    time_limit_seconds: Optional[int] = None,
    starting_difficulty: float = 5.0,
    difficulty_adjustment: float = 1.0,
    pilot_item_cap: Optional[int] = None,
    scaling_method: str = "irt",
    passing_score: float = 0.0,
) -> Dict[str, Any]:
    """Raw blueprint configuration, as a client would send it."""
    adaptive: Dict[str, Any] = {
        "starting_difficulty": starting_difficulty,
        "difficulty_adjustment": difficulty_adjustment,
        "min_questions": min_questions,
        "max_questions": max_questions,
        "termination": {
            "confidence_level": 0.95,
            "standard_error_threshold": standard_error_threshold,
            "time_limit_seconds": time_limit_seconds,
        },
    }
    if pilot_item_cap is not None:
        adaptive["pilot_item_cap"] = pilot_item_cap
    return {
        "id": blueprint_id,
        "name": f"Blueprint {blueprint_id}",
        "bank_allocations": [
            {
                "bank_id": bank_id,
                "percentage": percentage,
                "min_questions": min_q,
                "max_questions": max_q,
            }
            for bank_id, percentage, min_q, max_q in banks
        ],
        "adaptive": adaptive,
        "scoring": {
            "passing_score": passing_score,
            "scaling_method": scaling_method,
            "reporting_scale": {"min": 200, "max": 800},
        },
    }


def make_items(
    bank_id: str,
    difficulties: Iterable[float],
    status: ValidationStatus = ValidationStatus.VALIDATED,
    prefix: Optional[str] = None,
    discrimination: float = 1.0,
) -> List[Item]:
    """Items named '<prefix>-00', '<prefix>-01', ... with answer key 'a'."""
    prefix = prefix or bank_id
    return [
        Item(
            id=f"{prefix}-{i:02d}",
            bank_id=bank_id,
            difficulty=float(d),
            discrimination=discrimination,
            validation_status=status,
            answer_key=(CORRECT_ANSWER,),
        )
        for i, d in enumerate(difficulties)
    ]


def default_pool() -> List[Item]:
    """Eight validated items per default bank, difficulties 1-8."""
    return make_items("math", range(1, 9)) + make_items("verbal", range(1, 9))


class FakeClock:
    """Manually advanced clock for time-limit tests."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)

"""
Stopping rules for adaptive sessions.

Stopping Rules (evaluated in priority order; any one suffices):
    1. Time limit: elapsed wall-clock time >= time_limit_seconds. Forces
       completion even below the minimum item count (time-forced).
    2. Maximum items: questions asked >= max_questions.
    3. Bank capacity: every bank has reached its max_questions.
    4. SE threshold: questions asked >= min_questions, every bank minimum met,
       and SE(theta) <= standard_error_threshold.

Time limits are evaluated lazily, whenever a client-facing call touches the
session; no background timer is involved.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from adaptive_core.core.cat.bank_balancing import all_banks_at_max, is_quota_satisfied
from adaptive_core.core.cat.domain import AssessmentSession
from adaptive_core.schemas.blueprint import Blueprint

logger = logging.getLogger(__name__)

REASON_TIME_LIMIT = "time_limit"
REASON_MAX_ITEMS = "max_items"
REASON_BANKS_AT_MAX = "all_banks_at_max"
REASON_SE_THRESHOLD = "se_threshold"
# Set by the selector rather than by check_stopping_criteria
REASON_POOL_EXHAUSTED = "item_pool_exhausted"


@dataclass
class StoppingDecision:
    """
    Result of evaluating stopping criteria for a session.

    Attributes:
        should_stop: Whether the session should terminate.
        reason: Primary reason for stopping (if should_stop=True), or None.
        time_forced: True when the time limit ended the session.
        details: Diagnostic values (se, num_items, elapsed_seconds, ...).
    """

    should_stop: bool
    reason: Optional[str]
    details: Dict[str, Any]
    time_forced: bool = False


def check_stopping_criteria(
    session: AssessmentSession,
    blueprint: Blueprint,
    now: datetime,
) -> StoppingDecision:
    """
    Evaluate all stopping rules for a session.

    Args:
        session: The session being evaluated.
        blueprint: The session's validated blueprint.
        now: Current time, used for the lazy time-limit check.

    Returns:
        StoppingDecision with should_stop flag, reason, and diagnostics.

    Raises:
        ValueError: If the session reports a negative SE.
    """
    if session.se < 0:
        raise ValueError(f"Standard error must be non-negative, got {session.se}")

    adaptive = blueprint.adaptive
    termination = adaptive.termination
    num_items = session.questions_asked
    elapsed_seconds = (now - session.started_at).total_seconds()
    quota_met = is_quota_satisfied(session.bank_counts, blueprint)

    details: Dict[str, Any] = {
        "se": session.se,
        "num_items": num_items,
        "se_threshold": termination.standard_error_threshold,
        "elapsed_seconds": round(elapsed_seconds, 3),
        "min_items_met": num_items >= adaptive.min_questions,
        "bank_minimums_met": quota_met,
    }

    # Rule 1: time limit forces completion regardless of minimums
    limit = termination.time_limit_seconds
    if limit is not None and elapsed_seconds >= limit:
        logger.info(
            f"Session {session.id}: stopping on time limit "
            f"({elapsed_seconds:.1f}s >= {limit}s) after {num_items} items"
        )
        return StoppingDecision(
            should_stop=True, reason=REASON_TIME_LIMIT, details=details, time_forced=True
        )

    # Rule 2: maximum items
    if num_items >= adaptive.max_questions:
        logger.info(
            f"Session {session.id}: stopping at maximum items "
            f"({num_items}/{adaptive.max_questions})"
        )
        return StoppingDecision(should_stop=True, reason=REASON_MAX_ITEMS, details=details)

    # Rule 3: every bank full
    if all_banks_at_max(session.bank_counts, blueprint):
        logger.info(f"Session {session.id}: stopping, every bank is at its maximum")
        return StoppingDecision(
            should_stop=True, reason=REASON_BANKS_AT_MAX, details=details
        )

    # Rule 4: precision reached once minimums are satisfied
    if (
        num_items >= adaptive.min_questions
        and quota_met
        and session.se <= termination.standard_error_threshold
    ):
        logger.info(
            f"Session {session.id}: SE threshold met "
            f"(SE={session.se:.4f} <= {termination.standard_error_threshold:.4f}) "
            f"after {num_items} items"
        )
        return StoppingDecision(
            should_stop=True, reason=REASON_SE_THRESHOLD, details=details
        )

    logger.debug(
        f"Session {session.id}: continuing (SE={session.se:.4f}, items={num_items}, "
        f"bank_minimums_met={quota_met})"
    )
    return StoppingDecision(should_stop=False, reason=None, details=details)

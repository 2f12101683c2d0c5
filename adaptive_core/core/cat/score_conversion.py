"""
Score conversion for completed adaptive sessions.

Converts the terminal ability estimate into the reported scores:

Final score (by blueprint scaling_method):
    irt:     100 * P(theta), the expected percent correct on an item of
             middle difficulty
    percent: 100 * correct / answered
    scaled:  theta mapped linearly from [-3, 3] onto the reporting scale

Scaled score:
    Always the linear rescale onto reporting_scale, clamped to its bounds.

Confidence interval:
    theta +/- z * SE(theta), with z from the blueprint's confidence level
    (z = 1.96 at 95%).

Percentile rank:
    100 * CDF(theta) under a reference ability distribution. The default is
    a normal distribution; an empirical distribution built from observed
    thetas can be swapped in.
"""

import logging
import math
from datetime import datetime
from typing import Iterable, Protocol, Sequence, Tuple

import numpy as np
from scipy.stats import norm

from adaptive_core.core.cat.domain import (
    AdministeredItemRecord,
    AssessmentResult,
    AssessmentSession,
    BankScore,
    ScalingMethod,
)
from adaptive_core.core.cat.scale import THETA_MAX, THETA_MIN, logistic
from adaptive_core.schemas.blueprint import Blueprint, ReportingScale

logger = logging.getLogger(__name__)

# (lower theta bound, label), checked from the top
PERFORMANCE_LEVELS: Tuple[Tuple[float, str], ...] = (
    (2.0, "High"),
    (1.0, "Above Average"),
    (-1.0, "Average"),
    (-2.0, "Below Average"),
)
LOWEST_PERFORMANCE_LEVEL = "Low"


class ReferenceDistribution(Protocol):
    """Population ability distribution used for percentile ranks."""

    def cdf(self, theta: float) -> float:
        ...


class NormalReferenceDistribution:
    def __init__(self, mean: float = 0.0, sd: float = 1.0):
        if sd <= 0:
            raise ValueError(f"Reference SD must be positive, got {sd}")
        self.mean = mean
        self.sd = sd

    def cdf(self, theta: float) -> float:
        return float(norm.cdf(theta, loc=self.mean, scale=self.sd))


class EmpiricalReferenceDistribution:
    """Mid-rank empirical CDF over a sample of observed thetas."""

    def __init__(self, thetas: Iterable[float]):
        self._sorted = np.sort(np.asarray(list(thetas), dtype=float))
        if self._sorted.size == 0:
            raise ValueError("Empirical reference distribution needs at least one theta")

    def cdf(self, theta: float) -> float:
        below = np.searchsorted(self._sorted, theta, side="left")
        at_or_below = np.searchsorted(self._sorted, theta, side="right")
        return float((below + 0.5 * (at_or_below - below)) / self._sorted.size)


def theta_to_scaled(theta: float, scale: ReportingScale) -> float:
    """Linearly map theta from [THETA_MIN, THETA_MAX] onto the reporting scale."""
    fraction = (theta - THETA_MIN) / (THETA_MAX - THETA_MIN)
    fraction = max(0.0, min(1.0, fraction))
    return scale.min + fraction * (scale.max - scale.min)


def percent_correct(records: Sequence[AdministeredItemRecord]) -> float:
    if not records:
        return 0.0
    return 100.0 * sum(1 for r in records if r.correct) / len(records)


def confidence_interval(theta: float, se: float, confidence_level: float) -> Tuple[float, float]:
    """
    Symmetric interval theta +/- z * se.

    Raises:
        ValueError: If se is negative or the level is outside (0, 1).
    """
    if se < 0:
        raise ValueError(f"se must be non-negative, got {se}")
    if not 0.0 < confidence_level < 1.0:
        raise ValueError(f"confidence_level must be in (0, 1), got {confidence_level}")
    z = float(norm.ppf(0.5 + confidence_level / 2.0))
    return (theta - z * se, theta + z * se)


def performance_level(theta: float) -> str:
    for lower_bound, label in PERFORMANCE_LEVELS:
        if theta > lower_bound:
            return label
    return LOWEST_PERFORMANCE_LEVEL


def final_score(
    method: ScalingMethod,
    theta: float,
    records: Sequence[AdministeredItemRecord],
    scale: ReportingScale,
) -> float:
    if method == ScalingMethod.IRT:
        return 100.0 * logistic(theta)
    if method == ScalingMethod.PERCENT:
        return percent_correct(records)
    return theta_to_scaled(theta, scale)


def calculate_bank_scores(
    records: Sequence[AdministeredItemRecord], blueprint: Blueprint
) -> Tuple[BankScore, ...]:
    """
    Per-bank percent correct, in blueprint allocation order.

    Banks with no administered items report zero questions and a score of 0.
    """
    scores = []
    for allocation in blueprint.bank_allocations:
        bank_records = [r for r in records if r.bank_id == allocation.bank_id]
        correct = sum(1 for r in bank_records if r.correct)
        scores.append(
            BankScore(
                bank_id=allocation.bank_id,
                score=round(percent_correct(bank_records), 2),
                questions_asked=len(bank_records),
                correct_count=correct,
            )
        )
    return tuple(scores)


def build_result(
    session: AssessmentSession,
    blueprint: Blueprint,
    reference: ReferenceDistribution,
    stop_reason: str,
    time_forced: bool,
    completed_at: datetime,
) -> AssessmentResult:
    """
    Assemble the immutable result for a session that is being finalized.

    Raises:
        ValueError: If theta or se is not finite.
    """
    theta, se = session.theta, session.se
    if not (math.isfinite(theta) and math.isfinite(se)):
        raise ValueError(f"Cannot score non-finite estimate (theta={theta}, se={se})")

    scoring = blueprint.scoring
    records = session.administered
    level = blueprint.adaptive.termination.confidence_level
    lower, upper = confidence_interval(theta, se, level)
    score = final_score(scoring.scaling_method, theta, records, scoring.reporting_scale)

    result = AssessmentResult(
        session_id=session.id,
        blueprint_id=blueprint.id,
        final_score=round(score, 2),
        scaled_score=round(theta_to_scaled(theta, scoring.reporting_scale), 2),
        percentile_rank=round(100.0 * reference.cdf(theta), 2),
        questions_asked=len(records),
        correct_count=sum(1 for r in records if r.correct),
        per_bank=calculate_bank_scores(records, blueprint),
        theta=theta,
        se=se,
        confidence_interval=(lower, upper),
        confidence_level=level,
        passed=score >= scoring.passing_score,
        performance_level=performance_level(theta),
        stop_reason=stop_reason,
        time_forced=time_forced,
        started_at=session.started_at,
        completed_at=completed_at,
    )

    logger.info(
        f"Scored session {session.id}: final_score={result.final_score}, "
        f"scaled={result.scaled_score}, percentile={result.percentile_rank}, "
        f"theta={theta:.3f}, se={se:.3f}, items={result.questions_asked}"
    )
    return result

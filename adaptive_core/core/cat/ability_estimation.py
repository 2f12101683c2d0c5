"""
Ability estimation strategies for Computerized Adaptive Testing.

Two interchangeable strategies implement the ``AbilityEstimator`` protocol:

Stepwise (default):
    A bounded one-parameter adaptive step. For each answered item, with
    p = P(correct | theta, b) evaluated at the theta the item was shown at:

        correct:   theta += k * (1 - p)
        incorrect: theta -= k * p

    where k is the blueprint's difficulty_adjustment, scaled by the item's
    discrimination once the item is validated. Standard error comes from the
    accumulated Fisher information, using the p_i stored on each record when
    the item was administered:

        SE = 1 / sqrt(sum(p_i * (1 - p_i)))

    capped at the initial SE and floored at SE_FLOOR, so it never increases
    as items accumulate and never reaches zero.

EAP:
    Expected A Posteriori estimation by numerical quadrature (Bock & Mislevy,
    1982), with the prior centred on the blueprint's starting difficulty.

Both strategies replay the full history on every call, so estimate() is a
pure function of the administered records.
"""

import logging
import math
from typing import List, Optional, Protocol, Sequence, Tuple

from adaptive_core.core.cat.domain import AdministeredItemRecord
from adaptive_core.core.cat.scale import (
    THETA_MAX,
    THETA_MIN,
    clamp_theta,
    difficulty_to_theta,
    probability_correct,
)

logger = logging.getLogger(__name__)

# SE reported before any item is answered (low confidence)
INITIAL_STANDARD_ERROR = 5.0

# Lower bound on reported SE
SE_FLOOR = 1e-3

# EAP quadrature configuration
QUADRATURE_POINTS = 61
QUADRATURE_RANGE = (THETA_MIN, THETA_MAX)
EAP_PRIOR_SD = 1.0


class AbilityEstimator(Protocol):
    """Strategy interface consumed by the session state machine."""

    def initial(self) -> Tuple[float, float]:
        """Return (theta, se) before any item has been answered."""
        ...

    def estimate(
        self, history: Sequence[AdministeredItemRecord]
    ) -> Tuple[float, float]:
        """Return (theta, se) after the given administered items."""
        ...


def standard_error_from_information(
    total_information: float,
    initial_se: float = INITIAL_STANDARD_ERROR,
) -> float:
    """
    Convert accumulated Fisher information into a standard error.

    Args:
        total_information: Sum of p_i * (1 - p_i) over administered items.
        initial_se: SE before any information is available; also the cap.

    Returns:
        SE in [SE_FLOOR, initial_se].
    """
    if total_information <= 0 or not math.isfinite(total_information):
        return initial_se
    se = 1.0 / math.sqrt(total_information)
    return max(SE_FLOOR, min(initial_se, se))


def _bounded_theta(candidate: float, previous: float, warn: bool) -> float:
    """Clamp a theta update, logging estimation divergence."""
    if not math.isfinite(candidate):
        if warn:
            logger.warning(
                f"Estimation divergence: non-finite theta update ({candidate}); "
                f"keeping previous estimate {previous:.3f}"
            )
        return clamp_theta(previous)
    if candidate < THETA_MIN or candidate > THETA_MAX:
        if warn:
            logger.warning(
                f"Estimation divergence: theta {candidate:.3f} outside "
                f"[{THETA_MIN}, {THETA_MAX}]; clamping"
            )
        return clamp_theta(candidate)
    return candidate


class StepwiseAbilityEstimator:
    """Bounded-step ability estimator with Fisher-information SE."""

    def __init__(
        self,
        starting_difficulty: float,
        difficulty_adjustment: float,
        initial_se: float = INITIAL_STANDARD_ERROR,
    ):
        if difficulty_adjustment <= 0:
            raise ValueError(
                f"difficulty_adjustment must be positive, got {difficulty_adjustment}"
            )
        self.starting_theta = clamp_theta(difficulty_to_theta(starting_difficulty))
        self.difficulty_adjustment = difficulty_adjustment
        self.initial_se = initial_se

    def initial(self) -> Tuple[float, float]:
        return (self.starting_theta, self.initial_se)

    def step(
        self,
        theta: float,
        record: AdministeredItemRecord,
        warn: bool = True,
    ) -> float:
        """Apply one response to theta."""
        p = probability_correct(theta, record.presented_difficulty)
        k = self.difficulty_adjustment * record.discrimination
        if record.correct:
            candidate = theta + k * (1.0 - p)
        else:
            candidate = theta - k * p
        return _bounded_theta(candidate, theta, warn)

    def estimate(
        self, history: Sequence[AdministeredItemRecord]
    ) -> Tuple[float, float]:
        theta = self.starting_theta
        total_information = 0.0
        last_index = len(history) - 1
        for index, record in enumerate(history):
            p = record.probability_correct
            total_information += p * (1.0 - p)
            # Earlier steps were already reported when they were first applied
            theta = self.step(theta, record, warn=index == last_index)
        return (theta, standard_error_from_information(total_information, self.initial_se))


class EAPAbilityEstimator:
    """Posterior-mean estimator, interchangeable with the stepwise rule."""

    def __init__(self, starting_difficulty: float, prior_sd: float = EAP_PRIOR_SD):
        self.prior_mean = clamp_theta(difficulty_to_theta(starting_difficulty))
        self.prior_sd = prior_sd

    def initial(self) -> Tuple[float, float]:
        return (self.prior_mean, self.prior_sd)

    def estimate(
        self, history: Sequence[AdministeredItemRecord]
    ) -> Tuple[float, float]:
        responses = [
            (r.discrimination, difficulty_to_theta(r.presented_difficulty), r.correct)
            for r in history
        ]
        theta, se = estimate_ability_eap(responses, self.prior_mean, self.prior_sd)
        return (_bounded_theta(theta, self.prior_mean, warn=True), max(SE_FLOOR, se))


def build_estimator(
    starting_difficulty: float,
    difficulty_adjustment: float,
    strategy: str = "stepwise",
) -> AbilityEstimator:
    """
    Construct the configured estimation strategy for a blueprint.

    Raises:
        ValueError: If the strategy name is unknown.
    """
    if strategy == "stepwise":
        return StepwiseAbilityEstimator(starting_difficulty, difficulty_adjustment)
    if strategy == "eap":
        return EAPAbilityEstimator(starting_difficulty)
    raise ValueError(f"Unknown estimation strategy: {strategy!r}")


def estimate_ability_eap(
    responses: List[Tuple[float, float, bool]],
    prior_mean: float = 0.0,
    prior_sd: float = 1.0,
    quadrature_points: Optional[int] = None,
) -> Tuple[float, float]:
    """
    Estimate ability using Expected A Posteriori (EAP) with numerical quadrature.

    Uses the logistic model:
        P(theta) = 1 / (1 + exp(-a * (theta - b)))

    The EAP estimate is the posterior mean:
        theta_hat = E[theta | responses] = sum(theta_i * p(theta_i | responses))

    Standard error is the posterior standard deviation.

    Args:
        responses: List of (discrimination, difficulty, is_correct) tuples,
            with difficulty on the logit scale.
        prior_mean: Mean of the Gaussian prior on theta.
        prior_sd: Standard deviation of the Gaussian prior on theta.
        quadrature_points: Override for the number of grid points.

    Returns:
        Tuple of (theta_estimate, standard_error).

    Raises:
        ValueError: If any discrimination parameter is not positive.
    """
    if not responses:
        return (prior_mean, prior_sd)

    for i, (a, _b, _correct) in enumerate(responses):
        if a <= 0:
            raise ValueError(
                f"Discrimination parameter must be positive, got {a} for response {i}"
            )

    theta_min, theta_max = QUADRATURE_RANGE
    n_points = quadrature_points or QUADRATURE_POINTS
    step = (theta_max - theta_min) / (n_points - 1)
    theta_points = [theta_min + step * i for i in range(n_points)]

    # log N(theta | mu, sigma^2) up to a constant
    variance = prior_sd**2
    log_priors = [-((theta - prior_mean) ** 2) / (2.0 * variance) for theta in theta_points]

    log_likelihoods = _compute_log_likelihoods(theta_points, responses)
    log_posteriors = [lp + ll for lp, ll in zip(log_priors, log_likelihoods)]

    # Normalize using log-sum-exp for numerical stability
    max_log_post = max(log_posteriors)
    posteriors = [math.exp(lp - max_log_post) for lp in log_posteriors]
    posterior_sum = sum(posteriors)

    if posterior_sum == 0.0:
        logger.warning(
            "Posterior collapsed to zero at all quadrature points. "
            "Returning prior estimate."
        )
        return (prior_mean, prior_sd)

    posterior_probs = [p / posterior_sum for p in posteriors]
    theta_hat = sum(theta * prob for theta, prob in zip(theta_points, posterior_probs))
    posterior_variance = sum(
        (theta - theta_hat) ** 2 * prob
        for theta, prob in zip(theta_points, posterior_probs)
    )

    return (theta_hat, math.sqrt(posterior_variance))


def _compute_log_likelihoods(
    theta_points: List[float],
    responses: List[Tuple[float, float, bool]],
) -> List[float]:
    """
    Compute the log-likelihood of the response vector at each quadrature point.

    Uses numerically stable log-sigmoid computation to avoid overflow/underflow
    with extreme logit values.
    """
    log_likelihoods = []
    for theta in theta_points:
        log_lik = 0.0
        for a, b, is_correct in responses:
            logit = a * (theta - b)

            # log P(correct)   = -log(1 + exp(-logit))        for logit >= 0
            #                  = logit - log(1 + exp(logit))  for logit < 0
            # log P(incorrect) = log P(correct) - logit
            if logit >= 0:
                log_1_plus_exp = math.log(1.0 + math.exp(-logit))
                log_p_correct = -log_1_plus_exp
                log_p_incorrect = -logit - log_1_plus_exp
            else:
                log_1_plus_exp = math.log(1.0 + math.exp(logit))
                log_p_correct = logit - log_1_plus_exp
                log_p_incorrect = -log_1_plus_exp

            log_lik += log_p_correct if is_correct else log_p_incorrect

        log_likelihoods.append(log_lik)

    return log_likelihoods

"""
Difficulty and ability scales shared by estimation, selection and scoring.

Items are calibrated on a 1-10 difficulty scale (1 = very easy). Ability is
tracked on a logit scale. The two are related by a fixed linear map:

    theta = THETA_MIN + (difficulty - 1) / 9 * (THETA_MAX - THETA_MIN)

so difficulty 1 sits at theta -3.0, difficulty 10 at +3.0, and the midpoint
5.5 at 0.0. Theta is clamped to the same range so that long streaks of
correct or incorrect answers cannot extrapolate past the hardest or easiest
item in the pool.
"""
import math

DIFFICULTY_MIN = 1.0
DIFFICULTY_MAX = 10.0

THETA_MIN = -3.0
THETA_MAX = 3.0

_THETA_PER_DIFFICULTY = (THETA_MAX - THETA_MIN) / (DIFFICULTY_MAX - DIFFICULTY_MIN)


def difficulty_to_theta(difficulty: float) -> float:
    """Map a 1-10 difficulty onto the logit scale."""
    return THETA_MIN + (difficulty - DIFFICULTY_MIN) * _THETA_PER_DIFFICULTY


def theta_to_difficulty(theta: float) -> float:
    """Inverse of difficulty_to_theta."""
    return DIFFICULTY_MIN + (theta - THETA_MIN) / _THETA_PER_DIFFICULTY


def clamp_theta(theta: float) -> float:
    return max(THETA_MIN, min(THETA_MAX, theta))


def logistic(x: float) -> float:
    """Numerically stable sigmoid."""
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    exp_x = math.exp(x)
    return exp_x / (1.0 + exp_x)


def probability_correct(
    theta: float,
    difficulty: float,
    discrimination: float = 1.0,
) -> float:
    """
    Probability of a correct response under the logistic item model.

        P(theta) = 1 / (1 + exp(-a * (theta - b)))

    Args:
        theta: Ability on the logit scale.
        difficulty: Item difficulty on the 1-10 scale (converted to b).
        discrimination: Item discrimination (a). Must be > 0.

    Returns:
        Probability in the open interval (0, 1).

    Raises:
        ValueError: If discrimination is not positive.
    """
    if discrimination <= 0:
        raise ValueError(
            f"Discrimination parameter must be positive, got {discrimination}"
        )
    b = difficulty_to_theta(difficulty)
    return logistic(discrimination * (theta - b))

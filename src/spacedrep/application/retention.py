"""
Retention model: a single exponential forgetting curve.

R(t) = exp(-t / S), where t is elapsed days and S is stability in days.
The model is deliberately invertible, so the interval that lets R decay to a
target can be solved in closed form.

This is a pure computation module with no I/O.
"""

import math
from collections.abc import Iterable

from spacedrep.domain.constants import (
    DAY_MS,
    DEFAULT_RETENTION_FLOOR,
    DEFAULT_RETRIEVABILITY_TARGET,
    DEFAULT_STABILITY_ALPHA,
    MIN_INTERVAL_DAYS,
    STABILITY_MAX_DAYS,
    STABILITY_MIN_DAYS,
    TARGET_CLAMP_MAX,
    TARGET_CLAMP_MIN,
)


def clamp(value: float, lower: float, upper: float) -> float:
    return min(max(value, lower), upper)


def safe_stability(stability_days: float) -> float:
    """Floor stability to the model minimum; NaN becomes the minimum."""
    if math.isnan(stability_days) or stability_days < STABILITY_MIN_DAYS:
        return STABILITY_MIN_DAYS
    return stability_days


def retrievability(
    stability_days: float,
    elapsed_ms: float,
    floor: float = DEFAULT_RETENTION_FLOOR,
) -> float:
    """
    Probability of recall after ``elapsed_ms`` milliseconds.

    Returns 0.0 when the input is degenerate enough that the exponential is
    not finite.
    """
    if math.isnan(floor):
        floor = DEFAULT_RETENTION_FLOOR
    floor = clamp(floor, 0.0, 1.0)
    if math.isnan(elapsed_ms):
        return 0.0

    elapsed_days = max(0.0, elapsed_ms) / DAY_MS
    value = math.exp(-elapsed_days / safe_stability(stability_days))
    if not math.isfinite(value):
        return 0.0
    return clamp(value, floor, 1.0)


def interval_days(stability_days: float, target_retrievability: float) -> float:
    """
    Days until retrievability decays to ``target_retrievability``.

    t = -S * ln(target), with the target kept away from 0 and 1.
    """
    if math.isnan(target_retrievability):
        target_retrievability = DEFAULT_RETRIEVABILITY_TARGET
    target = clamp(target_retrievability, TARGET_CLAMP_MIN, TARGET_CLAMP_MAX)
    interval = -safe_stability(stability_days) * math.log(target)
    return max(interval, MIN_INTERVAL_DAYS)


def update_stability(
    stability_days: float,
    quality: float,
    alpha: float = DEFAULT_STABILITY_ALPHA,
) -> float:
    """
    Stability after a review of the given quality.

    Quality 1 grows stability, 0 shrinks it, 0.5 leaves it as is.
    """
    current = clamp(safe_stability(stability_days), STABILITY_MIN_DAYS, STABILITY_MAX_DAYS)
    updated = current * (1 + alpha * (quality - 0.5))
    if math.isnan(updated):
        return current
    return clamp(updated, STABILITY_MIN_DAYS, STABILITY_MAX_DAYS)


def average_quality(qualities: Iterable[float]) -> float | None:
    values = list(qualities)
    if not values:
        return None
    return sum(values) / len(values)

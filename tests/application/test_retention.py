import math

import pytest

from spacedrep.application.retention import (
    average_quality,
    interval_days,
    retrievability,
    safe_stability,
    update_stability,
)
from spacedrep.domain.constants import (
    DAY_MS,
    MIN_INTERVAL_DAYS,
    STABILITY_MAX_DAYS,
    STABILITY_MIN_DAYS,
)


def test_retrievability_one_stability_one_day():
    assert retrievability(1.0, DAY_MS) == pytest.approx(math.exp(-1), rel=1e-9)
    assert retrievability(1.0, DAY_MS) == pytest.approx(0.368, abs=1e-3)


def test_retrievability_bounded_and_decreasing():
    for stability in (0.25, 1.0, 7.5, 90.0):
        values = [retrievability(stability, hours * 3_600_000) for hours in range(0, 24 * 30, 6)]
        assert all(0.0 <= v <= 1.0 for v in values)
        assert values[0] == 1.0
        assert all(a > b for a, b in zip(values, values[1:]) if b > 0)


def test_retrievability_degenerate_inputs():
    assert retrievability(1.0, float("nan")) == 0.0
    assert retrievability(1.0, -5 * DAY_MS) == 1.0
    # Zero/negative stability is floored instead of dividing by zero
    assert retrievability(0.0, DAY_MS) == pytest.approx(math.exp(-1 / STABILITY_MIN_DAYS))
    assert retrievability(float("nan"), 0) == 1.0


def test_retrievability_floor_clamps_result():
    assert retrievability(1.0, 10 * DAY_MS, floor=0.2) == 0.2
    assert retrievability(1.0, 10 * DAY_MS, floor=float("nan")) == pytest.approx(math.exp(-10))
    assert retrievability(1.0, 0, floor=5) == 1.0


def test_interval_days_scenario():
    assert interval_days(10.0, 0.9) == pytest.approx(1.054, abs=1e-3)


@pytest.mark.parametrize("target", [0.5, 0.7, 0.9, 0.95])
def test_interval_round_trip(target):
    for stability in (0.5, 3.0, 42.0):
        days = interval_days(stability, target)
        assert retrievability(stability, days * DAY_MS) == pytest.approx(target, rel=1e-9)


def test_interval_days_guards():
    assert interval_days(0.25, 0.99) == MIN_INTERVAL_DAYS
    assert interval_days(1.0, float("nan")) == interval_days(1.0, 0.7)
    # Targets outside (0, 1) are clamped rather than producing log(0) or negatives
    assert interval_days(1.0, 0.0) == pytest.approx(-math.log(0.01))
    assert interval_days(1.0, 1.5) == pytest.approx(max(-math.log(0.99), MIN_INTERVAL_DAYS))


class TestUpdateStability:
    def test_easy_grows(self):
        assert update_stability(2.0, 1.0, alpha=1.0) == pytest.approx(3.0)
        assert update_stability(2.0, 1.0, alpha=0.2) > 2.0

    def test_forgot_shrinks(self):
        assert update_stability(2.0, 0.0, alpha=1.0) == pytest.approx(1.0)
        assert update_stability(2.0, 0.0, alpha=0.2) < 2.0

    def test_hard_is_noop(self):
        assert update_stability(2.0, 0.5, alpha=1.0) == 2.0

    def test_clamped_to_bounds(self):
        assert update_stability(STABILITY_MAX_DAYS, 1.0) == STABILITY_MAX_DAYS
        assert update_stability(STABILITY_MIN_DAYS, 0.0) == STABILITY_MIN_DAYS


def test_safe_stability():
    assert safe_stability(float("nan")) == STABILITY_MIN_DAYS
    assert safe_stability(-1) == STABILITY_MIN_DAYS
    assert safe_stability(3.0) == 3.0


def test_average_quality():
    assert average_quality([]) is None
    assert average_quality([0.5, 1.0]) == 0.75

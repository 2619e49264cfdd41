#!/usr/bin/env python3
"""
Metalsmith Plugin Validation - Scoring Module

Central home of every scoring threshold. Converts category pass/fail counts
into the overall 0-100 quality score and combines validation score, test pass
rate and coverage into a discrete health tier.

Tune tiers and weights here; analyzers never hard-code them.
"""

from __future__ import annotations

# =============================================================================
# Scoring Constants
# =============================================================================

# Health tiers, checked top-down; a value must reach the minimum to earn the tier
HEALTH_TIERS: tuple[tuple[float, str], ...] = (
    (90.0, "EXCELLENT"),
    (75.0, "GOOD"),
    (60.0, "FAIR"),
    (40.0, "NEEDS IMPROVEMENT"),
)
LOWEST_TIER = "POOR"

TIER_ORDER: tuple[str, ...] = ("EXCELLENT", "GOOD", "FAIR", "NEEDS IMPROVEMENT", "POOR")

# Relative weight of each audit signal in the health computation
HEALTH_WEIGHTS = {
    "validation": 40.0,
    "tests": 30.0,
    "coverage": 20.0,
}

# Validation score an audit needs to mark the validation step as passed
VALIDATION_PASS_THRESHOLD = 70

# Fallback coverage threshold when RuleConfig does not provide one
DEFAULT_COVERAGE_THRESHOLD = 80.0

# Coverage at or above this is reported as excellent
EXCELLENT_COVERAGE = 90.0


# =============================================================================
# Scoring Functions
# =============================================================================


def compute_overall_score(passed_checks: int, total_checks: int) -> int:
    """Overall quality score: 100 * passed / total, floored.

    Flooring keeps the score at 100 only when every category passed.
    A run in which no category ran scores 100 (nothing failed).
    """
    if total_checks <= 0:
        return 100
    passed_checks = max(0, min(passed_checks, total_checks))
    return 100 * passed_checks // total_checks


def health_tier(percentage: float | None) -> str:
    """Map a 0-100 value to a health tier. None maps to the lowest tier."""
    if percentage is None:
        return LOWEST_TIER
    for minimum, tier in HEALTH_TIERS:
        if percentage >= minimum:
            return tier
    return LOWEST_TIER


def pass_rate(passed: int, total: int) -> float | None:
    """Percentage of passing tests, None when no tests were counted."""
    if total <= 0:
        return None
    return 100.0 * max(0, min(passed, total)) / total


def combine_health_signals(
    validation_score: float | None,
    test_rate: float | None,
    coverage: float | None,
) -> float | None:
    """Weighted mean of the signals that produced usable numbers.

    Missing signals (None) are left out of both numerator and weight, so an
    unparsable output is neutral rather than negative. Returns None when no
    signal is usable.
    """
    signals = {"validation": validation_score, "tests": test_rate, "coverage": coverage}
    weighted = 0.0
    weight = 0.0
    for name, value in signals.items():
        if value is None:
            continue
        clamped = max(0.0, min(100.0, float(value)))
        weighted += clamped * HEALTH_WEIGHTS[name]
        weight += HEALTH_WEIGHTS[name]
    if weight == 0:
        return None
    return weighted / weight


def overall_health(
    validation_score: float | None,
    test_rate: float | None,
    coverage: float | None,
) -> str:
    """Health tier from validation score, test pass rate and coverage.

    Pure function of its three inputs. No signal at all yields POOR.
    The combined value is compared unrounded so a boundary miss stays in
    the lower tier.
    """
    return health_tier(combine_health_signals(validation_score, test_rate, coverage))

#!/usr/bin/env python3
"""Tests for mpv_scoring.py - overall score and health tiers."""

from __future__ import annotations

import pytest

from mpv_scoring import combine_health_signals, compute_overall_score, health_tier, overall_health, pass_rate


class TestOverallScore:
    @pytest.mark.parametrize(
        ("passed", "total", "score"),
        [(0, 1, 0), (1, 1, 100), (1, 3, 33), (2, 3, 66), (7, 8, 87), (0, 0, 100)],
    )
    def test_floored_percentage(self, passed: int, total: int, score: int) -> None:
        assert compute_overall_score(passed, total) == score

    def test_only_all_passed_reaches_100(self) -> None:
        assert compute_overall_score(199, 200) == 99


class TestHealthTier:
    @pytest.mark.parametrize(
        ("value", "tier"),
        [
            (100, "EXCELLENT"),
            (90, "EXCELLENT"),
            (89.99, "GOOD"),
            (75, "GOOD"),
            (74.9, "FAIR"),
            (60, "FAIR"),
            (59.5, "NEEDS IMPROVEMENT"),
            (40, "NEEDS IMPROVEMENT"),
            (39.99, "POOR"),
            (0, "POOR"),
            (None, "POOR"),
        ],
    )
    def test_thresholds(self, value: float | None, tier: str) -> None:
        assert health_tier(value) == tier


class TestHealthSignals:
    def test_pass_rate(self) -> None:
        assert pass_rate(3, 4) == 75.0
        assert pass_rate(0, 0) is None

    def test_missing_signals_are_neutral(self) -> None:
        assert combine_health_signals(80, None, None) == 80
        assert overall_health(95, None, None) == "EXCELLENT"

    def test_weighted_mean(self) -> None:
        # (100*40 + 50*30 + 80*20) / 90
        assert combine_health_signals(100, 50, 80) == pytest.approx(7100 / 90)
        assert overall_health(100, 50, 80) == "GOOD"

    def test_no_signals_is_poor(self) -> None:
        assert combine_health_signals(None, None, None) is None
        assert overall_health(None, None, None) == "POOR"

    def test_deterministic(self) -> None:
        assert overall_health(87, 100, 91.5) == overall_health(87, 100, 91.5)

    def test_boundary_tie_stays_in_lower_tier(self) -> None:
        # 89.999... never rounds up into EXCELLENT
        assert overall_health(89.999, 89.999, 89.999) == "GOOD"

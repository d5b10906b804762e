"""Unit tests for point value normalization and rank tiers."""

from __future__ import annotations

import pytest

from questhub.points.coercion import coerce_points, is_clean_points
from questhub.points.ranks import RANK_TIERS, compute_rank


class TestCoercePoints:
    """Form and API values become non-negative integers."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (150, 150),
            ("150", 150),
            ("  42 ", 42),
            ("12abc", 12),
            (7.9, 7),
            (0, 0),
        ],
    )
    def test_usable_values(self, raw, expected):
        assert coerce_points(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "", None, -50, "-3", float("nan"), float("inf"), True, [], {}])
    def test_unusable_values_become_zero(self, raw):
        assert coerce_points(raw) == 0

    def test_clean_points(self):
        assert is_clean_points(10)
        assert is_clean_points(0)
        assert not is_clean_points("10")
        assert not is_clean_points(-1)
        assert not is_clean_points(False)
        assert not is_clean_points(1.0)


class TestRanks:
    """Rank tier boundaries."""

    def test_tiers_are_ordered_high_to_low(self):
        thresholds = [t["min_exclusive"] for t in RANK_TIERS if t["min_exclusive"] is not None]
        assert thresholds == sorted(thresholds, reverse=True)
        assert RANK_TIERS[-1]["name"] == "Blue"

    @pytest.mark.parametrize(
        ("points", "name"),
        [
            (0, "Blue"),
            (10_000, "Blue"),
            (10_001, "Bronze"),
            (100_000, "Bronze"),
            (100_001, "Silver"),
            (500_001, "Gold"),
            (1_000_001, "Platinum"),
            (3_000_001, "Diamond"),
            (5_000_001, "Black"),
            (10_000_000, "Black"),
            (10_000_001, "God"),
        ],
    )
    def test_boundaries(self, points, name):
        assert compute_rank(points)["name"] == name

    def test_rank_carries_range_label(self):
        assert compute_rank(250)["range"] == "0 - 10,000"

"""Rank tiers by total points.

A rank applies when total points are strictly above ``min_exclusive``
(Blue covers 0 through 10,000).
"""

from __future__ import annotations

RANK_TIERS: list[dict] = [
    {"name": "God", "min_exclusive": 10_000_000, "range": "10,000,001+"},
    {"name": "Black", "min_exclusive": 5_000_000, "range": "5,000,001 - 10,000,000"},
    {"name": "Diamond", "min_exclusive": 3_000_000, "range": "3,000,001 - 5,000,000"},
    {"name": "Platinum", "min_exclusive": 1_000_000, "range": "1,000,001 - 3,000,000"},
    {"name": "Gold", "min_exclusive": 500_000, "range": "500,001 - 1,000,000"},
    {"name": "Silver", "min_exclusive": 100_000, "range": "100,001 - 500,000"},
    {"name": "Bronze", "min_exclusive": 10_000, "range": "10,001 - 100,000"},
    {"name": "Blue", "min_exclusive": None, "range": "0 - 10,000"},
]


def compute_rank(total_points: int) -> dict:
    """Return ``{"name", "range"}`` for a points total."""
    tier = next(
        (t for t in RANK_TIERS if t["min_exclusive"] is None or total_points > t["min_exclusive"]),
        RANK_TIERS[-1],
    )
    return {"name": tier["name"], "range": tier["range"]}

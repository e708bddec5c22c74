"""Level computation from total points.

level = floor(sqrt(points / 100)) + 1, so level N starts at (N - 1)^2 * 100 points.
"""

from __future__ import annotations

import math


def calculate_level(points: int) -> int:
    """Level reached with the given total points."""
    if points <= 0:
        return 1
    # floor(sqrt(floor(x))) == floor(sqrt(x)) for x >= 0
    return math.isqrt(points // 100) + 1


def required_points(level: int) -> int:
    """Total points needed to reach a level."""
    if level <= 1:
        return 0
    return (level - 1) ** 2 * 100


def level_info(points: int) -> dict:
    """Level plus progress toward the next one."""
    level = calculate_level(points)
    floor_points = required_points(level)
    next_points = required_points(level + 1)
    return {
        "level": level,
        "points": points,
        "points_into_level": points - floor_points,
        "points_for_level": next_points - floor_points,
        "next_level": level + 1,
        "next_level_points": next_points,
    }

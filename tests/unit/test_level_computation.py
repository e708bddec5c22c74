"""Level math tests."""

from __future__ import annotations

import pytest

from signalmap.gamification.levels import calculate_level, level_info, required_points


class TestCalculateLevel:

    @pytest.mark.parametrize(
        ("points", "level"),
        [(-5, 1), (0, 1), (99, 1), (100, 2), (399, 2), (400, 3), (899, 3), (900, 4), (10_000, 11)],
    )
    def test_levels(self, points, level):
        assert calculate_level(points) == level

    def test_required_points_is_inverse(self):
        for level in range(1, 30):
            assert calculate_level(required_points(level)) == level
            if level > 1:
                assert calculate_level(required_points(level) - 1) == level - 1


class TestLevelInfo:

    def test_progress_into_level(self):
        assert level_info(150) == {
            "level": 2,
            "points": 150,
            "points_into_level": 50,
            "points_for_level": 300,
            "next_level": 3,
            "next_level_points": 400,
        }

    def test_zero_points(self):
        info = level_info(0)
        assert info["level"] == 1
        assert info["next_level_points"] == 100

"""Measurement point award and stats delta tests."""

from __future__ import annotations

import pydantic
import pytest

from signalmap.gamification.measurement_service import (
    MeasurementIn,
    calculate_measurement_points,
    measurement_deltas,
)
from signalmap.gamification.stats_store import stats_as_dict


def _measurement(**overrides) -> MeasurementIn:
    data = {
        "signal_strength": 3,
        "technology": "4G",
        "provider": "Acme Mobile",
        "latitude": 52.52,
        "longitude": 13.405,
    }
    data.update(overrides)
    return MeasurementIn(**data)


class TestCalculatePoints:

    def test_base_only(self):
        points = calculate_measurement_points(_measurement())
        assert points.total == 10
        assert points.bonuses == {"base": 10}

    def test_every_bonus(self):
        points = calculate_measurement_points(
            _measurement(accuracy=5, altitude=120.0, speed=3.5, is_rural=True, is_first_in_area=True)
        )
        assert points.bonuses == {
            "base": 10,
            "accuracy": 3,
            "altitude": 1,
            "speed": 1,
            "rural": 10,
            "first_in_area": 5,
        }
        assert points.total == 30

    def test_accuracy_threshold_is_exclusive(self):
        assert "accuracy" not in calculate_measurement_points(_measurement(accuracy=10)).bonuses

    def test_zero_altitude_still_counts(self):
        assert calculate_measurement_points(_measurement(altitude=0)).bonuses["altitude"] == 1


class TestMeasurementValidation:

    @pytest.mark.parametrize(
        "overrides",
        [
            {"signal_strength": 5},
            {"signal_strength": -1},
            {"latitude": 91},
            {"longitude": -181},
            {"technology": ""},
            {"technology": "LTE"},
            {"accuracy": -1},
            {"quality": 101},
        ],
    )
    def test_rejects_out_of_range(self, overrides):
        with pytest.raises(pydantic.ValidationError):
            _measurement(**overrides)

    @pytest.mark.parametrize("technology", ["2G", "3G", "4G", "5G"])
    def test_accepts_each_technology(self, technology):
        assert _measurement(technology=technology).technology == technology

    def test_signal_scale_bounds(self):
        assert _measurement(signal_strength=0).signal_strength == 0
        assert _measurement(signal_strength=4).signal_strength == 4


class TestDeltas:

    def test_urban_measurement(self):
        deltas = measurement_deltas(_measurement(quality=80, distance_km=1.5), stats_as_dict(None))
        assert deltas == {
            "total_measurements": 1,
            "rural_measurements": 0,
            "unique_locations": 0,
            "contribution_score": 1,
            "quality_score": 80,
            "total_distance": 1.5,
        }

    def test_rural_first_in_area(self):
        current = stats_as_dict(None) | {"total_measurements": 4, "rural_measurements": 1, "contribution_score": 5}
        deltas = measurement_deltas(_measurement(is_rural=True, is_first_in_area=True), current)
        assert deltas["total_measurements"] == 5
        assert deltas["rural_measurements"] == 2
        assert deltas["unique_locations"] == 1
        assert deltas["contribution_score"] == 7

"""Stats validation tests: invariants and range constraints."""

from __future__ import annotations

import pytest

from signalmap.gamification.errors import ValidationError
from signalmap.gamification.stats_store import (
    STATS_COLUMNS,
    StatsMetric,
    normalize_partial,
    stats_as_dict,
    stats_snapshot,
    validate_stats,
)


def _valid(**overrides):
    values = {column: 0 for column in STATS_COLUMNS}
    values.update(overrides)
    return values


def _fields(exc: ValidationError) -> set[str]:
    return {error["field"] for error in exc.details}


class TestValidateStats:

    def test_valid_stats_pass(self):
        validate_stats(_valid(total_measurements=10, rural_measurements=10, quality_score=100))

    def test_rural_exceeding_total(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_stats(_valid(total_measurements=5, rural_measurements=10))
        assert _fields(exc_info.value) == {"rural_measurements"}

    @pytest.mark.parametrize("column", ["quality_score", "accuracy_rate"])
    def test_percent_above_100(self, column):
        with pytest.raises(ValidationError) as exc_info:
            validate_stats(_valid(**{column: 100.5}))
        assert _fields(exc_info.value) == {column}

    def test_negative_counter(self):
        with pytest.raises(ValidationError):
            validate_stats(_valid(verified_spots=-1))

    def test_every_violation_is_listed(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_stats(_valid(helpful_actions=-2, accuracy_rate=150, total_measurements=1, rural_measurements=2))
        assert _fields(exc_info.value) == {"helpful_actions", "accuracy_rate", "rural_measurements"}

    @pytest.mark.parametrize("value", ["5", None, True])
    def test_non_numeric(self, value):
        with pytest.raises(ValidationError):
            validate_stats(_valid(total_measurements=value))

    def test_fractional_counter(self):
        with pytest.raises(ValidationError):
            validate_stats(_valid(total_measurements=2.5))

    def test_fractional_distance_allowed(self):
        validate_stats(_valid(total_distance=12.75))

    def test_infinite_value(self):
        with pytest.raises(ValidationError):
            validate_stats(_valid(total_distance=float("inf")))

    def test_error_body(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_stats(_valid(total_measurements=1, rural_measurements=2))
        body = exc_info.value.to_dict()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["errors"][0]["field"] == "rural_measurements"
        assert exc_info.value.status_code == 400


class TestNormalizePartial:

    def test_maps_camel_case(self):
        assert normalize_partial({"totalMeasurements": 3, "verified_spots": 1}) == {
            "total_measurements": 3,
            "verified_spots": 1,
        }

    def test_unknown_field(self):
        with pytest.raises(ValidationError):
            normalize_partial({"nightOwlScore": 1})

    def test_points_not_updatable(self):
        with pytest.raises(ValidationError):
            normalize_partial({"points": 1000})


class TestSnapshots:

    def test_missing_stats_snapshot_is_zero(self):
        snapshot = stats_snapshot(None)
        assert set(snapshot) == set(StatsMetric)
        assert all(value == 0 for value in snapshot.values())

    def test_missing_stats_dict_is_zero(self):
        assert stats_as_dict(None) == {column: 0 for column in STATS_COLUMNS}

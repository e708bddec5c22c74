"""Requirement evaluator tests: parsing, operators, partial credit."""

from __future__ import annotations

import pytest

from signalmap.gamification.errors import RequirementConfigError, UnknownMetricError, UnknownOperatorError
from signalmap.gamification.requirements import (
    Requirement,
    RequirementOperator,
    check_requirement_met,
    evaluate,
    requirement_progress,
)
from signalmap.gamification.stats_store import StatsMetric


def _req(metric: str, operator: str, value: float) -> Requirement:
    return Requirement.parse({"metric": metric, "operator": operator, "value": value})


class TestParse:
    """Catalog JSON to Requirement."""

    def test_camel_case_metric(self):
        req = _req("totalMeasurements", "GREATER_THAN_EQUAL", 1)
        assert req.metric is StatsMetric.TOTAL_MEASUREMENTS
        assert req.operator is RequirementOperator.GREATER_THAN_EQUAL
        assert req.value == 1

    def test_snake_case_metric(self):
        assert _req("rural_measurements", "EQUAL", 3).metric is StatsMetric.RURAL_MEASUREMENTS

    def test_short_operator_aliases(self):
        assert RequirementOperator.parse("gte") is RequirementOperator.GREATER_THAN_EQUAL
        assert RequirementOperator.parse("ne") is RequirementOperator.NOT_EQUAL
        assert RequirementOperator.parse("less_than") is RequirementOperator.LESS_THAN

    def test_unknown_metric(self):
        with pytest.raises(UnknownMetricError) as exc_info:
            _req("nightMeasurements", "EQUAL", 1)
        assert exc_info.value.metric == "nightMeasurements"

    def test_unknown_operator(self):
        with pytest.raises(UnknownOperatorError):
            _req("totalMeasurements", "BETWEEN", 1)

    def test_unknown_errors_are_config_errors(self):
        with pytest.raises(RequirementConfigError):
            _req("bogus", "EQUAL", 1)

    @pytest.mark.parametrize("value", [-1, None, "10", True])
    def test_invalid_value(self, value):
        with pytest.raises(RequirementConfigError):
            _req("totalMeasurements", "EQUAL", value)

    def test_to_dict_round_trips_names(self):
        req = _req("verified_spots", "gte", 50)
        assert req.to_dict() == {
            "metric": "verifiedSpots",
            "operator": "GREATER_THAN_EQUAL",
            "value": 50,
            "description": None,
        }


class TestEvaluate:
    """Operator semantics."""

    @pytest.mark.parametrize(
        ("operator", "current", "expected"),
        [
            ("EQUAL", 5, True),
            ("EQUAL", 4, False),
            ("NOT_EQUAL", 4, True),
            ("GREATER_THAN", 5, False),
            ("GREATER_THAN", 6, True),
            ("LESS_THAN", 4, True),
            ("LESS_THAN", 5, False),
            ("GREATER_THAN_EQUAL", 5, True),
            ("GREATER_THAN_EQUAL", 4, False),
            ("LESS_THAN_EQUAL", 5, True),
            ("LESS_THAN_EQUAL", 6, False),
        ],
    )
    def test_operators(self, operator, current, expected):
        req = _req("totalMeasurements", operator, 5)
        result = evaluate(req, {StatsMetric.TOTAL_MEASUREMENTS: current})
        assert result.is_met is expected
        assert result.current_value == current

    def test_missing_metric_counts_as_zero(self):
        result = evaluate(_req("helpfulActions", "GREATER_THAN_EQUAL", 1), {})
        assert result == (False, 0)

    def test_evaluate_is_pure(self):
        stats = {StatsMetric.TOTAL_MEASUREMENTS: 3}
        evaluate(_req("totalMeasurements", "GREATER_THAN", 1), stats)
        assert stats == {StatsMetric.TOTAL_MEASUREMENTS: 3}

    def test_check_requirement_met_swallows_errors(self):
        broken = Requirement.model_construct(
            metric="nightMeasurements",
            operator=RequirementOperator.EQUAL,
            value=1,
            description=None,
        )
        assert check_requirement_met(broken, {}) is False

    def test_check_requirement_met_non_numeric_stat(self):
        req = _req("points", "GREATER_THAN_EQUAL", 100)
        assert check_requirement_met(req, {StatsMetric.POINTS: "lots"}) is False

    def test_check_requirement_met_true(self):
        req = _req("points", "GREATER_THAN_EQUAL", 100)
        assert check_requirement_met(req, {StatsMetric.POINTS: 150}) is True


class TestRequirementProgress:
    """Partial credit toward threshold requirements."""

    def test_met_is_100(self):
        req = _req("ruralMeasurements", "GREATER_THAN_EQUAL", 10)
        assert requirement_progress(req, {StatsMetric.RURAL_MEASUREMENTS: 12}) == 100

    def test_partial_credit(self):
        req = _req("ruralMeasurements", "GREATER_THAN_EQUAL", 10)
        assert requirement_progress(req, {StatsMetric.RURAL_MEASUREMENTS: 5}) == 50

    def test_unmet_never_reports_100(self):
        req = _req("totalDistance", "GREATER_THAN_EQUAL", 10)
        assert requirement_progress(req, {StatsMetric.TOTAL_DISTANCE: 9.96}) == 99

    def test_equality_is_all_or_nothing(self):
        req = _req("verifiedSpots", "EQUAL", 10)
        assert requirement_progress(req, {StatsMetric.VERIFIED_SPOTS: 9}) == 0

    def test_zero_target_greater_than(self):
        req = _req("helpfulActions", "GREATER_THAN", 0)
        assert requirement_progress(req, {StatsMetric.HELPFUL_ACTIONS: 0}) == 0
        assert requirement_progress(req, {StatsMetric.HELPFUL_ACTIONS: 1}) == 100

"""Requirement evaluator: one (metric, operator, value) comparison against a stats snapshot."""

from __future__ import annotations

import logging
import operator as op
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field

from signalmap.gamification.errors import RequirementConfigError, UnknownOperatorError
from signalmap.gamification.stats_store import StatsMetric

logger = logging.getLogger(__name__)


class RequirementOperator(str, Enum):
    EQUAL = "EQUAL"
    NOT_EQUAL = "NOT_EQUAL"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"
    GREATER_THAN_EQUAL = "GREATER_THAN_EQUAL"
    LESS_THAN_EQUAL = "LESS_THAN_EQUAL"

    @classmethod
    def parse(cls, name: str) -> RequirementOperator:
        """Resolve a full operator name or one of the short aliases (eq, gte, ...)."""
        if isinstance(name, cls):
            return name
        key = str(name).strip()
        try:
            return cls(key.upper())
        except ValueError:
            pass
        alias = OPERATOR_ALIASES.get(key.lower())
        if alias is None:
            raise UnknownOperatorError(str(name))
        return alias


OPERATOR_ALIASES: dict[str, RequirementOperator] = {
    "eq": RequirementOperator.EQUAL,
    "ne": RequirementOperator.NOT_EQUAL,
    "gt": RequirementOperator.GREATER_THAN,
    "lt": RequirementOperator.LESS_THAN,
    "gte": RequirementOperator.GREATER_THAN_EQUAL,
    "lte": RequirementOperator.LESS_THAN_EQUAL,
}

_COMPARATORS: dict[RequirementOperator, Callable[[float, float], bool]] = {
    RequirementOperator.EQUAL: op.eq,
    RequirementOperator.NOT_EQUAL: op.ne,
    RequirementOperator.GREATER_THAN: op.gt,
    RequirementOperator.LESS_THAN: op.lt,
    RequirementOperator.GREATER_THAN_EQUAL: op.ge,
    RequirementOperator.LESS_THAN_EQUAL: op.le,
}


class Requirement(BaseModel):
    """A single comparison an achievement needs to hold."""

    model_config = ConfigDict(frozen=True)

    metric: StatsMetric
    operator: RequirementOperator
    value: float = Field(ge=0)
    description: str | None = None

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> Requirement:
        """Build a requirement from catalog JSON.

        Raises:
            UnknownMetricError: metric is not a stats field.
            UnknownOperatorError: operator is not recognised.
            RequirementConfigError: value missing or negative.
        """
        metric = StatsMetric.parse(raw.get("metric", ""))
        operator = RequirementOperator.parse(raw.get("operator", ""))
        value = raw.get("value")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise RequirementConfigError(f"Invalid requirement value: {value!r}")
        return cls(metric=metric, operator=operator, value=value, description=raw.get("description"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric.value,
            "operator": self.operator.value,
            "value": self.value,
            "description": self.description,
        }


class RequirementResult(NamedTuple):
    is_met: bool
    current_value: float


def evaluate(requirement: Requirement, stats: Mapping[StatsMetric, float]) -> RequirementResult:
    """Evaluate a requirement against a stats snapshot. Pure, no side effects."""
    metric = StatsMetric.parse(requirement.metric)
    operator = RequirementOperator.parse(requirement.operator)
    current = stats.get(metric, 0) or 0
    comparator = _COMPARATORS.get(operator)
    if comparator is None:
        raise UnknownOperatorError(str(requirement.operator))
    return RequirementResult(comparator(current, requirement.value), current)


def check_requirement_met(requirement: Requirement, stats: Mapping[StatsMetric, float]) -> bool:
    """Boolean convenience wrapper: any evaluation failure counts as not met."""
    try:
        return evaluate(requirement, stats).is_met
    except (RequirementConfigError, TypeError, ValueError):
        logger.warning("Requirement evaluation failed for %s", requirement, exc_info=True)
        return False


def requirement_progress(requirement: Requirement, stats: Mapping[StatsMetric, float]) -> int:
    """Percentage (0-100) of a requirement satisfied.

    Threshold comparisons (>, >=) earn partial credit toward the target;
    every other operator is all-or-nothing.
    """
    result = evaluate(requirement, stats)
    if result.is_met:
        return 100
    if requirement.operator in (RequirementOperator.GREATER_THAN, RequirementOperator.GREATER_THAN_EQUAL):
        if requirement.value > 0:
            return min(99, max(0, round(result.current_value / requirement.value * 100)))
    return 0

"""Stats store: per-user contribution counters with invariant checks.

All validation happens on the merged result before the ORM object is
touched, so a rejected update never leaves a partially applied row.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from enum import Enum
from numbers import Real
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from signalmap.db.dialect import upsert_insert
from signalmap.db.models import UserStats
from signalmap.gamification.day_utils import utc_now
from signalmap.gamification.errors import NotFoundError, UnknownMetricError, ValidationError

logger = logging.getLogger(__name__)


class StatsMetric(str, Enum):
    """Closed set of stats fields an achievement requirement may reference."""

    TOTAL_MEASUREMENTS = "totalMeasurements"
    RURAL_MEASUREMENTS = "ruralMeasurements"
    UNIQUE_LOCATIONS = "uniqueLocations"
    TOTAL_DISTANCE = "totalDistance"
    CONTRIBUTION_SCORE = "contributionScore"
    QUALITY_SCORE = "qualityScore"
    ACCURACY_RATE = "accuracyRate"
    VERIFIED_SPOTS = "verifiedSpots"
    HELPFUL_ACTIONS = "helpfulActions"
    CONSECUTIVE_DAYS = "consecutiveDays"
    POINTS = "points"

    @property
    def column(self) -> str:
        return METRIC_COLUMNS[self]

    @classmethod
    def parse(cls, name: str) -> StatsMetric:
        """Resolve a camelCase metric or snake_case column name."""
        if isinstance(name, cls):
            return name
        try:
            return cls(name)
        except ValueError:
            pass
        for metric, column in METRIC_COLUMNS.items():
            if column == name:
                return metric
        raise UnknownMetricError(str(name))


METRIC_COLUMNS: dict[StatsMetric, str] = {
    StatsMetric.TOTAL_MEASUREMENTS: "total_measurements",
    StatsMetric.RURAL_MEASUREMENTS: "rural_measurements",
    StatsMetric.UNIQUE_LOCATIONS: "unique_locations",
    StatsMetric.TOTAL_DISTANCE: "total_distance",
    StatsMetric.CONTRIBUTION_SCORE: "contribution_score",
    StatsMetric.QUALITY_SCORE: "quality_score",
    StatsMetric.ACCURACY_RATE: "accuracy_rate",
    StatsMetric.VERIFIED_SPOTS: "verified_spots",
    StatsMetric.HELPFUL_ACTIONS: "helpful_actions",
    StatsMetric.CONSECUTIVE_DAYS: "consecutive_days",
    StatsMetric.POINTS: "points",
}

STATS_COLUMNS: tuple[str, ...] = tuple(METRIC_COLUMNS.values())

# Points only move through the points ledger.
UPDATABLE_COLUMNS: frozenset[str] = frozenset(STATS_COLUMNS) - {"points"}

PERCENT_COLUMNS: frozenset[str] = frozenset({"quality_score", "accuracy_rate"})

FLOAT_COLUMNS: frozenset[str] = frozenset({"total_distance", "quality_score", "accuracy_rate"})

# Counters reset by reset_stats (points survive a reset).
RESETTABLE_COLUMNS: tuple[str, ...] = tuple(c for c in STATS_COLUMNS if c != "points")


def validate_stats(values: dict[str, Any]) -> None:
    """Validate a full stats mapping (column name -> value).

    Raises:
        ValidationError: listing every violated constraint.
    """
    errors: list[dict[str, Any]] = []
    for column, value in values.items():
        if isinstance(value, bool) or not isinstance(value, Real):
            errors.append({"field": column, "message": "must be a number", "value": value})
            continue
        if not math.isfinite(value):
            errors.append({"field": column, "message": "must be finite", "value": str(value)})
            continue
        if value < 0:
            errors.append({"field": column, "message": "must be >= 0", "value": value})
        elif column not in FLOAT_COLUMNS and value != int(value):
            errors.append({"field": column, "message": "must be a whole number", "value": value})
        elif column in PERCENT_COLUMNS and value > 100:
            errors.append({"field": column, "message": "must be <= 100", "value": value})

    total = values.get("total_measurements")
    rural = values.get("rural_measurements")
    if isinstance(total, Real) and isinstance(rural, Real) and rural > total:
        errors.append({
            "field": "rural_measurements",
            "message": "must not exceed total_measurements",
            "value": rural,
        })

    if errors:
        raise ValidationError("Invalid stats update", errors)


def normalize_partial(partial: dict[str, Any]) -> dict[str, Any]:
    """Map camelCase or snake_case keys to column names, rejecting unknown ones."""
    changes: dict[str, Any] = {}
    for key, value in partial.items():
        try:
            column = StatsMetric.parse(key).column
        except UnknownMetricError:
            raise ValidationError(f"Unknown stats field: {key}", [{"field": key, "message": "unknown field"}]) from None
        if column not in UPDATABLE_COLUMNS:
            raise ValidationError(
                f"Stats field cannot be updated directly: {key}",
                [{"field": key, "message": "points are credited through the points ledger"}],
            )
        changes[column] = value
    return changes


def stats_snapshot(stats: UserStats | None) -> dict[StatsMetric, float]:
    """Metric -> value snapshot used by the requirement evaluator."""
    if stats is None:
        return {metric: 0 for metric in StatsMetric}
    return {metric: getattr(stats, metric.column) or 0 for metric in StatsMetric}


def stats_as_dict(stats: UserStats | None) -> dict[str, Any]:
    """Column -> value mapping with zero defaults for users without stats."""
    if stats is None:
        return {column: 0 for column in STATS_COLUMNS}
    return {column: getattr(stats, column) for column in STATS_COLUMNS}


async def get_stats(db: AsyncSession, user_id: str) -> UserStats | None:
    """Fetch a user's stats. None means the user never contributed."""
    result = await db.execute(select(UserStats).where(UserStats.user_id == user_id))
    return result.scalar_one_or_none()


async def get_or_create_stats(
    db: AsyncSession,
    user_id: str,
    now: datetime | None = None,
) -> UserStats:
    """Get the user's stats row, creating it lazily, locked for the rest of the transaction."""
    if now is None:
        now = utc_now()

    stmt = upsert_insert(db, UserStats).values(
        user_id=user_id,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_nothing(index_elements=["user_id"])
    await db.execute(stmt)

    result = await db.execute(
        select(UserStats)
        .where(UserStats.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def apply_stats_update(
    db: AsyncSession,
    user_id: str,
    partial: dict[str, Any],
    now: datetime | None = None,
) -> UserStats:
    """Merge, validate, and apply a partial update inside the caller's transaction.

    Flushes but does not commit.
    """
    changes = normalize_partial(partial)
    if now is None:
        now = utc_now()

    stats = await get_or_create_stats(db, user_id, now)
    merged = stats_as_dict(stats)
    merged.update(changes)
    validate_stats(merged)

    for column, value in changes.items():
        setattr(stats, column, float(value) if column in FLOAT_COLUMNS else int(value))
    stats.updated_at = now
    await db.flush()
    return stats


async def update_stats(
    db: AsyncSession,
    user_id: str,
    partial: dict[str, Any],
    now: datetime | None = None,
) -> UserStats:
    """Apply a validated partial stats update and commit it.

    On any failure the transaction is rolled back and stored stats are unchanged.
    """
    try:
        stats = await apply_stats_update(db, user_id, partial, now)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Updated stats for user %s: %s", user_id, sorted(partial))
    return stats


async def reset_stats(db: AsyncSession, user_id: str, now: datetime | None = None) -> UserStats:
    """Soft reset: zero all counters, keep points. The stats row must exist."""
    if now is None:
        now = utc_now()

    stats = await get_stats(db, user_id)
    if stats is None:
        raise NotFoundError(f"No stats recorded for user: {user_id}")

    for column in RESETTABLE_COLUMNS:
        setattr(stats, column, 0)
    stats.updated_at = now
    await db.commit()
    logger.info("Reset stats for user %s", user_id)
    return stats

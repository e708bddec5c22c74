"""Measurement processing: stats deltas, point award, and achievement evaluation.

One measurement is one transaction. The stats row is locked first, so two
concurrent submissions for the same user are applied one after the other.
A batch is processed in submission order, each item in its own transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from signalmap.gamification import points_ledger
from signalmap.gamification.achievement_engine import AchievementEngine, UnlockedAchievement
from signalmap.gamification.day_utils import utc_now
from signalmap.gamification.levels import calculate_level
from signalmap.gamification.stats_store import (
    StatsMetric,
    apply_stats_update,
    get_or_create_stats,
    stats_as_dict,
    stats_snapshot,
)

logger = logging.getLogger(__name__)

BASE_POINTS = 10
ACCURACY_BONUS = 3
ACCURACY_THRESHOLD_METERS = 10
ALTITUDE_BONUS = 1
SPEED_BONUS = 1
RURAL_BONUS = 10
FIRST_IN_AREA_BONUS = 5
MAX_BATCH_SIZE = 100

Technology = Literal["2G", "3G", "4G", "5G"]


class MeasurementIn(BaseModel):
    """A validated signal measurement as submitted by a contributor.

    signal_strength is the handset's signal bar reading, 0 (no signal) to 4.
    """

    signal_strength: float = Field(ge=0, le=4)
    technology: Technology
    provider: str = Field(min_length=1, max_length=64)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    timestamp: datetime | None = None
    accuracy: float | None = Field(default=None, ge=0)
    altitude: float | None = None
    speed: float | None = Field(default=None, ge=0)
    is_rural: bool = False
    is_first_in_area: bool = False
    quality: float = Field(default=0, ge=0, le=100)
    distance_km: float = Field(default=0, ge=0)


@dataclass
class MeasurementPoints:
    total: int
    bonuses: dict[str, int] = field(default_factory=dict)


@dataclass
class MeasurementResult:
    stats: dict
    points: MeasurementPoints
    total_points: int
    level: int
    achievements: list[UnlockedAchievement] = field(default_factory=list)


def calculate_measurement_points(measurement: MeasurementIn) -> MeasurementPoints:
    """Base points plus bonuses for precision, extra readings, and coverage gaps."""
    bonuses: dict[str, int] = {"base": BASE_POINTS}
    if measurement.accuracy is not None and measurement.accuracy < ACCURACY_THRESHOLD_METERS:
        bonuses["accuracy"] = ACCURACY_BONUS
    if measurement.altitude is not None:
        bonuses["altitude"] = ALTITUDE_BONUS
    if measurement.speed is not None:
        bonuses["speed"] = SPEED_BONUS
    if measurement.is_rural:
        bonuses["rural"] = RURAL_BONUS
    if measurement.is_first_in_area:
        bonuses["first_in_area"] = FIRST_IN_AREA_BONUS
    return MeasurementPoints(total=sum(bonuses.values()), bonuses=bonuses)


def measurement_deltas(measurement: MeasurementIn, current: dict) -> dict:
    """New stats column values after applying one measurement to current."""
    return {
        "total_measurements": current["total_measurements"] + 1,
        "rural_measurements": current["rural_measurements"] + (1 if measurement.is_rural else 0),
        "unique_locations": current["unique_locations"] + (1 if measurement.is_first_in_area else 0),
        "contribution_score": current["contribution_score"] + (2 if measurement.is_rural else 1),
        "quality_score": measurement.quality,
        "total_distance": current["total_distance"] + measurement.distance_km,
    }


async def process_measurement(
    db: AsyncSession,
    redis: object | None,
    user_id: str,
    measurement: MeasurementIn,
    now: datetime | None = None,
) -> MeasurementResult:
    """Apply a measurement to the user's stats, credit its points, and unlock achievements.

    Commits on success. Any failure rolls the whole measurement back.
    """
    if now is None:
        now = utc_now()

    points = calculate_measurement_points(measurement)
    engine = AchievementEngine(db, redis)
    try:
        stats = await get_or_create_stats(db, user_id, now)
        changes = measurement_deltas(measurement, stats_as_dict(stats))
        stats = await apply_stats_update(db, user_id, changes, now)

        total = await points_ledger.credit(
            db, user_id, points.total,
            source="measurement",
            description=f"{measurement.technology} measurement ({measurement.provider})",
            redis=redis,
            now=now,
        )
        snapshot = stats_snapshot(stats)
        snapshot[StatsMetric.POINTS] = total
        achievements = await engine.evaluate(user_id, snapshot, now)
        if achievements:
            total = await points_ledger.get_points(db, user_id)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    stats_dict = stats_as_dict(stats)
    stats_dict["points"] = total
    logger.info(
        "Processed measurement for user %s: +%d points, %d achievements",
        user_id, points.total, len(achievements),
    )
    return MeasurementResult(
        stats=stats_dict,
        points=points,
        total_points=total,
        level=calculate_level(total),
        achievements=achievements,
    )


async def process_measurements(
    db: AsyncSession,
    redis: object | None,
    user_id: str,
    measurements: list[MeasurementIn],
    now: datetime | None = None,
) -> list[MeasurementResult]:
    """Process a batch in submission order, committing after each measurement.

    A failing measurement raises; the ones before it stay committed.
    """
    results = []
    for measurement in measurements:
        results.append(await process_measurement(db, redis, user_id, measurement, now))
    return results

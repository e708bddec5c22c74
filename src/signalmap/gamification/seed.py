"""Achievement catalog seed data, upserted by slug on startup."""

from __future__ import annotations

import logging
from typing import NamedTuple

from sqlalchemy.ext.asyncio import AsyncSession

from signalmap.db.dialect import upsert_insert
from signalmap.db.models import Achievement

logger = logging.getLogger(__name__)


class StreakMilestone(NamedTuple):
    threshold: int
    title: str
    description: str
    points: int
    icon: str


STREAK_ACHIEVEMENTS: list[StreakMilestone] = [
    StreakMilestone(1, "First Check-in", "Complete your first daily check-in", 10, "\U0001F331"),
    StreakMilestone(7, "Week Warrior", "Maintain a 7-day streak", 50, "\U0001F525"),
    StreakMilestone(14, "Fortnight Force", "Maintain a 14-day streak", 100, "⚡"),
    StreakMilestone(30, "Monthly Master", "Maintain a 30-day streak", 250, "\U0001F31F"),
    StreakMilestone(90, "Quarterly Queen", "Maintain a 90-day streak", 1000, "\U0001F451"),
    StreakMilestone(365, "Yearly Legend", "Maintain a 365-day streak", 5000, "\U0001F3C6"),
]

STREAK_MILESTONE_TITLES: frozenset[str] = frozenset(m.title for m in STREAK_ACHIEVEMENTS)


def _rarity_for(threshold: int) -> str:
    if threshold >= 90:
        return "legendary"
    if threshold >= 30:
        return "epic"
    if threshold >= 7:
        return "rare"
    return "common"


def _tier_for(threshold: int) -> str:
    if threshold >= 90:
        return "PLATINUM"
    if threshold >= 30:
        return "GOLD"
    if threshold >= 7:
        return "SILVER"
    return "BRONZE"


ACHIEVEMENT_SEED_DATA: list[dict] = [
    # Contribution
    {
        "slug": "first_steps",
        "title": "First Steps",
        "description": "Make your first measurement",
        "icon": "\U0001F3AF",
        "points": 100,
        "rarity": "common",
        "tier": "BRONZE",
        "category": "CONTRIBUTION",
        "requirements": [
            {"metric": "totalMeasurements", "operator": "GREATER_THAN_EQUAL", "value": 1},
        ],
        "sort_order": 1,
    },
    {
        "slug": "rural_pioneer",
        "title": "Rural Pioneer",
        "description": "Complete your first rural area measurement",
        "icon": "\U0001F332",
        "points": 100,
        "rarity": "common",
        "tier": "BRONZE",
        "category": "CONTRIBUTION",
        "requirements": [
            {"metric": "ruralMeasurements", "operator": "GREATER_THAN_EQUAL", "value": 1},
        ],
        "sort_order": 2,
    },
    {
        "slug": "rural_explorer",
        "title": "Rural Explorer",
        "description": "Take measurements in rural areas",
        "icon": "\U0001F33E",
        "points": 250,
        "rarity": "rare",
        "tier": "SILVER",
        "category": "CONTRIBUTION",
        "requirements": [
            {"metric": "ruralMeasurements", "operator": "GREATER_THAN_EQUAL", "value": 10},
        ],
        "sort_order": 3,
    },
    {
        "slug": "coverage_master",
        "title": "Coverage Master",
        "description": "Map 1000 unique locations",
        "icon": "\U0001F4CD",
        "points": 500,
        "rarity": "rare",
        "tier": "GOLD",
        "category": "CONTRIBUTION",
        "requirements": [
            {"metric": "uniqueLocations", "operator": "GREATER_THAN_EQUAL", "value": 1000},
        ],
        "sort_order": 4,
    },
    # Verification
    {
        "slug": "verification_master",
        "title": "Verification Master",
        "description": "Verify other users' measurements",
        "icon": "\U0001F6E1️",
        "points": 500,
        "rarity": "epic",
        "tier": "GOLD",
        "category": "VERIFICATION",
        "requirements": [
            {"metric": "verifiedSpots", "operator": "GREATER_THAN_EQUAL", "value": 50},
        ],
        "sort_order": 10,
    },
    {
        "slug": "helpful_hero",
        "title": "Helpful Hero",
        "description": "Help 25 users find better coverage",
        "icon": "\U0001F91D",
        "points": 300,
        "rarity": "rare",
        "tier": "SILVER",
        "category": "VERIFICATION",
        "requirements": [
            {"metric": "helpfulActions", "operator": "GREATER_THAN_EQUAL", "value": 25},
        ],
        "sort_order": 11,
    },
    # Quality
    {
        "slug": "accuracy_champion",
        "title": "Accuracy Champion",
        "description": "Maintain high measurement accuracy",
        "icon": "\U0001F3AF",
        "points": 1000,
        "rarity": "legendary",
        "tier": "PLATINUM",
        "category": "QUALITY",
        "requirements": [
            {"metric": "accuracyRate", "operator": "GREATER_THAN_EQUAL", "value": 95},
            {"metric": "totalMeasurements", "operator": "GREATER_THAN_EQUAL", "value": 100},
        ],
        "sort_order": 20,
    },
    # Streaks
    {
        "slug": "consistent_contributor",
        "title": "Consistent Contributor",
        "description": "Contribute measurements for consecutive days",
        "icon": "\U0001F525",
        "points": 750,
        "rarity": "epic",
        "tier": "GOLD",
        "category": "STREAK",
        "requirements": [
            {"metric": "consecutiveDays", "operator": "GREATER_THAN_EQUAL", "value": 7},
        ],
        "sort_order": 30,
    },
] + [
    {
        "slug": f"streak_{m.threshold}",
        "title": m.title,
        "description": m.description,
        "icon": m.icon,
        "points": m.points,
        "rarity": _rarity_for(m.threshold),
        "tier": _tier_for(m.threshold),
        "category": "STREAK",
        "requirements": [
            {"metric": "consecutiveDays", "operator": "GREATER_THAN_EQUAL", "value": m.threshold},
        ],
        "sort_order": 40 + i,
    }
    for i, m in enumerate(STREAK_ACHIEVEMENTS)
]


async def seed_achievements(db: AsyncSession) -> int:
    """Upsert the achievement catalog. Returns number of achievements seeded."""
    seeded = 0
    for data in ACHIEVEMENT_SEED_DATA:
        stmt = upsert_insert(db, Achievement).values(**data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={
                "title": stmt.excluded.title,
                "description": stmt.excluded.description,
                "icon": stmt.excluded.icon,
                "points": stmt.excluded.points,
                "rarity": stmt.excluded.rarity,
                "tier": stmt.excluded.tier,
                "category": stmt.excluded.category,
                "requirements": stmt.excluded.requirements,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d achievement definitions", seeded)
    return seeded

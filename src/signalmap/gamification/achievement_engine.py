"""Achievement engine: progress tracking and exactly-once unlocks.

Unlocks are a compare-and-swap on ``user_achievements.completed`` so two
concurrent evaluations for the same user can never both credit points.
Everything runs inside the caller's transaction; callers commit.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import false, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from signalmap.db.dialect import upsert_insert
from signalmap.db.models import Achievement, UserAchievement
from signalmap.gamification import points_ledger
from signalmap.gamification.day_utils import as_utc, utc_now
from signalmap.gamification.errors import NotFoundError, RequirementConfigError
from signalmap.gamification.events import EventType, emit_event
from signalmap.gamification.requirements import Requirement, evaluate, requirement_progress
from signalmap.gamification.seed import STREAK_ACHIEVEMENTS, STREAK_MILESTONE_TITLES
from signalmap.gamification.stats_store import StatsMetric, get_stats, stats_snapshot

logger = logging.getLogger(__name__)


@dataclass
class AchievementProgress:
    id: int
    slug: str
    title: str
    description: str
    icon: str | None
    points: int
    rarity: str
    tier: str
    category: str
    is_secret: bool
    progress: int
    completed: bool
    unlocked_at: datetime | None
    requirements: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class UnlockedAchievement:
    id: int
    slug: str
    title: str
    description: str
    icon: str | None
    points: int
    tier: str
    category: str
    unlocked_at: datetime


def parse_requirements(achievement: Achievement) -> list[Requirement]:
    """Parse an achievement's catalog requirements.

    Raises:
        RequirementConfigError: any requirement is malformed.
    """
    raw = achievement.requirements
    if isinstance(raw, Mapping):
        raw = [raw]
    if not isinstance(raw, list):
        raise RequirementConfigError(f"Requirements of {achievement.slug} must be a list")
    return [Requirement.parse(r) for r in raw]


def achievement_progress(requirements: list[Requirement], stats: Mapping[StatsMetric, float]) -> int:
    """Mean partial credit across requirements (0-100)."""
    if not requirements:
        return 0
    total = sum(requirement_progress(r, stats) for r in requirements)
    return round(total / len(requirements))


class AchievementEngine:
    """Evaluates the achievement catalog against a user's stats."""

    def __init__(self, db: AsyncSession, redis: object | None = None) -> None:
        self.db = db
        self.redis = redis

    async def _load_catalog(self) -> list[Achievement]:
        result = await self.db.execute(
            select(Achievement)
            .where(Achievement.is_active.is_(True))
            .order_by(Achievement.sort_order, Achievement.id)
        )
        return list(result.scalars().all())

    async def _load_user_rows(self, user_id: str) -> dict[int, UserAchievement]:
        result = await self.db.execute(
            select(UserAchievement)
            .where(UserAchievement.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return {row.achievement_id: row for row in result.scalars()}

    async def get_achievements(self, user_id: str) -> list[AchievementProgress]:
        """Every active achievement with the user's progress. Read-only.

        Secret achievements stay hidden until the user has completed them.
        """
        catalog = await self._load_catalog()
        rows = await self._load_user_rows(user_id)
        stats = stats_snapshot(await get_stats(self.db, user_id))

        achievements: list[AchievementProgress] = []
        for achievement in catalog:
            row = rows.get(achievement.id)
            completed = bool(row and row.completed)
            if achievement.is_secret and not completed:
                continue

            if completed:
                progress = 100
            else:
                try:
                    progress = achievement_progress(parse_requirements(achievement), stats)
                except RequirementConfigError:
                    logger.warning("Skipping progress for misconfigured achievement %s", achievement.slug)
                    progress = row.progress if row else 0

            achievements.append(AchievementProgress(
                id=achievement.id,
                slug=achievement.slug,
                title=achievement.title,
                description=achievement.description,
                icon=achievement.icon,
                points=achievement.points,
                rarity=achievement.rarity,
                tier=achievement.tier,
                category=achievement.category,
                is_secret=achievement.is_secret,
                progress=progress,
                completed=completed,
                unlocked_at=as_utc(row.unlocked_at) if row and row.unlocked_at else None,
                requirements=list(achievement.requirements or []),
            ))
        return achievements

    async def evaluate(
        self,
        user_id: str,
        stats: Mapping[StatsMetric, float],
        now: datetime | None = None,
    ) -> list[UnlockedAchievement]:
        """Update progress for every pending achievement and unlock those now met.

        Streak milestones are skipped here; the streak engine grants them.
        A misconfigured achievement is logged and skipped without affecting
        the others.
        """
        if now is None:
            now = utc_now()

        catalog = await self._load_catalog()
        rows = await self._load_user_rows(user_id)
        unlocked: list[UnlockedAchievement] = []

        for achievement in catalog:
            if achievement.category == "STREAK" and achievement.title in STREAK_MILESTONE_TITLES:
                continue
            row = rows.get(achievement.id)
            if row is not None and row.completed:
                continue

            try:
                requirements = parse_requirements(achievement)
                results = [evaluate(r, stats) for r in requirements]
            except RequirementConfigError as exc:
                logger.warning(
                    "Achievement %s has invalid requirements: %s", achievement.slug, exc.message,
                )
                continue
            if not requirements:
                continue

            all_met = all(r.is_met for r in results)
            progress = 100 if all_met else min(99, achievement_progress(requirements, stats))
            await self._save_progress(user_id, achievement.id, progress, now)

            if all_met:
                result = await self._complete(achievement, user_id, now, EventType.ACHIEVEMENT)
                if result is not None:
                    unlocked.append(result)

        if unlocked:
            logger.info("User %s unlocked %s", user_id, [a.slug for a in unlocked])
        return unlocked

    async def grant_streak_achievements(
        self,
        user_id: str,
        streak_length: int,
        now: datetime | None = None,
    ) -> list[UnlockedAchievement]:
        """Grant every streak milestone reached by streak_length not yet granted."""
        if now is None:
            now = utc_now()

        eligible = [m for m in STREAK_ACHIEVEMENTS if m.threshold <= streak_length]
        if not eligible:
            return []

        result = await self.db.execute(
            select(Achievement).where(
                Achievement.category == "STREAK",
                Achievement.title.in_([m.title for m in eligible]),
            )
        )
        by_title = {a.title: a for a in result.scalars()}

        granted: list[UnlockedAchievement] = []
        for milestone in eligible:
            achievement = by_title.get(milestone.title)
            if achievement is None:
                logger.warning("Streak achievement missing from catalog: %s", milestone.title)
                continue
            await self._save_progress(user_id, achievement.id, 0, now)
            unlocked = await self._complete(achievement, user_id, now, EventType.STREAK_MILESTONE)
            if unlocked is not None:
                granted.append(unlocked)
        return granted

    async def unlock(
        self,
        user_id: str,
        achievement_id: int,
        now: datetime | None = None,
    ) -> UnlockedAchievement | None:
        """Explicitly unlock an achievement the user has progress on.

        Returns None when it was already completed.

        Raises:
            NotFoundError: no progress row exists for (user, achievement).
        """
        if now is None:
            now = utc_now()

        result = await self.db.execute(
            select(UserAchievement).where(
                UserAchievement.user_id == user_id,
                UserAchievement.achievement_id == achievement_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"No progress for achievement {achievement_id} and user {user_id}")
        return await self._complete(row.achievement, user_id, now, EventType.ACHIEVEMENT)

    async def _save_progress(self, user_id: str, achievement_id: int, progress: int, now: datetime) -> None:
        """Create the progress row or update it while it is still incomplete."""
        stmt = upsert_insert(self.db, UserAchievement).values(
            user_id=user_id,
            achievement_id=achievement_id,
            progress=progress,
            completed=False,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "achievement_id"],
            set_={"progress": stmt.excluded.progress, "updated_at": stmt.excluded.updated_at},
            where=UserAchievement.completed == false(),
        )
        await self.db.execute(stmt)

    async def _complete(
        self,
        achievement: Achievement,
        user_id: str,
        now: datetime,
        event_type: EventType,
    ) -> UnlockedAchievement | None:
        """Mark completed if not already, then credit points and emit the event once."""
        result = await self.db.execute(
            update(UserAchievement)
            .where(
                UserAchievement.user_id == user_id,
                UserAchievement.achievement_id == achievement.id,
                UserAchievement.completed == false(),
            )
            .values(completed=True, progress=100, unlocked_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        await points_ledger.credit(
            self.db, user_id, achievement.points,
            source="achievement",
            source_id=achievement.slug,
            description=f'Unlocked "{achievement.title}"',
            redis=self.redis,
            now=now,
        )
        await emit_event(
            self.db, self.redis, user_id, event_type,
            title=achievement.title,
            description=achievement.description,
            metadata={
                "achievement_id": achievement.id,
                "slug": achievement.slug,
                "points": achievement.points,
                "tier": achievement.tier,
                "icon": achievement.icon,
            },
            now=now,
        )
        return UnlockedAchievement(
            id=achievement.id,
            slug=achievement.slug,
            title=achievement.title,
            description=achievement.description,
            icon=achievement.icon,
            points=achievement.points,
            tier=achievement.tier,
            category=achievement.category,
            unlocked_at=now,
        )

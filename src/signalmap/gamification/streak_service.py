"""Daily check-in streaks: day transitions, multipliers, and milestone grants.

Day boundaries are UTC midnights.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from signalmap.db.dialect import upsert_insert
from signalmap.db.models import UserStats, UserStreak
from signalmap.gamification import points_ledger
from signalmap.gamification.achievement_engine import AchievementEngine, UnlockedAchievement
from signalmap.gamification.day_utils import as_utc, is_within, start_of_day, start_of_yesterday, utc_now
from signalmap.gamification.seed import STREAK_ACHIEVEMENTS
from signalmap.gamification.stats_store import get_or_create_stats

logger = logging.getLogger(__name__)

__all__ = [
    "DAILY_BONUS",
    "STREAK_ACHIEVEMENTS",
    "STREAK_MULTIPLIERS",
    "StreakData",
    "StreakEngine",
    "StreakStatus",
    "StreakUpdateResult",
    "get_multiplier",
]

DAILY_BONUS = 10

# (minimum streak length, multiplier), highest first
STREAK_MULTIPLIERS: list[tuple[int, float]] = [
    (365, 5),
    (90, 4),
    (30, 3),
    (14, 2),
    (7, 1.5),
]


def get_multiplier(length: int) -> float:
    """Point multiplier for a streak of the given length."""
    for threshold, multiplier in STREAK_MULTIPLIERS:
        if length >= threshold:
            return multiplier
    return 1


@dataclass
class StreakData:
    current: int
    longest: int
    last_checkin: datetime | None

    @classmethod
    def from_row(cls, row: UserStreak) -> StreakData:
        return cls(
            current=row.current,
            longest=row.longest,
            last_checkin=as_utc(row.last_checkin) if row.last_checkin else None,
        )


@dataclass
class StreakUpdateResult:
    streak: StreakData
    points_earned: int
    multiplier: float
    achievements: list[UnlockedAchievement] = field(default_factory=list)


@dataclass
class StreakStatus:
    current: int
    longest: int
    last_checkin: datetime | None
    can_check_in_today: bool
    multiplier: float


class StreakEngine:
    """Check-in streak tracking for one request's session."""

    def __init__(
        self,
        db: AsyncSession,
        redis: object | None = None,
        achievements: AchievementEngine | None = None,
    ) -> None:
        self.db = db
        self.redis = redis
        self.achievements = achievements or AchievementEngine(db, redis)

    async def _lock_streak(self, user_id: str, now: datetime) -> UserStreak:
        """Get or create the user's streak row, locked for this transaction."""
        stmt = upsert_insert(self.db, UserStreak).values(
            user_id=user_id,
            current=0,
            longest=0,
            last_checkin=now,
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["user_id"])
        await self.db.execute(stmt)

        result = await self.db.execute(
            select(UserStreak)
            .where(UserStreak.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def update_streak(self, user_id: str, now: datetime | None = None) -> StreakUpdateResult:
        """Record today's check-in and credit the daily bonus.

        A second call on the same UTC day is a no-op earning 0 points. A new
        streak row starts with last_checkin=now, so the very first call lands
        in that same-day branch too.
        """
        if now is None:
            now = utc_now()

        try:
            result = await self._apply_checkin(user_id, now)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if result.points_earned:
            logger.info(
                "Streak check-in for user %s: day %d, +%d points (x%s)",
                user_id, result.streak.current, result.points_earned, result.multiplier,
            )
        return result

    async def _apply_checkin(self, user_id: str, now: datetime) -> StreakUpdateResult:
        streak = await self._lock_streak(user_id, now)
        last_checkin = as_utc(streak.last_checkin)
        today = start_of_day(now)

        if is_within(last_checkin, today, now):
            return StreakUpdateResult(
                streak=StreakData.from_row(streak),
                points_earned=0,
                multiplier=get_multiplier(streak.current),
            )

        if is_within(last_checkin, start_of_yesterday(now), today, inclusive_end=False):
            new_current = streak.current + 1
        else:
            new_current = 1

        multiplier = get_multiplier(new_current)
        points_earned = round(DAILY_BONUS * multiplier)

        streak.current = new_current
        streak.longest = max(streak.longest, new_current)
        streak.last_checkin = now

        stats = await get_or_create_stats(self.db, user_id, now)
        stats.consecutive_days = new_current
        stats.updated_at = now
        await self.db.flush()

        achievements = await self.achievements.grant_streak_achievements(user_id, new_current, now)
        await points_ledger.credit(
            self.db, user_id, points_earned,
            source="streak",
            source_id=now.date().isoformat(),
            description=f"Day {new_current} check-in",
            redis=self.redis,
            now=now,
        )

        return StreakUpdateResult(
            streak=StreakData.from_row(streak),
            points_earned=points_earned,
            multiplier=multiplier,
            achievements=achievements,
        )

    async def reset_streak(self, user_id: str, now: datetime | None = None) -> StreakData:
        """Set current to 0 and last_checkin to now. Longest is preserved."""
        if now is None:
            now = utc_now()

        try:
            streak = await self._lock_streak(user_id, now)
            streak.current = 0
            streak.last_checkin = now
            await self.db.execute(
                update(UserStats)
                .where(UserStats.user_id == user_id)
                .values(consecutive_days=0, updated_at=now)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Reset streak for user %s", user_id)
        return StreakData.from_row(streak)

    async def get_streak_status(self, user_id: str, now: datetime | None = None) -> StreakStatus:
        """Current streak state. Users without a streak get defaults; no row is created."""
        if now is None:
            now = utc_now()

        result = await self.db.execute(select(UserStreak).where(UserStreak.user_id == user_id))
        streak = result.scalar_one_or_none()
        if streak is None:
            return StreakStatus(current=0, longest=0, last_checkin=None, can_check_in_today=True, multiplier=1)

        last_checkin = as_utc(streak.last_checkin)
        return StreakStatus(
            current=streak.current,
            longest=streak.longest,
            last_checkin=last_checkin,
            can_check_in_today=not is_within(last_checkin, start_of_day(now), now),
            multiplier=get_multiplier(streak.current),
        )

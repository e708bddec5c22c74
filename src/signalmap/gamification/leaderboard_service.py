"""Leaderboard ranker: materialised per-timeframe scores with competition ranking.

All-time scores are each user's point total. Windowed scores (daily,
weekly, monthly) sum the points ledger since the window start. Ranks are
always ``count(strictly greater score) + 1``, so tied users share a rank
and the next distinct score skips accordingly.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from signalmap.db.dialect import upsert_insert
from signalmap.db.models import LeaderboardEntry, PointsTransaction, User, UserStats
from signalmap.gamification.day_utils import as_utc, start_of_day, start_of_month, start_of_week, utc_now
from signalmap.gamification.errors import ValidationError

logger = logging.getLogger(__name__)

MAX_ENTRIES = 100
ANONYMOUS_NAME = "Anonymous"


class Timeframe(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ALL_TIME = "allTime"

    @classmethod
    def parse(cls, value: str) -> Timeframe:
        """Resolve a timeframe name, accepting ``alltime``/``all_time`` spellings."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().replace("_", "").lower()
        for timeframe in cls:
            if timeframe.value.lower() == key:
                return timeframe
        raise ValidationError(
            f"Invalid timeframe: {value}",
            [{"field": "timeframe", "message": f"must be one of {[t.value for t in cls]}"}],
        )


@dataclass
class LeaderboardRow:
    rank: int
    user_id: str
    name: str
    image: str | None
    score: int
    total_measurements: int


def timeframe_start(timeframe: Timeframe, now: datetime) -> datetime | None:
    """UTC start of the scoring window. None for all-time."""
    if timeframe is Timeframe.DAILY:
        return start_of_day(now)
    if timeframe is Timeframe.WEEKLY:
        return start_of_week(now)
    if timeframe is Timeframe.MONTHLY:
        return start_of_month(now)
    return None


def rank_scores(scores: Sequence[int | float]) -> list[int]:
    """Competition ranks for scores, in input order: [100, 100, 80] -> [1, 1, 3]."""
    ordered = sorted(scores, reverse=True)
    first_position: dict[int | float, int] = {}
    for position, score in enumerate(ordered, start=1):
        first_position.setdefault(score, position)
    return [first_position[score] for score in scores]


async def compute_scores(
    db: AsyncSession,
    timeframe: Timeframe,
    now: datetime | None = None,
) -> dict[str, int]:
    """Score per user for a timeframe. Users scoring 0 are omitted."""
    if now is None:
        now = utc_now()

    start = timeframe_start(timeframe, now)
    if start is None:
        result = await db.execute(
            select(UserStats.user_id, UserStats.points).where(UserStats.points > 0)
        )
    else:
        total = func.sum(PointsTransaction.amount)
        result = await db.execute(
            select(PointsTransaction.user_id, total)
            .where(PointsTransaction.created_at >= start, PointsTransaction.created_at <= now)
            .group_by(PointsTransaction.user_id)
            .having(total > 0)
        )
    return {row[0]: int(row[1]) for row in result.all()}


async def refresh_leaderboard(
    db: AsyncSession,
    timeframe: Timeframe,
    now: datetime | None = None,
) -> int:
    """Rebuild the materialised entries of one timeframe. Returns the entry count.

    Scores are upserted on (user_id, timeframe), then entries of users who no
    longer score are deleted. Concurrent refreshes of one timeframe (a request
    and the worker cron) never conflict on that key.
    """
    if now is None:
        now = utc_now()

    scores = await compute_scores(db, timeframe, now)
    user_ids = list(scores)
    ranks = rank_scores([scores[uid] for uid in user_ids])

    if user_ids:
        stmt = upsert_insert(db, LeaderboardEntry)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "timeframe"],
            set_={
                "score": stmt.excluded.score,
                "rank": stmt.excluded.rank,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await db.execute(
            stmt,
            [
                {
                    "user_id": uid,
                    "timeframe": timeframe.value,
                    "score": scores[uid],
                    "rank": rank,
                    "updated_at": now,
                }
                for uid, rank in zip(user_ids, ranks)
            ],
        )

    stale = delete(LeaderboardEntry).where(LeaderboardEntry.timeframe == timeframe.value)
    if user_ids:
        stale = stale.where(LeaderboardEntry.user_id.not_in(user_ids))
    await db.execute(stale)
    await db.commit()

    logger.info("Leaderboard %s refreshed: %d entries", timeframe.value, len(user_ids))
    return len(user_ids)


async def last_refreshed_at(db: AsyncSession, timeframe: Timeframe) -> datetime | None:
    result = await db.execute(
        select(func.max(LeaderboardEntry.updated_at)).where(LeaderboardEntry.timeframe == timeframe.value)
    )
    value = result.scalar_one_or_none()
    return as_utc(value) if value is not None else None


async def ensure_fresh(
    db: AsyncSession,
    timeframe: Timeframe,
    max_age_seconds: int,
    now: datetime | None = None,
) -> bool:
    """Refresh the timeframe when its entries are missing or older than max_age_seconds."""
    if now is None:
        now = utc_now()
    refreshed_at = await last_refreshed_at(db, timeframe)
    if refreshed_at is not None and now - refreshed_at < timedelta(seconds=max_age_seconds):
        return False
    await refresh_leaderboard(db, timeframe, now)
    return True


async def get_leaderboard(
    db: AsyncSession,
    timeframe: Timeframe,
    page: int = 1,
    limit: int = MAX_ENTRIES,
) -> list[LeaderboardRow]:
    """Ranked entries, score descending with user_id as the tie-break."""
    limit = max(1, min(limit, MAX_ENTRIES))
    page = max(1, page)

    higher = aliased(LeaderboardEntry)
    rank_expr = (
        select(func.count())
        .select_from(higher)
        .where(higher.timeframe == timeframe.value, higher.score > LeaderboardEntry.score)
        .correlate(LeaderboardEntry)
        .scalar_subquery()
    ) + 1

    result = await db.execute(
        select(
            rank_expr.label("rank"),
            LeaderboardEntry.user_id,
            LeaderboardEntry.score,
            User.name,
            User.image,
            UserStats.total_measurements,
        )
        .outerjoin(User, User.id == LeaderboardEntry.user_id)
        .outerjoin(UserStats, UserStats.user_id == LeaderboardEntry.user_id)
        .where(LeaderboardEntry.timeframe == timeframe.value)
        .order_by(LeaderboardEntry.score.desc(), LeaderboardEntry.user_id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return [
        LeaderboardRow(
            rank=row.rank,
            user_id=row.user_id,
            name=row.name or ANONYMOUS_NAME,
            image=row.image,
            score=row.score,
            total_measurements=row.total_measurements or 0,
        )
        for row in result.all()
    ]


async def calculate_user_rank(db: AsyncSession, user_id: str, timeframe: Timeframe) -> int:
    """Competition rank of one user, 0 when they have no entry for the timeframe."""
    score = await _user_score(db, user_id, timeframe)
    if score is None:
        return 0
    result = await db.execute(
        select(func.count())
        .select_from(LeaderboardEntry)
        .where(LeaderboardEntry.timeframe == timeframe.value, LeaderboardEntry.score > score)
    )
    return result.scalar_one() + 1


async def _user_score(db: AsyncSession, user_id: str, timeframe: Timeframe) -> int | None:
    result = await db.execute(
        select(LeaderboardEntry.score).where(
            LeaderboardEntry.user_id == user_id,
            LeaderboardEntry.timeframe == timeframe.value,
        )
    )
    return result.scalar_one_or_none()


async def get_user_position(db: AsyncSession, user_id: str, timeframe: Timeframe) -> dict[str, Any]:
    """Rank, score and percentile of one user."""
    score = await _user_score(db, user_id, timeframe)
    total_result = await db.execute(
        select(func.count()).select_from(LeaderboardEntry).where(LeaderboardEntry.timeframe == timeframe.value)
    )
    total = total_result.scalar_one()
    rank = await calculate_user_rank(db, user_id, timeframe)
    return {
        "timeframe": timeframe.value,
        "rank": rank,
        "score": score or 0,
        "total": total,
        "percentile": round(100 - (rank / total * 100), 2) if rank and total else 0,
    }


async def get_leaderboard_stats(db: AsyncSession, timeframe: Timeframe) -> dict[str, int]:
    """Number of ranked users for the timeframe and total contributions overall."""
    users_result = await db.execute(
        select(func.count()).select_from(LeaderboardEntry).where(LeaderboardEntry.timeframe == timeframe.value)
    )
    contributions_result = await db.execute(select(func.coalesce(func.sum(UserStats.total_measurements), 0)))
    return {
        "total_users": users_result.scalar_one(),
        "total_contributions": int(contributions_result.scalar_one()),
    }


# ---------------------------------------------------------------------------
# Redis response cache
# ---------------------------------------------------------------------------


def build_cache_key(timeframe: Timeframe, page: int, limit: int) -> str:
    return f"leaderboard:{timeframe.value}:{page}:{limit}"


async def get_cached(redis: object | None, key: str) -> dict[str, Any] | None:
    """Cached leaderboard payload, or None on miss or when Redis is unavailable."""
    if redis is None:
        return None
    try:
        raw = await redis.get(key)  # type: ignore[union-attr]
    except Exception:
        logger.warning("Leaderboard cache read failed for %s", key, exc_info=True)
        return None
    return json.loads(raw) if raw else None


async def set_cached(redis: object | None, key: str, payload: dict[str, Any], ttl: int) -> None:
    if redis is None:
        return
    try:
        await redis.set(key, json.dumps(payload, default=str), ex=ttl)  # type: ignore[union-attr]
    except Exception:
        logger.warning("Leaderboard cache write failed for %s", key, exc_info=True)


async def invalidate_cache(redis: object | None, timeframe: Timeframe) -> None:
    """Drop every cached page of a timeframe."""
    if redis is None:
        return
    try:
        keys = [key async for key in redis.scan_iter(match=f"leaderboard:{timeframe.value}:*")]  # type: ignore[union-attr]
        if keys:
            await redis.delete(*keys)  # type: ignore[union-attr]
    except Exception:
        logger.warning("Leaderboard cache invalidation failed for %s", timeframe.value, exc_info=True)


def rows_as_dicts(rows: list[LeaderboardRow]) -> list[dict[str, Any]]:
    return [asdict(row) for row in rows]

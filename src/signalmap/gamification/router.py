"""Gamification API endpoints."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Query
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from signalmap.auth.dependencies import get_current_user_id, get_optional_user_id
from signalmap.config import get_settings
from signalmap.database import get_session
from signalmap.dependencies import get_redis_dep
from signalmap.gamification import leaderboard_service, points_ledger
from signalmap.gamification.achievement_engine import AchievementEngine, AchievementProgress, UnlockedAchievement
from signalmap.gamification.leaderboard_service import Timeframe
from signalmap.gamification.levels import calculate_level, level_info
from signalmap.gamification.measurement_service import (
    MAX_BATCH_SIZE,
    MeasurementIn,
    MeasurementResult,
    process_measurement,
    process_measurements,
)
from signalmap.gamification.schemas import (
    AchievementResponse,
    AchievementsResponse,
    LeaderboardEntryResponse,
    LeaderboardPositionResponse,
    LeaderboardResponse,
    LeaderboardStats,
    LevelResponse,
    MeasurementBatchResponse,
    MeasurementPointsResponse,
    MeasurementResponse,
    PointsHistoryEntry,
    PointsHistoryResponse,
    RequesterPosition,
    StatsResponse,
    StreakResetResponse,
    StreakResponse,
    StreakUpdateResponse,
    UnlockedAchievementResponse,
)
from signalmap.gamification.stats_store import get_stats, stats_as_dict, update_stats
from signalmap.gamification.streak_service import StreakEngine

router = APIRouter(prefix="/api/v1", tags=["Gamification"])

MeasurementBatch = Annotated[list[MeasurementIn], Field(min_length=1, max_length=MAX_BATCH_SIZE)]


def _stats_response(values: dict[str, Any]) -> StatsResponse:
    return StatsResponse(**values, level=calculate_level(values.get("points") or 0))


def _achievement_response(a: AchievementProgress) -> AchievementResponse:
    return AchievementResponse(
        id=a.id,
        slug=a.slug,
        title=a.title,
        description=a.description,
        icon=a.icon,
        points=a.points,
        rarity=a.rarity,
        tier=a.tier,
        category=a.category,
        is_secret=a.is_secret,
        progress=a.progress,
        completed=a.completed,
        unlocked_at=a.unlocked_at,
        requirements=a.requirements,
    )


def _unlocked_response(a: UnlockedAchievement) -> UnlockedAchievementResponse:
    return UnlockedAchievementResponse(
        id=a.id,
        slug=a.slug,
        title=a.title,
        description=a.description,
        icon=a.icon,
        points=a.points,
        tier=a.tier,
        category=a.category,
        unlocked_at=a.unlocked_at,
    )


# ── Measurements ──


def _measurement_response(result: MeasurementResult) -> MeasurementResponse:
    return MeasurementResponse(
        stats=_stats_response(result.stats),
        points=MeasurementPointsResponse(total=result.points.total, bonuses=result.points.bonuses),
        total_points=result.total_points,
        level=result.level,
        achievements=[_unlocked_response(a) for a in result.achievements],
    )


@router.post(
    "/measurements",
    response_model=MeasurementResponse | MeasurementBatchResponse,
    status_code=201,
)
async def submit_measurement(
    payload: MeasurementIn | MeasurementBatch = Body(...),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Record one measurement, or a batch of up to 100 processed in order.

    Each measurement commits on its own; a batch response lists one result per item.
    """
    if isinstance(payload, MeasurementIn):
        return _measurement_response(await process_measurement(db, redis, user_id, payload))

    results = await process_measurements(db, redis, user_id, payload)
    return MeasurementBatchResponse(
        results=[_measurement_response(r) for r in results],
        count=len(results),
    )


# ── Stats ──


@router.get("/stats", response_model=StatsResponse)
async def read_stats(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Own stats. Users who never contributed get zeroed defaults."""
    stats = await get_stats(db, user_id)
    return _stats_response(stats_as_dict(stats))


@router.patch("/stats", response_model=StatsResponse)
async def patch_stats(
    changes: dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Partial stats update, validated as a whole before anything is written."""
    stats = await update_stats(db, user_id, changes)
    return _stats_response(stats_as_dict(stats))


# ── Achievements ──


@router.get("/achievements", response_model=AchievementsResponse)
async def list_achievements(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Catalog with the user's progress. Secret achievements appear once unlocked."""
    achievements = await AchievementEngine(db, redis).get_achievements(user_id)
    items = [_achievement_response(a) for a in achievements]
    return AchievementsResponse(
        achievements=items,
        total=len(items),
        completed=sum(1 for a in items if a.completed),
    )


# ── Streaks ──


@router.get("/streaks", response_model=StreakResponse)
async def read_streak(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Streak status plus the streak achievements and their progress."""
    status = await StreakEngine(db, redis).get_streak_status(user_id)
    achievements = await AchievementEngine(db, redis).get_achievements(user_id)
    return StreakResponse(
        current=status.current,
        longest=status.longest,
        last_checkin=status.last_checkin,
        can_check_in_today=status.can_check_in_today,
        multiplier=status.multiplier,
        achievements=[_achievement_response(a) for a in achievements if a.category == "STREAK"],
    )


@router.post("/streaks", response_model=StreakUpdateResponse)
async def check_in(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Daily check-in. Repeated calls on the same UTC day earn nothing."""
    result = await StreakEngine(db, redis).update_streak(user_id)
    return StreakUpdateResponse(
        current=result.streak.current,
        longest=result.streak.longest,
        last_checkin=result.streak.last_checkin,
        points_earned=result.points_earned,
        multiplier=result.multiplier,
        achievements=[_unlocked_response(a) for a in result.achievements],
    )


@router.delete("/streaks", response_model=StreakResetResponse)
async def reset_streak(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Reset the current streak. The longest streak and earned achievements are kept."""
    streak = await StreakEngine(db, redis).reset_streak(user_id)
    achievements = await AchievementEngine(db, redis).get_achievements(user_id)
    return StreakResetResponse(
        current=streak.current,
        longest=streak.longest,
        last_checkin=streak.last_checkin,
        achievements=[_achievement_response(a) for a in achievements if a.category == "STREAK"],
    )


# ── Leaderboard ──


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def read_leaderboard(
    timeframe: str = Query("allTime"),
    page: int = Query(1, ge=1),
    limit: int = Query(leaderboard_service.MAX_ENTRIES, ge=1, le=leaderboard_service.MAX_ENTRIES),
    user_id: str | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Ranked entries, aggregate stats, and the requester's own position when authenticated."""
    tf = Timeframe.parse(timeframe)
    settings = get_settings()
    key = leaderboard_service.build_cache_key(tf, page, limit)

    payload = await leaderboard_service.get_cached(redis, key)
    if payload is None:
        await leaderboard_service.ensure_fresh(db, tf, settings.leaderboard_cache_ttl_seconds)
        rows = await leaderboard_service.get_leaderboard(db, tf, page, limit)
        payload = {
            "entries": leaderboard_service.rows_as_dicts(rows),
            "stats": await leaderboard_service.get_leaderboard_stats(db, tf),
        }
        await leaderboard_service.set_cached(redis, key, payload, settings.leaderboard_cache_ttl_seconds)

    requester = None
    if user_id is not None:
        requester = RequesterPosition(
            rank=await leaderboard_service.calculate_user_rank(db, user_id, tf),
            points=await points_ledger.get_points(db, user_id),
        )

    return LeaderboardResponse(
        timeframe=tf.value,
        entries=[
            LeaderboardEntryResponse(**entry, is_current_user=entry["user_id"] == user_id)
            for entry in payload["entries"]
        ],
        stats=LeaderboardStats(**payload["stats"]),
        page=page,
        limit=limit,
        user=requester,
    )


@router.get("/leaderboard/position", response_model=LeaderboardPositionResponse)
async def read_leaderboard_position(
    timeframe: str = Query("allTime"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """The requester's rank, score and percentile for a timeframe."""
    tf = Timeframe.parse(timeframe)
    await leaderboard_service.ensure_fresh(db, tf, get_settings().leaderboard_cache_ttl_seconds)
    return LeaderboardPositionResponse(**await leaderboard_service.get_user_position(db, user_id, tf))


# ── Points & levels ──


@router.get("/points/history", response_model=PointsHistoryResponse)
async def read_points_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Paginated points ledger, newest first."""
    entries, total = await points_ledger.get_history(db, user_id, page, per_page)
    return PointsHistoryResponse(
        entries=[
            PointsHistoryEntry(
                amount=e.amount,
                source=e.source,
                source_id=e.source_id,
                description=e.description,
                created_at=e.created_at,
            )
            for e in entries
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/levels/me", response_model=LevelResponse)
async def read_level(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Level and progress toward the next one."""
    return LevelResponse(**level_info(await points_ledger.get_points(db, user_id)))

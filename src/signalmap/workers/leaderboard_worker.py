"""Leaderboard refresh arq worker: periodic rebuilds of the materialised entries.

Every timeframe is refreshed on the same cron interval
(``leaderboard_refresh_minutes``). Cached API pages for a timeframe are
dropped after its refresh.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from signalmap.config import get_settings
from signalmap.database import close_db, get_session, init_db
from signalmap.gamification.leaderboard_service import Timeframe, invalidate_cache, refresh_leaderboard

logger = logging.getLogger(__name__)


async def _get_db_session() -> AsyncSession:
    """Get a database session for the worker."""
    async for session in get_session():
        return session
    raise RuntimeError("Failed to get database session")


async def refresh_timeframe(ctx: dict, timeframe: str) -> int:
    """Rebuild one timeframe's leaderboard. Returns the number of ranked users."""
    tf = Timeframe.parse(timeframe)
    db = await _get_db_session()
    try:
        count = await refresh_leaderboard(db, tf)
    finally:
        await db.close()
    await invalidate_cache(ctx.get("redis"), tf)
    return count


async def refresh_all_leaderboards(ctx: dict) -> dict[str, int]:
    """Cron entry point: refresh every timeframe in turn."""
    counts: dict[str, int] = {}
    for tf in Timeframe:
        try:
            counts[tf.value] = await refresh_timeframe(ctx, tf.value)
        except Exception:
            logger.exception("Leaderboard refresh failed for %s", tf.value)
    logger.info("Leaderboards refreshed: %s", counts)
    return counts


async def leaderboard_startup(ctx: dict) -> None:
    """Initialize Redis + DB connections on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    ctx["redis"] = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=10,
    )
    logger.info("Leaderboard worker started")


async def leaderboard_shutdown(ctx: dict) -> None:
    """Clean up on worker shutdown."""
    redis_client = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Leaderboard worker shut down")

"""Points ledger: atomic, credit-only point increments with an audit log."""

from __future__ import annotations

import logging
import math
from datetime import datetime
from numbers import Integral, Real
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from signalmap.db.models import PointsTransaction, UserStats
from signalmap.gamification.day_utils import utc_now
from signalmap.gamification.errors import InvalidAmountError
from signalmap.gamification.events import EventType, emit_event
from signalmap.gamification.levels import calculate_level
from signalmap.gamification.stats_store import get_or_create_stats

logger = logging.getLogger(__name__)


def validate_amount(amount: Any) -> int:  # noqa: ANN401
    """Return amount as int, or raise InvalidAmountError for negative/non-integral/non-numeric values."""
    if isinstance(amount, bool) or not isinstance(amount, Real):
        raise InvalidAmountError(amount)
    if not math.isfinite(amount) or amount < 0:
        raise InvalidAmountError(amount)
    if not isinstance(amount, Integral) and amount != int(amount):
        raise InvalidAmountError(amount)
    return int(amount)


async def get_points(db: AsyncSession, user_id: str) -> int:
    """Current point total (0 for users without stats)."""
    result = await db.execute(select(UserStats.points).where(UserStats.user_id == user_id))
    return result.scalar_one_or_none() or 0


async def credit(
    db: AsyncSession,
    user_id: str,
    amount: Any,  # noqa: ANN401
    source: str = "manual",
    source_id: str | None = None,
    description: str | None = None,
    redis: object | None = None,
    now: datetime | None = None,
) -> int:
    """Credit points to a user. Returns the new total.

    Uses a single ``points = points + :amount`` UPDATE so concurrent credits
    to the same row never lose updates. Runs inside the caller's transaction
    (flush only). A zero amount is a no-op.
    """
    value = validate_amount(amount)
    if value == 0:
        return await get_points(db, user_id)
    if now is None:
        now = utc_now()

    old_total = await get_points(db, user_id)
    result = await db.execute(
        update(UserStats)
        .where(UserStats.user_id == user_id)
        .values(points=UserStats.points + value, updated_at=now)
    )
    if result.rowcount == 0:
        await get_or_create_stats(db, user_id, now)
        await db.execute(
            update(UserStats)
            .where(UserStats.user_id == user_id)
            .values(points=UserStats.points + value, updated_at=now)
        )

    db.add(PointsTransaction(
        user_id=user_id,
        amount=value,
        source=source,
        source_id=source_id,
        description=description,
        created_at=now,
    ))
    await db.flush()

    new_total = await get_points(db, user_id)
    logger.debug("Credited %d points to user %s from %s (total %d)", value, user_id, source, new_total)
    old_level = calculate_level(old_total)
    new_level = calculate_level(new_total)
    if new_level > old_level:
        await emit_event(
            db, redis, user_id, EventType.LEVEL_UP,
            title="Level Up!",
            description=f"You reached level {new_level}",
            metadata={"old_level": old_level, "new_level": new_level, "points": new_total},
            now=now,
        )
    return new_total


async def get_history(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[PointsTransaction], int]:
    """Paginated ledger entries (newest first) and the total entry count."""
    total_result = await db.execute(
        select(func.count()).select_from(PointsTransaction).where(PointsTransaction.user_id == user_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(PointsTransaction)
        .where(PointsTransaction.user_id == user_id)
        .order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total

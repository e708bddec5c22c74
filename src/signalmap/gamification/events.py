"""Gamification event emission: persisted notification + Redis pub/sub broadcast.

Delivery (push, email, in-app rendering) belongs to other services; this
module only records the event and announces it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from signalmap.db.models import Notification
from signalmap.gamification.day_utils import utc_now

logger = logging.getLogger(__name__)

EVENTS_CHANNEL = "pubsub:gamification"


class EventType(str, Enum):
    ACHIEVEMENT = "ACHIEVEMENT"
    STREAK_MILESTONE = "STREAK_MILESTONE"
    LEVEL_UP = "LEVEL_UP"


async def emit_event(
    db: AsyncSession,
    redis: object | None,
    user_id: str,
    type_: EventType,
    title: str,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Notification:
    """Persist a notification row (flush only) and publish it on Redis if available."""
    if now is None:
        now = utc_now()

    notification = Notification(
        user_id=user_id,
        type=type_.value,
        title=title,
        description=description,
        notification_metadata=metadata or {},
        created_at=now,
    )
    db.add(notification)
    await db.flush()

    if redis is not None:
        try:
            await redis.publish(  # type: ignore[union-attr]
                EVENTS_CHANNEL,
                json.dumps({
                    "id": notification.id,
                    "user_id": user_id,
                    "type": type_.value,
                    "title": title,
                    "description": description,
                    "metadata": metadata or {},
                    "timestamp": now.isoformat(),
                }),
            )
        except Exception:
            logger.warning("Failed to publish %s event for user %s", type_.value, user_id, exc_info=True)

    return notification

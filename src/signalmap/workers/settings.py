"""arq worker settings module.

Import path for arq CLI: arq signalmap.workers.settings.WorkerSettings
"""

from __future__ import annotations

from arq import cron
from arq.connections import RedisSettings

from signalmap.config import get_settings
from signalmap.workers.leaderboard_worker import (
    leaderboard_shutdown,
    leaderboard_startup,
    refresh_all_leaderboards,
    refresh_timeframe,
)

_settings = get_settings()


def refresh_minutes(interval: int) -> set[int]:
    """Minutes of the hour at which a job with the given interval runs."""
    interval = max(1, min(interval, 60))
    return set(range(0, 60, interval))


class WorkerSettings:
    """arq worker settings for leaderboard refresh."""

    functions = [refresh_timeframe, refresh_all_leaderboards]
    cron_jobs = [
        cron(refresh_all_leaderboards, minute=refresh_minutes(_settings.leaderboard_refresh_minutes)),
    ]
    redis_settings = RedisSettings.from_dsn(_settings.arq_redis_url)
    on_startup = leaderboard_startup
    on_shutdown = leaderboard_shutdown
    max_jobs = 4
    job_timeout = 300

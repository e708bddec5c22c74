"""Measurement processing tests: stats, points, and achievements in one transaction."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from signalmap.db.models import Notification
from signalmap.gamification import points_ledger
from signalmap.gamification.achievement_engine import AchievementEngine
from signalmap.gamification.measurement_service import MeasurementIn, process_measurement, process_measurements
from signalmap.gamification.stats_store import get_stats


def _measurement(**overrides) -> MeasurementIn:
    data = {
        "signal_strength": 2,
        "technology": "5G",
        "provider": "Acme Mobile",
        "latitude": 47.3769,
        "longitude": 8.5417,
    }
    data.update(overrides)
    return MeasurementIn(**data)


@pytest.mark.asyncio
class TestProcessMeasurement:

    async def test_first_measurement_unlocks_first_steps(self, seeded_db, now):
        result = await process_measurement(seeded_db, None, "u1", _measurement(), now)

        assert result.points.total == 10
        assert [a.slug for a in result.achievements] == ["first_steps"]
        assert result.total_points == 110
        assert result.level == 2
        assert result.stats["total_measurements"] == 1
        assert result.stats["points"] == 110
        assert await points_ledger.get_points(seeded_db, "u1") == 110

    async def test_rural_first_in_area(self, seeded_db, now):
        result = await process_measurement(
            seeded_db, None, "u1", _measurement(is_rural=True, is_first_in_area=True), now,
        )
        assert result.points.total == 25
        assert {a.slug for a in result.achievements} == {"first_steps", "rural_pioneer"}
        assert result.total_points == 225

        stats = await get_stats(seeded_db, "u1")
        assert stats.rural_measurements == 1
        assert stats.unique_locations == 1
        assert stats.contribution_score == 2

    async def test_second_measurement_does_not_unlock_again(self, seeded_db, now):
        await process_measurement(seeded_db, None, "u1", _measurement(), now)
        result = await process_measurement(seeded_db, None, "u1", _measurement(), now + timedelta(minutes=5))

        assert result.achievements == []
        assert result.total_points == 120
        assert result.stats["total_measurements"] == 2

    async def test_ledger_and_notifications(self, seeded_db, now):
        await process_measurement(seeded_db, None, "u1", _measurement(), now)

        entries, total = await points_ledger.get_history(seeded_db, "u1")
        assert total == 2
        assert {e.source for e in entries} == {"measurement", "achievement"}

        result = await seeded_db.execute(select(Notification.type).where(Notification.user_id == "u1"))
        assert sorted(result.scalars().all()) == ["ACHIEVEMENT", "LEVEL_UP"]

    async def test_failure_rolls_back_everything(self, seeded_db, now, monkeypatch):
        async def _explode(self, user_id, stats, now=None):
            raise RuntimeError("evaluation failed")

        monkeypatch.setattr(AchievementEngine, "evaluate", _explode)

        with pytest.raises(RuntimeError):
            await process_measurement(seeded_db, None, "u1", _measurement(), now)

        assert await get_stats(seeded_db, "u1") is None
        entries, total = await points_ledger.get_history(seeded_db, "u1")
        assert total == 0


@pytest.mark.asyncio
class TestProcessBatch:

    async def test_results_in_submission_order(self, seeded_db, now):
        results = await process_measurements(
            seeded_db, None, "u1", [_measurement(), _measurement(is_rural=True)], now,
        )

        assert [r.stats["total_measurements"] for r in results] == [1, 2]
        assert [a.slug for a in results[0].achievements] == ["first_steps"]
        assert [a.slug for a in results[1].achievements] == ["rural_pioneer"]
        assert results[1].points.bonuses["rural"] == 10

    async def test_failure_keeps_earlier_items(self, seeded_db, now, monkeypatch):
        original = AchievementEngine.evaluate
        calls = []

        async def _fail_second(self, user_id, stats, now=None):
            calls.append(user_id)
            if len(calls) == 2:
                raise RuntimeError("evaluation failed")
            return await original(self, user_id, stats, now)

        monkeypatch.setattr(AchievementEngine, "evaluate", _fail_second)

        with pytest.raises(RuntimeError):
            await process_measurements(seeded_db, None, "u1", [_measurement(), _measurement()], now)

        stats = await get_stats(seeded_db, "u1")
        assert stats.total_measurements == 1
        assert await points_ledger.get_points(seeded_db, "u1") == 110

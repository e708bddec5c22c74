"""Competition ranking and timeframe window tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from signalmap.gamification.errors import ValidationError
from signalmap.gamification.leaderboard_service import Timeframe, build_cache_key, rank_scores, timeframe_start


class TestRankScores:

    def test_ties_share_rank_and_skip(self):
        assert rank_scores([100, 100, 80]) == [1, 1, 3]

    def test_input_order_is_kept(self):
        assert rank_scores([50, 80, 80, 10]) == [3, 1, 1, 4]

    def test_all_tied(self):
        assert rank_scores([7, 7, 7]) == [1, 1, 1]

    def test_empty(self):
        assert rank_scores([]) == []


class TestTimeframe:

    @pytest.mark.parametrize("value", ["allTime", "alltime", "all_time", "ALL_TIME"])
    def test_all_time_spellings(self, value):
        assert Timeframe.parse(value) is Timeframe.ALL_TIME

    def test_window_names(self):
        assert Timeframe.parse("daily") is Timeframe.DAILY
        assert Timeframe.parse("Weekly") is Timeframe.WEEKLY
        assert Timeframe.parse("monthly") is Timeframe.MONTHLY

    def test_invalid(self):
        with pytest.raises(ValidationError) as exc_info:
            Timeframe.parse("yearly")
        assert exc_info.value.details[0]["field"] == "timeframe"

    def test_cache_key(self):
        assert build_cache_key(Timeframe.WEEKLY, 2, 25) == "leaderboard:weekly:2:25"


class TestTimeframeStart:
    NOW = datetime(2026, 3, 4, 15, 30, tzinfo=timezone.utc)  # Wednesday

    def test_daily(self):
        assert timeframe_start(Timeframe.DAILY, self.NOW) == datetime(2026, 3, 4, tzinfo=timezone.utc)

    def test_weekly_starts_monday(self):
        assert timeframe_start(Timeframe.WEEKLY, self.NOW) == datetime(2026, 3, 2, tzinfo=timezone.utc)

    def test_monthly(self):
        assert timeframe_start(Timeframe.MONTHLY, self.NOW) == datetime(2026, 3, 1, tzinfo=timezone.utc)

    def test_all_time_has_no_window(self):
        assert timeframe_start(Timeframe.ALL_TIME, self.NOW) is None

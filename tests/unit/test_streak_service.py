"""Streak tests: UTC calendar-day boundaries and same-day no-ops."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from progression.gamification.streak_service import days_between, next_streak
from progression.models import UserStats
from progression.time_utils import to_millis

MONDAY = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


class TestDaysBetween:
    def test_never_active(self):
        assert days_between(0, MONDAY) is None

    def test_calendar_days_not_24h_windows(self):
        """23:59 -> 00:01 is one day apart even though only two minutes passed."""
        late = datetime(2026, 3, 1, 23, 59, tzinfo=timezone.utc)
        early = datetime(2026, 3, 2, 0, 1, tzinfo=timezone.utc)
        assert days_between(to_millis(late), early) == 1

    def test_same_day(self):
        assert days_between(to_millis(MONDAY.replace(hour=0)), MONDAY.replace(hour=23)) == 0


class TestNextStreak:
    def _stats(self, streak: int, last: datetime | None) -> UserStats:
        return UserStats(id="u1", current_streak=streak, last_activity_date=to_millis(last) if last else 0)

    def test_first_activity_starts_at_one(self):
        assert next_streak(self._stats(0, None), MONDAY) == 1

    def test_consecutive_day_extends(self):
        assert next_streak(self._stats(4, MONDAY - timedelta(days=1)), MONDAY) == 5

    def test_gap_resets(self):
        assert next_streak(self._stats(4, MONDAY - timedelta(days=2)), MONDAY) == 1

    def test_clock_skew_resets(self):
        assert next_streak(self._stats(4, MONDAY + timedelta(days=1)), MONDAY) == 1

    def test_same_day_keeps_streak(self):
        assert next_streak(self._stats(4, MONDAY.replace(hour=1)), MONDAY) == 4

    def test_same_day_zero_streak_starts_at_one(self):
        assert next_streak(self._stats(0, MONDAY.replace(hour=1)), MONDAY) == 1


class TestTouchStreak:
    @pytest.mark.asyncio
    async def test_consecutive_days(self, engine):
        for offset in range(3):
            assert await engine.streaks.touch_streak("alice", MONDAY + timedelta(days=offset)) == offset + 1
        stats = await engine.get_user_stats("alice")
        assert stats.current_streak == 3
        assert stats.longest_streak == 3

    @pytest.mark.asyncio
    async def test_same_day_is_a_no_op(self, engine, backend):
        await engine.streaks.touch_streak("alice", MONDAY)
        version = (await backend.load("user-stats")).version

        assert await engine.streaks.touch_streak("alice", MONDAY + timedelta(hours=5)) == 1
        assert (await backend.load("user-stats")).version == version
        stats = await engine.get_user_stats("alice")
        assert stats.last_activity_date == to_millis(MONDAY)

    @pytest.mark.asyncio
    async def test_reset_keeps_longest(self, engine):
        for offset in range(4):
            await engine.streaks.touch_streak("alice", MONDAY + timedelta(days=offset))
        assert await engine.streaks.touch_streak("alice", MONDAY + timedelta(days=10)) == 1
        stats = await engine.get_user_stats("alice")
        assert stats.current_streak == 1
        assert stats.longest_streak == 4

    @pytest.mark.asyncio
    async def test_engine_touch_unlocks_streak_achievement(self, engine):
        results = [await engine.touch_streak("alice", MONDAY + timedelta(days=d)) for d in range(3)]
        assert [a.id for a in results[-1].unlocked] == ["streak-3"]
        assert results[-1].current_streak == 3
        assert await engine.unlocker.has_achievement("alice", "streak-3")

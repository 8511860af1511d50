"""Daily activity streaks: consecutive UTC calendar days with activity."""

from __future__ import annotations

import logging
from datetime import datetime

from progression.gamification.xp_service import ProgressionLedger
from progression.models import UserStats
from progression.time_utils import from_millis, to_millis, utc_date, utcnow

logger = logging.getLogger(__name__)


def days_between(last_activity_ms: int, now: datetime) -> int | None:
    """Whole calendar days from the last activity to `now`, or None if never active."""
    if last_activity_ms <= 0:
        return None
    return (utc_date(now) - utc_date(from_millis(last_activity_ms))).days


def next_streak(stats: UserStats, now: datetime) -> int:
    """Streak value after an activity at `now`.

    Same day keeps the streak (a zero streak starts at 1), the next day
    extends it, anything else (gap, first activity, clock skew) resets to 1.
    """
    gap = days_between(stats.last_activity_date, now)
    if gap == 0:
        return stats.current_streak or 1
    if gap == 1:
        return stats.current_streak + 1
    return 1


class StreakTracker:
    """Updates current/longest streak on the user's stats record."""

    def __init__(self, ledger: ProgressionLedger) -> None:
        self.ledger = ledger

    async def touch_streak(self, user_id: str, now: datetime | None = None) -> int:
        """Record activity for today and return the resulting streak."""
        if now is None:
            now = utcnow()
        timestamp = to_millis(now)
        previous: list[int] = []

        def _touch(stats: UserStats) -> UserStats:
            previous.append(stats.current_streak)
            streak = next_streak(stats, now)
            if streak == stats.current_streak and days_between(stats.last_activity_date, now) == 0:
                return stats  # already counted today
            stats.current_streak = streak
            stats.longest_streak = max(stats.longest_streak, streak)
            stats.last_activity_date = timestamp
            return stats

        after = await self.ledger.update_stats(user_id, _touch)
        if previous and after.current_streak < previous[-1]:
            logger.info("Streak for user %s reset after %d days", user_id, previous[-1])
        return after.current_streak

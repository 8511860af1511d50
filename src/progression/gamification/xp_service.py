"""XP ledger: per-user stats projection plus the append-only XP event log."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from progression.gamification.level_thresholds import level_from_xp
from progression.models import UserStats, XPEvent
from progression.store.records import RecordStore, UserScopedStore
from progression.time_utils import to_millis, utcnow

logger = logging.getLogger(__name__)

XP_REWARDS: dict[str, int] = {
    "module_complete": 50,
    "course_complete": 200,
    "assessment_pass": 100,
    "assessment_perfect": 150,
    "first_try_bonus": 50,
    "daily_login": 10,
}

QUIZ_PASSING_SCORE = 70


@dataclass(frozen=True)
class LedgerEntry:
    """Outcome of one XP grant: the appended event and the stats around it."""

    event: XPEvent
    before: UserStats
    after: UserStats

    @property
    def leveled_up(self) -> bool:
        return self.after.level > self.before.level


def new_stats(user_id: str) -> UserStats:
    """Zeroed stats for a user seen for the first time."""
    return UserStats(id=user_id)


class ProgressionLedger:
    """XP accounting over the user-stats and xp-events collections."""

    def __init__(self, stats: RecordStore[UserStats], events: UserScopedStore[XPEvent]) -> None:
        self.stats = stats
        self.events = events

    async def get_user_stats(self, user_id: str) -> UserStats:
        """Get or lazily create the stats record for a user."""
        existing = await self.stats.get_by_id(user_id)
        if existing is not None:
            return existing
        _, created = await self.stats.modify(user_id, lambda s: s, default=lambda: new_stats(user_id))
        return created

    async def update_stats(self, user_id: str, mutator: Callable[[UserStats], UserStats]) -> UserStats:
        """Atomically apply `mutator` to the user's stats, creating them if needed."""
        _, after = await self.stats.modify(user_id, mutator, default=lambda: new_stats(user_id))
        return after

    async def record_xp(
        self,
        user_id: str,
        amount: int,
        reason: str,
        event_type: str = "activity",
        now: datetime | None = None,
    ) -> LedgerEntry:
        """Append an XP event and move the stats projection forward.

        The event is written first; the stats total and level follow in a
        single atomic stats write. Negative amounts are recorded as given.
        """
        if now is None:
            now = utcnow()
        timestamp = to_millis(now)

        event = XPEvent(
            id=uuid.uuid4().hex,
            user_id=user_id,
            type=event_type,
            amount=amount,
            timestamp=timestamp,
            label=reason,
        )
        await self.events.create(event)

        def _apply(stats: UserStats) -> UserStats:
            stats.total_xp += amount
            stats.level = level_from_xp(stats.total_xp)
            stats.last_activity_date = timestamp
            return stats

        before, after = await self.stats.modify(user_id, _apply, default=lambda: new_stats(user_id))

        if after.level > before.level:
            logger.info("User %s leveled up: %d -> %d", user_id, before.level, after.level)
        return LedgerEntry(event=event, before=before, after=after)

    async def increment_total_xp(self, user_id: str, amount: int) -> UserStats:
        """Add to the stored total only: no event, no level change, no activity stamp."""

        def _increment(stats: UserStats) -> UserStats:
            stats.total_xp += amount
            return stats

        return await self.update_stats(user_id, _increment)

    async def get_xp_events(self, user_id: str, limit: int | None = None) -> list[XPEvent]:
        """XP events for a user, newest first."""
        events = sorted(
            await self.events.get_by_user_id(user_id),
            key=lambda e: e.timestamp,
            reverse=True,
        )
        return events[:limit] if limit is not None else events


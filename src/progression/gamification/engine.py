"""Progression engine: wires the stores and services and orchestrates awards."""

from __future__ import annotations

import logging
from datetime import datetime

from progression.config import Settings, get_settings
from progression.errors import StoreError
from progression.gamification.achievement_service import AchievementUnlocker
from progression.gamification.catalog import AchievementCatalog, get_catalog
from progression.gamification.mentorship_service import MentorshipService, RewardPropagator
from progression.gamification.schemas import AwardResult, MentorBonus, StreakResult, UnlockedAchievement
from progression.gamification.streak_service import StreakTracker
from progression.gamification.xp_service import (
    QUIZ_PASSING_SCORE,
    XP_REWARDS,
    ProgressionLedger,
)
from progression.models import (
    MENTORSHIP_PAIRINGS,
    USER_ACHIEVEMENTS,
    USER_STATS,
    XP_EVENTS,
    MentorshipPairing,
    UserAchievement,
    UserStats,
    XPEvent,
)
from progression.store.backend import CollectionBackend
from progression.store.records import RecordStore, UserScopedStore
from progression.time_utils import utcnow

logger = logging.getLogger(__name__)


class ProgressionEngine:
    """Entry point for XP awards, streaks and achievement checks."""

    def __init__(
        self,
        backend: CollectionBackend,
        catalog: AchievementCatalog | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.backend = backend
        self.catalog = catalog or get_catalog()

        store_options = {
            "timeout": settings.store_timeout_seconds,
            "max_retries": settings.store_max_retries,
        }
        self.ledger = ProgressionLedger(
            RecordStore(backend, USER_STATS, UserStats, **store_options),
            UserScopedStore(backend, XP_EVENTS, XPEvent, **store_options),
        )
        self.streaks = StreakTracker(self.ledger)
        self.unlocker = AchievementUnlocker(
            UserScopedStore(backend, USER_ACHIEVEMENTS, UserAchievement, **store_options),
            self.ledger,
            self.catalog,
        )
        self.mentorships = MentorshipService(
            RecordStore(backend, MENTORSHIP_PAIRINGS, MentorshipPairing, **store_options),
        )
        self.propagator = RewardPropagator(self.mentorships, self.ledger, settings.mentor_bonus_percent)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def award(
        self,
        user_id: str,
        amount: int,
        reason: str,
        event_type: str = "activity",
        now: datetime | None = None,
    ) -> AwardResult:
        """Grant XP, then unlock achievements, then pay the mentor bonus.

        The XP award is never rolled back. A store failure while paying the
        mentor bonus is logged and reported as no bonus.
        """
        entry = await self.ledger.record_xp(user_id, amount, reason, event_type, now)
        unlocked = await self.unlocker.check_and_unlock(user_id, entry.after, now)

        bonus: MentorBonus | None = None
        try:
            bonus = await self.propagator.propagate(user_id, amount)
        except StoreError:
            logger.warning("Mentor bonus for user %s failed", user_id, exc_info=True)

        return AwardResult(
            new_total_xp=entry.after.total_xp,
            new_level=entry.after.level,
            leveled_up=entry.leveled_up,
            previous_level=entry.before.level,
            unlocked=unlocked,
            mentor_bonus=bonus,
        )

    async def touch_streak(self, user_id: str, now: datetime | None = None) -> StreakResult:
        """Record today's activity and unlock any streak achievements."""
        await self.streaks.touch_streak(user_id, now)
        stats = await self.ledger.get_user_stats(user_id)
        unlocked = await self.unlocker.check_and_unlock(user_id, stats, now)
        return StreakResult(
            current_streak=stats.current_streak,
            longest_streak=stats.longest_streak,
            unlocked=unlocked,
        )

    async def get_user_stats(self, user_id: str) -> UserStats:
        return await self.ledger.get_user_stats(user_id)

    async def check_and_unlock(self, user_id: str, now: datetime | None = None) -> list[UnlockedAchievement]:
        """Re-evaluate the catalog against the user's current stats."""
        stats = await self.ledger.get_user_stats(user_id)
        return await self.unlocker.check_and_unlock(user_id, stats, now)

    # ------------------------------------------------------------------
    # Learning activity
    # ------------------------------------------------------------------

    async def record_module_completion(self, user_id: str, now: datetime | None = None) -> AwardResult:
        now = now or utcnow()
        await self.streaks.touch_streak(user_id, now)
        await self.ledger.update_stats(user_id, _bump("total_modules_completed"))
        return await self.award(user_id, XP_REWARDS["module_complete"], "Module completed", "module_complete", now)

    async def record_course_completion(self, user_id: str, now: datetime | None = None) -> AwardResult:
        now = now or utcnow()
        await self.streaks.touch_streak(user_id, now)
        await self.ledger.update_stats(user_id, _bump("total_courses_completed"))
        return await self.award(user_id, XP_REWARDS["course_complete"], "Course completed", "course_complete", now)

    async def record_assessment(
        self,
        user_id: str,
        score: float,
        first_attempt: bool = False,
        now: datetime | None = None,
    ) -> AwardResult | None:
        """Record an assessment attempt. Returns None for a failed attempt.

        A passed attempt folds `score` into the running average over passed
        assessments and awards the pass (or perfect) reward plus the
        first-try bonus.
        """
        now = now or utcnow()
        await self.streaks.touch_streak(user_id, now)
        if score < QUIZ_PASSING_SCORE:
            logger.info("User %s failed assessment with score %s", user_id, score)
            return None

        def _record_pass(stats: UserStats) -> UserStats:
            passed = stats.total_assessments_passed
            stats.average_score = (stats.average_score * passed + score) / (passed + 1)
            stats.total_assessments_passed = passed + 1
            return stats

        await self.ledger.update_stats(user_id, _record_pass)

        amount = XP_REWARDS["assessment_perfect"] if score >= 100 else XP_REWARDS["assessment_pass"]
        if first_attempt:
            amount += XP_REWARDS["first_try_bonus"]
        return await self.award(user_id, amount, f"Assessment passed ({score:g}%)", "assessment_pass", now)


def _bump(counter: str):
    def _increment(stats: UserStats) -> UserStats:
        setattr(stats, counter, getattr(stats, counter) + 1)
        return stats

    return _increment

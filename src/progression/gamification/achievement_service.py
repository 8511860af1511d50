"""Achievement unlocking with duplicate prevention."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from progression.gamification.catalog import AchievementCatalog, AchievementDefinition
from progression.gamification.rules import evaluate
from progression.gamification.schemas import UnlockedAchievement
from progression.gamification.xp_service import ProgressionLedger
from progression.models import UserAchievement, UserStats
from progression.store.records import UserScopedStore
from progression.time_utils import to_millis, utcnow

logger = logging.getLogger(__name__)


def _unlocked(definition: AchievementDefinition, record: UserAchievement) -> UnlockedAchievement:
    return UnlockedAchievement(
        id=definition.id,
        title=definition.title,
        description=definition.description,
        category=definition.category,
        tier=definition.tier,
        unlocked_at=record.unlocked_at,
    )


def _mark_unlocked(achievement_ids: list[str]) -> Callable[[UserStats], UserStats]:
    """Stats mutator adding ids to the embedded unlocked set."""

    def _mark(stats: UserStats) -> UserStats:
        known = set(stats.achievements_unlocked)
        stats.achievements_unlocked += [a for a in achievement_ids if a not in known]
        return stats

    return _mark


class AchievementUnlocker:
    """Compares stats against the catalog and persists new unlocks exactly once."""

    def __init__(
        self,
        achievements: UserScopedStore[UserAchievement],
        ledger: ProgressionLedger,
        catalog: AchievementCatalog,
    ) -> None:
        self.achievements = achievements
        self.ledger = ledger
        self.catalog = catalog

    async def get_user_achievements(self, user_id: str) -> list[UserAchievement]:
        return await self.achievements.get_by_user_id(user_id)

    async def has_achievement(self, user_id: str, achievement_id: str) -> bool:
        return await self.achievements.exists(UserAchievement.record_id(user_id, achievement_id))

    async def check_and_unlock(
        self,
        user_id: str,
        stats: UserStats,
        now: datetime | None = None,
    ) -> list[UnlockedAchievement]:
        """Persist every catalog achievement `stats` now qualifies for.

        Returns only the achievements unlocked by this call. Re-running with
        the same stats unlocks nothing.
        """
        owned = {a.achievement_id for a in await self.get_user_achievements(user_id)}
        qualifying = [
            definition
            for definition in self.catalog
            if definition.id not in owned and evaluate(definition.unlock_rule, stats)
        ]
        if not qualifying:
            return []

        timestamp = to_millis(now or utcnow())
        candidates = [
            UserAchievement(
                id=UserAchievement.record_id(user_id, definition.id),
                user_id=user_id,
                achievement_id=definition.id,
                unlocked_at=timestamp,
            )
            for definition in qualifying
        ]

        def _append(records: list[UserAchievement]) -> tuple[list[UserAchievement] | None, list[UserAchievement]]:
            present = {record.id for record in records}
            fresh = [record for record in candidates if record.id not in present]
            return ([*records, *fresh] if fresh else None), fresh

        created = await self.achievements.transform(_append)
        if not created:
            return []

        created_ids = [record.achievement_id for record in created]
        await self.ledger.update_stats(user_id, _mark_unlocked(created_ids))
        logger.info("User %s unlocked achievements: %s", user_id, created_ids)

        by_id = {definition.id: definition for definition in qualifying}
        return [_unlocked(by_id[record.achievement_id], record) for record in created]

    async def unlock(
        self,
        user_id: str,
        achievement_id: str,
        progress: float | None = None,
        now: datetime | None = None,
    ) -> UserAchievement:
        """Unlock one achievement directly. Returns the existing record if already unlocked."""
        if self.catalog.get(achievement_id) is None:
            msg = f"Unknown achievement: {achievement_id}"
            raise KeyError(msg)

        record = UserAchievement(
            id=UserAchievement.record_id(user_id, achievement_id),
            user_id=user_id,
            achievement_id=achievement_id,
            unlocked_at=to_millis(now or utcnow()),
            progress=progress,
        )

        def _append(records: list[UserAchievement]) -> tuple[list[UserAchievement] | None, UserAchievement]:
            for existing in records:
                if existing.id == record.id:
                    return None, existing
            return [*records, record], record

        stored = await self.achievements.transform(_append)
        if stored is record:
            await self.ledger.update_stats(user_id, _mark_unlocked([achievement_id]))
        return stored

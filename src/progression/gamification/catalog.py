"""Achievement catalog: static definitions supplied by configuration."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from progression.config import get_settings
from progression.gamification.rules import UnlockRule

logger = logging.getLogger(__name__)


class AchievementDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    description: str = ""
    category: str
    tier: str = "bronze"
    unlock_rule: UnlockRule = Field(alias="unlockRule")
    hidden: bool = False


DEFAULT_ACHIEVEMENTS: list[dict] = [
    # Course milestones
    {
        "id": "first-course",
        "title": "First Steps",
        "description": "Complete your first course",
        "category": "course",
        "tier": "bronze",
        "unlockRule": {"kind": "count_at_least", "counter": "courses", "threshold": 1},
    },
    {
        "id": "course-explorer",
        "title": "Explorer",
        "description": "Complete 5 courses",
        "category": "course",
        "tier": "silver",
        "unlockRule": {"kind": "count_at_least", "counter": "courses", "threshold": 5},
    },
    {
        "id": "course-master",
        "title": "Course Master",
        "description": "Complete 10 courses",
        "category": "course",
        "tier": "gold",
        "unlockRule": {"kind": "count_at_least", "counter": "courses", "threshold": 10},
    },
    # Module milestones
    {
        "id": "module-10",
        "title": "Getting Started",
        "description": "Complete 10 modules",
        "category": "milestone",
        "tier": "bronze",
        "unlockRule": {"kind": "count_at_least", "counter": "modules", "threshold": 10},
    },
    {
        "id": "module-50",
        "title": "Dedicated Learner",
        "description": "Complete 50 modules",
        "category": "milestone",
        "tier": "silver",
        "unlockRule": {"kind": "count_at_least", "counter": "modules", "threshold": 50},
    },
    # Assessments
    {
        "id": "assessment-specialist-5",
        "title": "Assessment Specialist",
        "description": "Pass 5 assessments",
        "category": "assessment",
        "tier": "silver",
        "unlockRule": {"kind": "count_at_least", "counter": "assessments", "threshold": 5},
    },
    {
        "id": "high-achiever",
        "title": "High Achiever",
        "description": "Keep an average score of 90 or more over at least 3 passed assessments",
        "category": "assessment",
        "tier": "gold",
        "unlockRule": {
            "kind": "all_of",
            "rules": [
                {"kind": "count_at_least", "counter": "assessments", "threshold": 3},
                {"kind": "average_score_at_least", "threshold": 90},
            ],
        },
    },
    # Streaks
    {
        "id": "streak-3",
        "title": "On a Roll",
        "description": "Learn 3 days in a row",
        "category": "streak",
        "tier": "bronze",
        "unlockRule": {"kind": "streak_at_least", "threshold": 3},
    },
    {
        "id": "streak-7",
        "title": "Week Warrior",
        "description": "Learn 7 days in a row",
        "category": "streak",
        "tier": "silver",
        "unlockRule": {"kind": "streak_at_least", "threshold": 7},
    },
    {
        "id": "streak-30",
        "title": "Unstoppable",
        "description": "Learn 30 days in a row",
        "category": "streak",
        "tier": "gold",
        "unlockRule": {"kind": "streak_at_least", "threshold": 30},
        "hidden": True,
    },
    # XP and levels
    {
        "id": "xp-1000",
        "title": "Thousand Club",
        "description": "Earn 1,000 XP",
        "category": "xp",
        "tier": "silver",
        "unlockRule": {"kind": "xp_at_least", "threshold": 1000},
    },
    {
        "id": "level-5",
        "title": "Rising Star",
        "description": "Reach level 5",
        "category": "xp",
        "tier": "bronze",
        "unlockRule": {"kind": "level_at_least", "threshold": 5},
    },
    {
        "id": "level-20",
        "title": "Veteran",
        "description": "Reach level 20",
        "category": "xp",
        "tier": "platinum",
        "unlockRule": {
            "kind": "any_of",
            "rules": [
                {"kind": "level_at_least", "threshold": 20},
                {"kind": "xp_at_least", "threshold": 3506},
            ],
        },
        "hidden": True,
    },
]

_definitions_adapter = TypeAdapter(list[AchievementDefinition])


class AchievementCatalog:
    """Read-only set of achievement definitions, in declaration order."""

    def __init__(self, definitions: Iterable[AchievementDefinition]) -> None:
        self._by_id: dict[str, AchievementDefinition] = {}
        for definition in definitions:
            if definition.id in self._by_id:
                msg = f"Duplicate achievement id in catalog: {definition.id}"
                raise ValueError(msg)
            self._by_id[definition.id] = definition

    @classmethod
    def from_dicts(cls, items: list[dict]) -> AchievementCatalog:
        return cls(_definitions_adapter.validate_python(items))

    @classmethod
    def from_file(cls, path: str | Path) -> AchievementCatalog:
        """Load a JSON array of definitions."""
        return cls(_definitions_adapter.validate_json(Path(path).read_bytes()))

    def __iter__(self) -> Iterator[AchievementDefinition]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, achievement_id: str) -> AchievementDefinition | None:
        return self._by_id.get(achievement_id)

    def visible(self) -> list[AchievementDefinition]:
        return [d for d in self if not d.hidden]

    def by_category(self, category: str) -> list[AchievementDefinition]:
        return [d for d in self if d.category == category]

    def by_tier(self, tier: str) -> list[AchievementDefinition]:
        return [d for d in self if d.tier == tier]


@lru_cache
def get_catalog() -> AchievementCatalog:
    """Catalog from `achievement_catalog_path`, or the built-in defaults."""
    path = get_settings().achievement_catalog_path
    if path:
        catalog = AchievementCatalog.from_file(path)
        logger.info("Loaded %d achievement definitions from %s", len(catalog), path)
        return catalog
    return AchievementCatalog.from_dicts(DEFAULT_ACHIEVEMENTS)

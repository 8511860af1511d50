"""Achievement unlock rules: a closed set of data-only rule variants.

Rules are stored in the catalog as tagged JSON objects (``{"kind": ...}``)
and evaluated against a user's stats by `evaluate`.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from progression.models import UserStats

COUNTER_FIELDS: dict[str, str] = {
    "courses": "total_courses_completed",
    "modules": "total_modules_completed",
    "assessments": "total_assessments_passed",
}


class XPAtLeast(BaseModel):
    kind: Literal["xp_at_least"] = "xp_at_least"
    threshold: int


class LevelAtLeast(BaseModel):
    kind: Literal["level_at_least"] = "level_at_least"
    threshold: int


class StreakAtLeast(BaseModel):
    kind: Literal["streak_at_least"] = "streak_at_least"
    threshold: int
    longest: bool = False  # compare longest_streak instead of current_streak


class CountAtLeast(BaseModel):
    kind: Literal["count_at_least"] = "count_at_least"
    counter: Literal["courses", "modules", "assessments"]
    threshold: int


class AverageScoreAtLeast(BaseModel):
    kind: Literal["average_score_at_least"] = "average_score_at_least"
    threshold: float


class AllOf(BaseModel):
    kind: Literal["all_of"] = "all_of"
    rules: list[UnlockRule]


class AnyOf(BaseModel):
    kind: Literal["any_of"] = "any_of"
    rules: list[UnlockRule]


UnlockRule = Annotated[
    Union[XPAtLeast, LevelAtLeast, StreakAtLeast, CountAtLeast, AverageScoreAtLeast, AllOf, AnyOf],
    Field(discriminator="kind"),
]

AllOf.model_rebuild()
AnyOf.model_rebuild()


def evaluate(rule: UnlockRule, stats: UserStats) -> bool:
    """Return True if `stats` satisfies `rule`."""
    if isinstance(rule, XPAtLeast):
        return stats.total_xp >= rule.threshold
    if isinstance(rule, LevelAtLeast):
        return stats.level >= rule.threshold
    if isinstance(rule, StreakAtLeast):
        streak = stats.longest_streak if rule.longest else stats.current_streak
        return streak >= rule.threshold
    if isinstance(rule, CountAtLeast):
        return getattr(stats, COUNTER_FIELDS[rule.counter]) >= rule.threshold
    if isinstance(rule, AverageScoreAtLeast):
        # No passed assessment means no meaningful average yet
        return stats.total_assessments_passed > 0 and stats.average_score >= rule.threshold
    if isinstance(rule, AllOf):
        return all(evaluate(child, stats) for child in rule.rules)
    if isinstance(rule, AnyOf):
        return any(evaluate(child, stats) for child in rule.rules)
    msg = f"Unknown unlock rule: {rule!r}"
    raise TypeError(msg)

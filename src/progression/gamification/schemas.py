"""Pydantic result and response models for the progression engine."""

from __future__ import annotations

from pydantic import BaseModel

# --- Engine results ---


class UnlockedAchievement(BaseModel):
    id: str
    title: str
    description: str
    category: str
    tier: str
    unlocked_at: int


class MentorBonus(BaseModel):
    pairing_id: str
    mentor_id: str
    mentee_id: str
    amount: int
    mentor_total_xp: int


class AwardResult(BaseModel):
    new_total_xp: int
    new_level: int
    leveled_up: bool
    previous_level: int
    unlocked: list[UnlockedAchievement] = []
    mentor_bonus: MentorBonus | None = None


class StreakResult(BaseModel):
    current_streak: int
    longest_streak: int
    unlocked: list[UnlockedAchievement] = []


# --- Requests ---


class AwardRequest(BaseModel):
    amount: int
    reason: str
    type: str = "activity"


class PairingRequest(BaseModel):
    mentor_id: str
    mentee_id: str
    assigned_by: str


# --- Responses ---


class LevelInfo(BaseModel):
    level: int
    title: str
    xp_into_level: int
    xp_for_level: int
    next_level: int
    next_title: str


class UserStatsResponse(BaseModel):
    user_id: str
    total_xp: int
    level: LevelInfo
    # Level as last written by an award. Mentor bonuses raise total_xp without
    # touching it, so it can trail level.level until the next award.
    stored_level: int
    current_streak: int
    longest_streak: int
    last_activity_date: int
    total_courses_completed: int
    total_modules_completed: int
    total_assessments_passed: int
    average_score: float
    achievements_unlocked: list[str]


class XPHistoryEntry(BaseModel):
    id: str
    type: str
    amount: int
    label: str
    timestamp: int


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int


class LevelEntry(BaseModel):
    level: int
    title: str
    xp_required: int
    cumulative: int


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]


class AchievementResponse(BaseModel):
    id: str
    title: str
    description: str
    category: str
    tier: str


class AllAchievementsResponse(BaseModel):
    achievements: list[AchievementResponse]


class EarnedAchievementResponse(BaseModel):
    achievement_id: str
    unlocked_at: int
    progress: float | None = None


class UserAchievementsResponse(BaseModel):
    earned: list[EarnedAchievementResponse]
    total_available: int
    total_earned: int


class PairingResponse(BaseModel):
    id: str
    mentor_id: str | None
    mentee_id: str | None
    assigned_at: int
    assigned_by: str
    status: str = "active"

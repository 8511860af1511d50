"""Record models for every collection the engine reads or writes.

Records are stored as camelCase JSON. Fields the engine does not model are
kept (``extra="allow"``) so a read-modify-write never strips data written by
other consumers of the same collection.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# Collection names
USER_STATS = "user-stats"
USER_ACHIEVEMENTS = "user-achievements"
XP_EVENTS = "xp-events"
MENTORSHIP_PAIRINGS = "mentorship-pairings"
USER_PROFILES = "user-profiles"
COURSES = "courses"
TEAMS = "teams"
USER_GROUPS = "user-groups"
USER_PROGRESS = "user-progress"


class Record(BaseModel):
    """Any entity with a unique string id within its collection."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class OwnedRecord(Record):
    """A record that belongs to one user."""

    user_id: str = Field(alias="userId")


# ---------------------------------------------------------------------------
# Progression
# ---------------------------------------------------------------------------


class UserStats(Record):
    """Per-user progression state. The record id is the user id."""

    total_xp: int = Field(default=0, alias="totalXP")
    level: int = 1
    current_streak: int = Field(default=0, alias="currentStreak")
    longest_streak: int = Field(default=0, alias="longestStreak")
    last_activity_date: int = Field(default=0, alias="lastActivityDate")
    total_courses_completed: int = Field(default=0, alias="totalCoursesCompleted")
    total_modules_completed: int = Field(default=0, alias="totalModulesCompleted")
    total_assessments_passed: int = Field(default=0, alias="totalAssessmentsPassed")
    average_score: float = Field(default=0.0, alias="averageScore")
    achievements_unlocked: list[str] = Field(default_factory=list, alias="achievementsUnlocked")

    @property
    def user_id(self) -> str:
        return self.id


class UserAchievement(OwnedRecord):
    achievement_id: str = Field(alias="achievementId")
    unlocked_at: int = Field(alias="unlockedAt")
    progress: float | None = None

    @staticmethod
    def record_id(user_id: str, achievement_id: str) -> str:
        """Deterministic id: one record per (user, achievement) pair."""
        return f"{user_id}:{achievement_id}"


class XPEvent(OwnedRecord):
    type: str
    amount: int
    timestamp: int
    label: str


class MentorshipPairing(Record):
    # Missing references are kept so the integrity sweep can report them.
    mentor_id: str | None = Field(default=None, alias="mentorId")
    mentee_id: str | None = Field(default=None, alias="menteeId")
    assigned_at: int = Field(alias="assignedAt")
    assigned_by: str = Field(alias="assignedBy")
    status: Literal["active", "removed"] = "active"


# ---------------------------------------------------------------------------
# Reference collections (owned by other parts of the platform)
# ---------------------------------------------------------------------------


class UserProfile(Record):
    pass


class Course(Record):
    pass


class Team(Record):
    name: str = ""
    member_ids: list[str] = Field(default_factory=list, alias="memberIds")


class UserGroup(Record):
    name: str = ""
    user_ids: list[str] = Field(default_factory=list, alias="userIds")
    course_ids: list[str] = Field(default_factory=list, alias="courseIds")


class UserProgress(Record):
    user_id: str | None = Field(default=None, alias="userId")
    course_id: str | None = Field(default=None, alias="courseId")
    status: str = "not-started"

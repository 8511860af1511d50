"""Pydantic report models for the integrity sweep."""

from __future__ import annotations

from pydantic import BaseModel


class IntegrityReport(BaseModel):
    is_valid: bool
    issues: list[str] = []
    warnings: list[str] = []


class TeamCleanup(BaseModel):
    teams_processed: int = 0
    ghost_members_removed: int = 0
    teams_updated: list[str] = []


class GroupCleanup(BaseModel):
    groups_processed: int = 0
    ghost_users_removed: int = 0
    ghost_courses_removed: int = 0
    groups_updated: list[str] = []


class MentorshipCleanup(BaseModel):
    pairings_processed: int = 0
    invalid_pairings_removed: int = 0
    pairings_removed: list[str] = []


class ProgressCleanup(BaseModel):
    progress_records_processed: int = 0
    invalid_progress_removed: int = 0
    records_removed: list[str] = []


class CleanupDetails(BaseModel):
    teams: TeamCleanup | None = None
    groups: GroupCleanup | None = None
    mentorships: MentorshipCleanup | None = None
    progress: ProgressCleanup | None = None


class MigrationReport(BaseModel):
    timestamp: int
    total_issues_found: int = 0
    issues_fixed: int = 0
    errors: list[str] = []
    details: CleanupDetails = CleanupDetails()


class LedgerDrift(BaseModel):
    """Stored total vs. the sum of the user's XP events. drift = stored - ledger."""

    user_id: str
    stored_total: int
    ledger_total: int
    drift: int


class XPAuditResponse(BaseModel):
    drifted: list[LedgerDrift]
    total_drifted: int

"""Progression API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from progression.dependencies import get_engine
from progression.gamification.engine import ProgressionEngine
from progression.gamification.level_thresholds import compute_level, level_table
from progression.gamification.schemas import (
    AchievementResponse,
    AllAchievementsResponse,
    AllLevelsResponse,
    AwardRequest,
    AwardResult,
    EarnedAchievementResponse,
    LevelEntry,
    LevelInfo,
    PairingRequest,
    PairingResponse,
    StreakResult,
    UserAchievementsResponse,
    UserStatsResponse,
    XPHistoryEntry,
    XPHistoryResponse,
)
from progression.models import MentorshipPairing, UserStats

router = APIRouter(prefix="/api/v1", tags=["Progression"])


def _stats_response(stats: UserStats) -> UserStatsResponse:
    return UserStatsResponse(
        user_id=stats.user_id,
        total_xp=stats.total_xp,
        level=LevelInfo(**compute_level(stats.total_xp)),
        stored_level=stats.level,
        current_streak=stats.current_streak,
        longest_streak=stats.longest_streak,
        last_activity_date=stats.last_activity_date,
        total_courses_completed=stats.total_courses_completed,
        total_modules_completed=stats.total_modules_completed,
        total_assessments_passed=stats.total_assessments_passed,
        average_score=stats.average_score,
        achievements_unlocked=stats.achievements_unlocked,
    )


def _pairing_response(pairing: MentorshipPairing) -> PairingResponse:
    return PairingResponse(
        id=pairing.id,
        mentor_id=pairing.mentor_id,
        mentee_id=pairing.mentee_id,
        assigned_at=pairing.assigned_at,
        assigned_by=pairing.assigned_by,
        status=pairing.status,
    )


# ── Catalog ──


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels():
    """Get the level curve."""
    return AllLevelsResponse(levels=[LevelEntry(**row) for row in level_table()])


@router.get("/achievements", response_model=AllAchievementsResponse)
async def list_achievements(engine: ProgressionEngine = Depends(get_engine)):
    """Get all visible achievement definitions."""
    return AllAchievementsResponse(
        achievements=[
            AchievementResponse(
                id=d.id,
                title=d.title,
                description=d.description,
                category=d.category,
                tier=d.tier,
            )
            for d in engine.catalog.visible()
        ]
    )


# ── Per-user progression ──


@router.get("/users/{user_id}/stats", response_model=UserStatsResponse)
async def get_user_stats(user_id: str, engine: ProgressionEngine = Depends(get_engine)):
    """Get a user's stats, creating them on first read."""
    return _stats_response(await engine.get_user_stats(user_id))


@router.post("/users/{user_id}/xp", response_model=AwardResult)
async def award_xp(user_id: str, body: AwardRequest, engine: ProgressionEngine = Depends(get_engine)):
    """Award XP and report level-ups, unlocks and the mentor bonus."""
    return await engine.award(user_id, body.amount, body.reason, body.type)


@router.post("/users/{user_id}/streak", response_model=StreakResult)
async def touch_streak(user_id: str, engine: ProgressionEngine = Depends(get_engine)):
    """Record today's activity for the streak."""
    return await engine.touch_streak(user_id)


@router.get("/users/{user_id}/xp-events", response_model=XPHistoryResponse)
async def get_xp_events(
    user_id: str,
    limit: int | None = Query(None, ge=1, le=500),
    engine: ProgressionEngine = Depends(get_engine),
):
    """Get XP history, newest first."""
    events = await engine.ledger.get_xp_events(user_id)
    shown = events[:limit] if limit is not None else events
    return XPHistoryResponse(
        entries=[
            XPHistoryEntry(id=e.id, type=e.type, amount=e.amount, label=e.label, timestamp=e.timestamp)
            for e in shown
        ],
        total=len(events),
    )


@router.get("/users/{user_id}/achievements", response_model=UserAchievementsResponse)
async def get_user_achievements(user_id: str, engine: ProgressionEngine = Depends(get_engine)):
    """Get a user's unlocked achievements, newest first."""
    earned = sorted(
        await engine.unlocker.get_user_achievements(user_id),
        key=lambda a: a.unlocked_at,
        reverse=True,
    )
    return UserAchievementsResponse(
        earned=[
            EarnedAchievementResponse(
                achievement_id=a.achievement_id,
                unlocked_at=a.unlocked_at,
                progress=a.progress,
            )
            for a in earned
        ],
        total_available=len(engine.catalog),
        total_earned=len(earned),
    )


# ── Mentorships ──


@router.post("/mentorships", response_model=PairingResponse, status_code=201)
async def create_pairing(body: PairingRequest, engine: ProgressionEngine = Depends(get_engine)):
    """Pair a mentee with a mentor. 409 if the mentee already has one."""
    pairing = await engine.mentorships.create_pairing(body.mentor_id, body.mentee_id, body.assigned_by)
    return _pairing_response(pairing)


@router.delete("/mentorships/{pairing_id}", response_model=PairingResponse)
async def remove_pairing(pairing_id: str, engine: ProgressionEngine = Depends(get_engine)):
    """End a pairing (soft delete)."""
    return _pairing_response(await engine.mentorships.remove_pairing(pairing_id))

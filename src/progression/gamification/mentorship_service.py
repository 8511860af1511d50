"""Mentorship pairings and the mentor XP bonus."""

from __future__ import annotations

import logging
from datetime import datetime

from progression.errors import ActivePairingExistsError, DuplicateIdError
from progression.gamification.schemas import MentorBonus
from progression.gamification.xp_service import ProgressionLedger
from progression.models import MentorshipPairing
from progression.store.records import RecordStore
from progression.time_utils import to_millis, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MENTOR_BONUS_PERCENT = 10


def mentor_bonus(xp_awarded: int, percent: int = DEFAULT_MENTOR_BONUS_PERCENT) -> int:
    """Integer bonus for the mentor: floor(xp * percent / 100)."""
    return (xp_awarded * percent) // 100


class MentorshipService:
    """Pairings between mentors and mentees. A mentee has at most one active mentor."""

    def __init__(self, pairings: RecordStore[MentorshipPairing]) -> None:
        self.pairings = pairings

    async def get_active_mentee_pairing(self, mentee_id: str) -> MentorshipPairing | None:
        active = await self.pairings.find(lambda p: p.mentee_id == mentee_id and p.status == "active")
        return active[0] if active else None

    async def get_active_mentor_pairings(self, mentor_id: str) -> list[MentorshipPairing]:
        return await self.pairings.find(lambda p: p.mentor_id == mentor_id and p.status == "active")

    async def get_mentees(self, mentor_id: str) -> list[str]:
        return [p.mentee_id for p in await self.get_active_mentor_pairings(mentor_id) if p.mentee_id]

    async def create_pairing(
        self,
        mentor_id: str,
        mentee_id: str,
        assigned_by: str,
        now: datetime | None = None,
    ) -> MentorshipPairing:
        """Pair a mentee with a mentor.

        Raises ActivePairingExistsError if the mentee already has an active
        pairing. The check and the append happen in one versioned write.
        """
        assigned_at = to_millis(now or utcnow())
        pairing = MentorshipPairing(
            id=f"{mentor_id}-{mentee_id}-{assigned_at}",
            mentor_id=mentor_id,
            mentee_id=mentee_id,
            assigned_at=assigned_at,
            assigned_by=assigned_by,
        )

        def _append(records: list[MentorshipPairing]) -> tuple[list[MentorshipPairing], MentorshipPairing]:
            for existing in records:
                if existing.mentee_id == mentee_id and existing.status == "active":
                    raise ActivePairingExistsError(mentee_id, existing.id)
                if existing.id == pairing.id:
                    raise DuplicateIdError(self.pairings.collection, pairing.id)
            return [*records, pairing], pairing

        created = await self.pairings.transform(_append)
        logger.info("Paired mentee %s with mentor %s (by %s)", mentee_id, mentor_id, assigned_by)
        return created

    async def remove_pairing(self, pairing_id: str) -> MentorshipPairing:
        """Soft-delete a pairing. Raises RecordNotFoundError for unknown ids."""
        return await self.pairings.update(pairing_id, {"status": "removed"})


class RewardPropagator:
    """Credits a mentee's active mentor with a share of the mentee's XP."""

    def __init__(
        self,
        mentorships: MentorshipService,
        ledger: ProgressionLedger,
        percent: int = DEFAULT_MENTOR_BONUS_PERCENT,
    ) -> None:
        self.mentorships = mentorships
        self.ledger = ledger
        self.percent = percent

    async def propagate(self, mentee_id: str, xp_awarded: int) -> MentorBonus | None:
        """Credit the mentor's total. No event, level change or unlock check.

        Returns None when the mentee has no active mentor, the pairing has lost
        its mentor reference, or the bonus rounds to zero or less.
        """
        bonus = mentor_bonus(xp_awarded, self.percent)
        if bonus <= 0:
            return None

        pairing = await self.mentorships.get_active_mentee_pairing(mentee_id)
        if pairing is None or not pairing.mentor_id:
            return None

        mentor_stats = await self.ledger.increment_total_xp(pairing.mentor_id, bonus)
        logger.info("Mentor %s earned %d bonus XP from mentee %s", pairing.mentor_id, bonus, mentee_id)
        return MentorBonus(
            pairing_id=pairing.id,
            mentor_id=pairing.mentor_id,
            mentee_id=mentee_id,
            amount=bonus,
            mentor_total_xp=mentor_stats.total_xp,
        )

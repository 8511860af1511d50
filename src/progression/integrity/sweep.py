"""Referential integrity sweep over collections the store cannot constrain.

Teams, groups, mentorship pairings and progress rows reference user and
course ids that may since have been deleted. `validate` reports dangling
references; `clean` repairs them (list fields are filtered, records with a
dangling singular reference are deleted) under an exclusive maintenance lock.
"""

from __future__ import annotations

import itertools
import logging
from collections import Counter

from progression.config import Settings, get_settings
from progression.errors import CorruptRecordError, InvalidReferenceError, StoreError
from progression.integrity.schemas import (
    CleanupDetails,
    GroupCleanup,
    IntegrityReport,
    LedgerDrift,
    MentorshipCleanup,
    MigrationReport,
    ProgressCleanup,
    TeamCleanup,
)
from progression.models import (
    COURSES,
    MENTORSHIP_PAIRINGS,
    TEAMS,
    USER_GROUPS,
    USER_PROFILES,
    USER_PROGRESS,
    USER_STATS,
    XP_EVENTS,
    Course,
    MentorshipPairing,
    Team,
    UserGroup,
    UserProfile,
    UserProgress,
    UserStats,
    XPEvent,
)
from progression.store.backend import CollectionBackend
from progression.store.records import RecordStore
from progression.time_utils import to_millis, utcnow

logger = logging.getLogger(__name__)

SWEEP_LOCK = "integrity-sweep"

_ISSUE_TEMPLATES: dict[tuple[str, str], str] = {
    (TEAMS, "memberIds"): 'Team "{name}" has {count} invalid member references',
    (USER_GROUPS, "userIds"): 'Group "{name}" has {count} invalid user references',
    (USER_GROUPS, "courseIds"): 'Group "{name}" has {count} invalid course references',
    (MENTORSHIP_PAIRINGS, "mentorId"): "Mentorship pairing {id} has invalid mentor reference",
    (MENTORSHIP_PAIRINGS, "menteeId"): "Mentorship pairing {id} has invalid mentee reference",
    (USER_PROGRESS, "userId"): "Progress record {id} has invalid user reference",
    (USER_PROGRESS, "courseId"): "Progress record {id} has invalid course reference",
}


def describe(findings: list[InvalidReferenceError]) -> list[str]:
    """One human-readable issue per (record, field), in scan order."""
    issues = []
    for (collection, record_id, field), grouped in itertools.groupby(
        findings, key=lambda f: (f.collection, f.record_id, f.field)
    ):
        group = list(grouped)
        template = _ISSUE_TEMPLATES.get((collection, field), "{collection} record {id} has invalid {field} reference")
        issues.append(template.format(
            name=group[0].record_name or record_id,
            id=record_id,
            count=len(group),
            collection=collection,
            field=field,
        ))
    return issues


class IntegritySweep:
    """Validates and repairs cross-collection user/course references."""

    def __init__(self, backend: CollectionBackend, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self.backend = backend
        self.lock_timeout = settings.sweep_lock_timeout_seconds

        options = {"timeout": settings.store_timeout_seconds, "max_retries": settings.store_max_retries}
        self.profiles = RecordStore(backend, USER_PROFILES, UserProfile, **options)
        self.courses = RecordStore(backend, COURSES, Course, **options)
        self.teams = RecordStore(backend, TEAMS, Team, **options)
        self.groups = RecordStore(backend, USER_GROUPS, UserGroup, **options)
        self.pairings = RecordStore(backend, MENTORSHIP_PAIRINGS, MentorshipPairing, **options)
        self.progress = RecordStore(backend, USER_PROGRESS, UserProgress, **options)
        self.stats = RecordStore(backend, USER_STATS, UserStats, **options)
        self.events = RecordStore(backend, XP_EVENTS, XPEvent, **options)

    async def _valid_ids(self) -> tuple[set[str], set[str]]:
        users = {p.id for p in await self.profiles.get_all()}
        courses = {c.id for c in await self.courses.get_all()}
        return users, courses

    # ------------------------------------------------------------------
    # Validate
    # ------------------------------------------------------------------

    async def _scan_teams(self, users: set[str], _courses: set[str]) -> list[InvalidReferenceError]:
        return [
            InvalidReferenceError(TEAMS, team.id, "memberIds", member, team.name)
            for team in await self.teams.get_all()
            for member in team.member_ids if member not in users
        ]

    async def _scan_groups(self, users: set[str], courses: set[str]) -> list[InvalidReferenceError]:
        findings: list[InvalidReferenceError] = []
        for group in await self.groups.get_all():
            findings += [
                InvalidReferenceError(USER_GROUPS, group.id, "userIds", user, group.name)
                for user in group.user_ids if user not in users
            ]
            findings += [
                InvalidReferenceError(USER_GROUPS, group.id, "courseIds", course, group.name)
                for course in group.course_ids if course not in courses
            ]
        return findings

    async def _scan_mentorships(self, users: set[str], _courses: set[str]) -> list[InvalidReferenceError]:
        findings: list[InvalidReferenceError] = []
        for pairing in await self.pairings.get_all():
            for field, ref in (("mentorId", pairing.mentor_id), ("menteeId", pairing.mentee_id)):
                if ref not in users:
                    findings.append(InvalidReferenceError(MENTORSHIP_PAIRINGS, pairing.id, field, ref or ""))
        return findings

    async def _scan_progress(self, users: set[str], courses: set[str]) -> list[InvalidReferenceError]:
        findings: list[InvalidReferenceError] = []
        for row in await self.progress.get_all():
            if row.user_id not in users:
                findings.append(InvalidReferenceError(USER_PROGRESS, row.id, "userId", row.user_id or ""))
            if row.course_id not in courses:
                findings.append(InvalidReferenceError(USER_PROGRESS, row.id, "courseId", row.course_id or ""))
        return findings

    def _scanners(self):
        return [self._scan_teams, self._scan_groups, self._scan_mentorships, self._scan_progress]

    async def scan(self) -> list[InvalidReferenceError]:
        """Every dangling reference, teams -> groups -> mentorships -> progress.

        A missing singular reference counts as dangling. Raises
        CorruptRecordError if a collection holds a record that cannot be parsed.
        """
        users, courses = await self._valid_ids()
        findings: list[InvalidReferenceError] = []
        for scanner in self._scanners():
            findings += await scanner(users, courses)
        return findings

    async def validate(self) -> IntegrityReport:
        """Read-only integrity check. Unparseable records are reported as issues."""
        users, courses = await self._valid_ids()
        issues: list[str] = []
        for scanner in self._scanners():
            try:
                issues += describe(await scanner(users, courses))
            except CorruptRecordError as exc:
                issues.append(f"Record {exc.record_id or '<no id>'} in {exc.collection} is malformed")

        try:
            pairings = await self.pairings.get_all()
        except CorruptRecordError:
            pairings = []
        active = Counter(p.mentee_id for p in pairings if p.status == "active" and p.mentee_id)
        warnings = [
            f"Mentee {mentee} has {count} active mentorship pairings"
            for mentee, count in active.items() if count > 1
        ]

        if issues:
            logger.warning("Integrity check found %d issues", len(issues))
        else:
            logger.info("Integrity check passed")
        return IntegrityReport(is_valid=not issues, issues=issues, warnings=warnings)

    # ------------------------------------------------------------------
    # Clean
    # ------------------------------------------------------------------

    async def clean_teams(self, users: set[str]) -> TeamCleanup:
        def _filter(teams: list[Team]) -> tuple[list[Team] | None, TeamCleanup]:
            result = TeamCleanup(teams_processed=len(teams))
            kept = []
            for team in teams:
                valid = [m for m in team.member_ids if m in users]
                removed = len(team.member_ids) - len(valid)
                if removed:
                    team = team.model_copy(update={"member_ids": valid})
                    result.ghost_members_removed += removed
                    result.teams_updated.append(team.id)
                kept.append(team)
            return (kept if result.teams_updated else None), result

        result = await self.teams.transform(_filter)
        logger.info("Teams cleaned: %d/%d", len(result.teams_updated), result.teams_processed)
        return result

    async def clean_groups(self, users: set[str], courses: set[str]) -> GroupCleanup:
        def _filter(groups: list[UserGroup]) -> tuple[list[UserGroup] | None, GroupCleanup]:
            result = GroupCleanup(groups_processed=len(groups))
            kept = []
            for group in groups:
                valid_users = [u for u in group.user_ids if u in users]
                valid_courses = [c for c in group.course_ids if c in courses]
                removed_users = len(group.user_ids) - len(valid_users)
                removed_courses = len(group.course_ids) - len(valid_courses)
                if removed_users or removed_courses:
                    group = group.model_copy(update={"user_ids": valid_users, "course_ids": valid_courses})
                    result.ghost_users_removed += removed_users
                    result.ghost_courses_removed += removed_courses
                    result.groups_updated.append(group.id)
                kept.append(group)
            return (kept if result.groups_updated else None), result

        result = await self.groups.transform(_filter)
        logger.info("Groups cleaned: %d/%d", len(result.groups_updated), result.groups_processed)
        return result

    async def clean_mentorships(self, users: set[str]) -> MentorshipCleanup:
        def _filter(
            pairings: list[MentorshipPairing],
        ) -> tuple[list[MentorshipPairing] | None, MentorshipCleanup]:
            kept = [p for p in pairings if p.mentor_id in users and p.mentee_id in users]
            removed = [p.id for p in pairings if p.mentor_id not in users or p.mentee_id not in users]
            result = MentorshipCleanup(
                pairings_processed=len(pairings),
                invalid_pairings_removed=len(removed),
                pairings_removed=removed,
            )
            return (kept if removed else None), result

        result = await self.pairings.transform(_filter)
        logger.info("Mentorships cleaned: removed %d/%d", result.invalid_pairings_removed, result.pairings_processed)
        return result

    async def clean_progress(self, users: set[str], courses: set[str]) -> ProgressCleanup:
        def _filter(rows: list[UserProgress]) -> tuple[list[UserProgress] | None, ProgressCleanup]:
            kept = [r for r in rows if r.user_id in users and r.course_id in courses]
            removed = [r.id for r in rows if r.user_id not in users or r.course_id not in courses]
            result = ProgressCleanup(
                progress_records_processed=len(rows),
                invalid_progress_removed=len(removed),
                records_removed=removed,
            )
            return (kept if removed else None), result

        result = await self.progress.transform(_filter)
        logger.info(
            "Progress records cleaned: removed %d/%d",
            result.invalid_progress_removed, result.progress_records_processed,
        )
        return result

    async def clean(self) -> MigrationReport:
        """Repair every dangling reference.

        Collections are repaired independently: a store failure on one is
        recorded in `errors` and the sweep moves on to the next. Raises
        MaintenanceLockError if another sweep is running.
        """
        report = MigrationReport(timestamp=to_millis(utcnow()))

        async with self.backend.lock(SWEEP_LOCK, self.lock_timeout):
            users, courses = await self._valid_ids()
            steps = [
                ("teams", lambda: self.clean_teams(users), lambda r: r.ghost_members_removed),
                (
                    "groups",
                    lambda: self.clean_groups(users, courses),
                    lambda r: r.ghost_users_removed + r.ghost_courses_removed,
                ),
                ("mentorships", lambda: self.clean_mentorships(users), lambda r: r.invalid_pairings_removed),
                ("progress", lambda: self.clean_progress(users, courses), lambda r: r.invalid_progress_removed),
            ]
            details = {}
            for name, run, fixed in steps:
                try:
                    result = await run()
                except StoreError as exc:
                    logger.exception("Cleaning %s failed", name)
                    report.errors.append(f"{name}: {exc}")
                    continue
                details[name] = result
                report.total_issues_found += fixed(result)
                report.issues_fixed += fixed(result)

        report.details = CleanupDetails(**details)
        logger.info(
            "Cleanup completed: %d issues found, %d fixed, %d errors",
            report.total_issues_found, report.issues_fixed, len(report.errors),
        )
        return report

    # ------------------------------------------------------------------
    # XP audit
    # ------------------------------------------------------------------

    async def audit_xp_totals(self) -> list[LedgerDrift]:
        """Users whose stored totalXP differs from the sum of their XP events.

        Report only. Mentor bonuses credit the total without an event, so a
        positive drift is expected for mentors; a negative drift means an
        award's stats write was lost.
        """
        ledger: dict[str, int] = {}
        for event in await self.events.get_all():
            ledger[event.user_id] = ledger.get(event.user_id, 0) + event.amount
        stored = {s.id: s.total_xp for s in await self.stats.get_all()}

        drifted = []
        for user_id in sorted(stored.keys() | ledger.keys()):
            stored_total = stored.get(user_id, 0)
            ledger_total = ledger.get(user_id, 0)
            if stored_total != ledger_total:
                drifted.append(LedgerDrift(
                    user_id=user_id,
                    stored_total=stored_total,
                    ledger_total=ledger_total,
                    drift=stored_total - ledger_total,
                ))
        if drifted:
            logger.warning("XP audit: %d users drifted from their event ledger", len(drifted))
        return drifted

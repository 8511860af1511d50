"""Integrity sweep tests: validation wording, repair rules, idempotence, locking."""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio

from progression.errors import MaintenanceLockError, StoreUnavailableError
from progression.integrity.sweep import SWEEP_LOCK, IntegritySweep
from progression.models import (
    COURSES,
    MENTORSHIP_PAIRINGS,
    TEAMS,
    USER_GROUPS,
    USER_PROFILES,
    USER_PROGRESS,
)
from progression.store.backend import CollectionSnapshot, InMemoryBackend


async def _seed(backend: InMemoryBackend) -> None:
    await backend.save(USER_PROFILES, [{"id": "u1"}, {"id": "u2"}, {"id": "u3"}], 0)
    await backend.save(COURSES, [{"id": "c1"}, {"id": "c2"}], 0)
    await backend.save(TEAMS, [
        {"id": "t1", "name": "Alpha", "memberIds": ["u3", "ghost1", "u1", "ghost2", "u2"]},
        {"id": "t2", "name": "Beta", "memberIds": ["u1"]},
    ], 0)
    await backend.save(USER_GROUPS, [
        {"id": "g1", "name": "Cohort", "userIds": ["u2", "ghost"], "courseIds": ["c9", "c1"]},
    ], 0)
    await backend.save(MENTORSHIP_PAIRINGS, [
        {"id": "p1", "mentorId": "u1", "menteeId": "u2", "assignedAt": 1, "assignedBy": "u3", "status": "active"},
        {"id": "p2", "mentorId": "ghost", "menteeId": "u3", "assignedAt": 1, "assignedBy": "u1", "status": "active"},
    ], 0)
    await backend.save(USER_PROGRESS, [
        {"id": "r1", "userId": "u1", "courseId": "c1", "status": "in-progress"},
        {"id": "r2", "userId": "u1", "courseId": "c9", "status": "completed"},
        {"id": "r3", "userId": "ghost", "courseId": "c2", "status": "in-progress"},
    ], 0)


@pytest_asyncio.fixture
async def seeded(backend) -> InMemoryBackend:
    await _seed(backend)
    return backend


class TestValidate:
    @pytest.mark.asyncio
    async def test_empty_store_is_valid(self, sweep):
        report = await sweep.validate()
        assert report.is_valid
        assert report.issues == []

    @pytest.mark.asyncio
    async def test_reports_every_dangling_reference(self, seeded, sweep):
        report = await sweep.validate()
        assert not report.is_valid
        assert report.issues == [
            'Team "Alpha" has 2 invalid member references',
            'Group "Cohort" has 1 invalid user references',
            'Group "Cohort" has 1 invalid course references',
            "Mentorship pairing p2 has invalid mentor reference",
            "Progress record r2 has invalid course reference",
            "Progress record r3 has invalid user reference",
        ]

    @pytest.mark.asyncio
    async def test_validate_does_not_write(self, seeded, sweep):
        before = {name: (await seeded.load(name)).version for name in (TEAMS, USER_GROUPS, USER_PROGRESS)}
        await sweep.validate()
        after = {name: (await seeded.load(name)).version for name in (TEAMS, USER_GROUPS, USER_PROGRESS)}
        assert before == after

    @pytest.mark.asyncio
    async def test_scan_findings_carry_references(self, seeded, sweep):
        findings = await sweep.scan()
        team_refs = [f.reference for f in findings if f.collection == TEAMS]
        assert team_refs == ["ghost1", "ghost2"]

    @pytest.mark.asyncio
    async def test_multiple_active_pairings_warned(self, backend, sweep):
        await backend.save(USER_PROFILES, [{"id": "u1"}, {"id": "u2"}, {"id": "u3"}], 0)
        await backend.save(MENTORSHIP_PAIRINGS, [
            {"id": "p1", "mentorId": "u1", "menteeId": "u3", "assignedAt": 1, "assignedBy": "x"},
            {"id": "p2", "mentorId": "u2", "menteeId": "u3", "assignedAt": 2, "assignedBy": "x"},
        ], 0)
        report = await sweep.validate()
        assert report.is_valid
        assert report.warnings == ["Mentee u3 has 2 active mentorship pairings"]


class TestClean:
    @pytest.mark.asyncio
    async def test_clean_repairs_everything(self, seeded, sweep):
        report = await sweep.clean()

        assert report.errors == []
        assert report.total_issues_found == 7
        assert report.issues_fixed == 7
        assert report.details.teams.ghost_members_removed == 2
        assert report.details.teams.teams_updated == ["t1"]
        assert report.details.groups.ghost_users_removed == 1
        assert report.details.groups.ghost_courses_removed == 1
        assert report.details.mentorships.pairings_removed == ["p2"]
        assert report.details.progress.records_removed == ["r2", "r3"]

    @pytest.mark.asyncio
    async def test_member_order_preserved(self, seeded, sweep):
        await sweep.clean()
        team = await sweep.teams.get_by_id("t1")
        assert team.member_ids == ["u3", "u1", "u2"]
        group = await sweep.groups.get_by_id("g1")
        assert group.user_ids == ["u2"]
        assert group.course_ids == ["c1"]

    @pytest.mark.asyncio
    async def test_untouched_records_not_rewritten(self, seeded, sweep):
        await sweep.clean()
        assert (await seeded.load(COURSES)).version == 1
        t2 = await sweep.teams.get_by_id("t2")
        assert t2.member_ids == ["u1"]

    @pytest.mark.asyncio
    async def test_idempotent(self, seeded, sweep):
        await sweep.clean()
        versions = {name: (await seeded.load(name)).version for name in (TEAMS, USER_GROUPS, USER_PROGRESS)}

        second = await sweep.clean()
        assert second.total_issues_found == 0
        assert second.issues_fixed == 0
        assert {name: (await seeded.load(name)).version for name in versions} == versions

        assert (await sweep.validate()).is_valid

    @pytest.mark.asyncio
    async def test_lock_held_by_another_sweep(self, seeded, settings):
        sweep = IntegritySweep(seeded, settings.model_copy(update={"sweep_lock_timeout_seconds": 0.05}))
        async with seeded.lock(SWEEP_LOCK, 1.0):
            with pytest.raises(MaintenanceLockError):
                await sweep.clean()

    @pytest.mark.asyncio
    async def test_failing_collection_recorded_and_others_cleaned(self, settings):
        class GroupsDown(InMemoryBackend):
            async def load(self, collection: str) -> CollectionSnapshot:
                if collection == USER_GROUPS:
                    raise StoreUnavailableError(collection, "down")
                return await super().load(collection)

        backend = GroupsDown()
        await _seed(backend)
        report = await IntegritySweep(backend, settings).clean()

        assert len(report.errors) == 1
        assert report.errors[0].startswith("groups:")
        assert report.details.groups is None
        assert report.details.progress.invalid_progress_removed == 2


class TestMalformedRecords:
    @pytest.mark.asyncio
    async def test_missing_singular_references_are_dangling(self, backend, sweep):
        await backend.save(USER_PROFILES, [{"id": "u1"}, {"id": "u2"}], 0)
        await backend.save(COURSES, [{"id": "c1"}], 0)
        await backend.save(USER_PROGRESS, [
            {"id": "r1", "userId": "u1", "courseId": "c1"},
            {"id": "r2", "userId": "u1"},
        ], 0)
        await backend.save(MENTORSHIP_PAIRINGS, [
            {"id": "p1", "menteeId": "u2", "assignedAt": 1, "assignedBy": "u1", "status": "active"},
        ], 0)

        report = await sweep.validate()
        assert report.issues == [
            "Mentorship pairing p1 has invalid mentor reference",
            "Progress record r2 has invalid course reference",
        ]

        cleaned = await sweep.clean()
        assert cleaned.errors == []
        assert cleaned.details.mentorships.pairings_removed == ["p1"]
        assert cleaned.details.progress.records_removed == ["r2"]
        assert [r.id for r in await sweep.progress.get_all()] == ["r1"]
        assert (await sweep.validate()).is_valid

    @pytest.mark.asyncio
    async def test_unparseable_record_reported_by_validate(self, seeded, sweep):
        await seeded.save(MENTORSHIP_PAIRINGS, [{"id": "p9", "mentorId": "u1", "menteeId": "u2"}], 1)

        report = await sweep.validate()
        assert not report.is_valid
        assert "Record p9 in mentorship-pairings is malformed" in report.issues
        assert "Progress record r3 has invalid user reference" in report.issues

    @pytest.mark.asyncio
    async def test_unparseable_record_recorded_and_others_cleaned(self, seeded, sweep):
        await seeded.save(MENTORSHIP_PAIRINGS, [{"id": "p9", "mentorId": "u1", "menteeId": "u2"}], 1)

        report = await sweep.clean()
        assert len(report.errors) == 1
        assert report.errors[0].startswith("mentorships:")
        assert report.details.mentorships is None
        assert report.details.progress.records_removed == ["r2", "r3"]
        assert report.details.teams.teams_updated == ["t1"]


class TestXPAudit:
    @pytest.mark.asyncio
    async def test_consistent_ledger_has_no_drift(self, engine, sweep):
        await engine.award("alice", 100, "Lesson")
        await engine.award("alice", 50, "Lesson")
        assert await sweep.audit_xp_totals() == []

    @pytest.mark.asyncio
    async def test_mentor_bonus_shows_positive_drift(self, engine, sweep):
        await engine.mentorships.create_pairing("mia", "alice", "admin")
        await engine.award("alice", 100, "Lesson")

        drifted = await sweep.audit_xp_totals()
        assert [(d.user_id, d.stored_total, d.ledger_total, d.drift) for d in drifted] == [("mia", 10, 0, 10)]

    @pytest.mark.asyncio
    async def test_lost_update_shows_negative_drift(self, engine, sweep):
        await engine.award("alice", 100, "Lesson")
        await engine.ledger.update_stats("alice", lambda s: s.model_copy(update={"total_xp": 40}))

        [drift] = await sweep.audit_xp_totals()
        assert drift.drift == -60


@pytest.mark.asyncio
async def test_memory_lock_released_after_sweep(seeded, sweep):
    await sweep.clean()
    await asyncio.wait_for(sweep.clean(), 1.0)

"""Maintenance runner CLI tests."""

from __future__ import annotations

import json

import pytest

from progression.models import TEAMS, USER_PROFILES
from progression.workers.maintenance_runner import build_parser, main, run


def test_parser_rejects_unknown_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["rebuild"])


@pytest.mark.asyncio
async def test_validate_on_empty_store(capsys) -> None:
    assert await main(["validate"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["is_valid"] is True


@pytest.mark.asyncio
async def test_run_reports_failures(backend, sweep) -> None:
    await backend.save(USER_PROFILES, [{"id": "u1"}], 0)
    await backend.save(TEAMS, [{"id": "t1", "name": "Alpha", "memberIds": ["gone"]}], 0)

    report, ok = await run("validate", sweep)
    assert not ok
    assert report["issues"] == ['Team "Alpha" has 1 invalid member references']

    cleaned, ok = await run("clean", sweep)
    assert ok
    assert cleaned["issues_fixed"] == 1

    _, ok = await run("validate", sweep)
    assert ok


@pytest.mark.asyncio
async def test_audit_fails_only_on_lost_xp(engine, sweep) -> None:
    await engine.mentorships.create_pairing("mia", "alice", "admin")
    await engine.award("alice", 100, "Lesson")
    report, ok = await run("audit", sweep)
    assert ok
    assert report["total_drifted"] == 1

    await engine.ledger.update_stats("alice", lambda s: s.model_copy(update={"total_xp": 0}))
    _, ok = await run("audit", sweep)
    assert not ok

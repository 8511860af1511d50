"""Standalone runner for the integrity sweep and XP audit.

Usage: python -m progression.workers.maintenance_runner {validate,clean,audit}

Prints the report as JSON. Exits 1 when validation finds issues, cleaning
records errors, or the audit finds a total below its event ledger.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from progression.config import get_settings
from progression.errors import MaintenanceLockError
from progression.integrity.sweep import IntegritySweep
from progression.storage import close_storage, init_storage

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s", stream=sys.stderr)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="progression-maintenance", description=__doc__.splitlines()[0])
    parser.add_argument("command", choices=["validate", "clean", "audit"])
    parser.add_argument("--prefix", help="store key prefix (tenant) to run against")
    return parser


async def run(command: str, sweep: IntegritySweep) -> tuple[dict, bool]:
    """Run one maintenance command. Returns (report, ok)."""
    if command == "validate":
        report = await sweep.validate()
        return report.model_dump(), report.is_valid
    if command == "clean":
        cleaned = await sweep.clean()
        return cleaned.model_dump(), not cleaned.errors
    drifted = await sweep.audit_xp_totals()
    lost = [d for d in drifted if d.drift < 0]
    return {"drifted": [d.model_dump() for d in drifted], "total_drifted": len(drifted)}, not lost


async def main(argv: list[str] | None = None) -> int:
    """Run the requested command against the configured store."""
    args = build_parser().parse_args(argv)

    settings = get_settings()
    if args.prefix:
        settings = settings.model_copy(update={"store_key_prefix": args.prefix})

    backend = await init_storage(settings)
    try:
        report, ok = await run(args.command, IntegritySweep(backend, settings))
    except MaintenanceLockError:
        logger.error("Another maintenance run holds the sweep lock")
        return 1
    finally:
        await close_storage()

    print(json.dumps(report, indent=2))
    return 0 if ok else 1


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()

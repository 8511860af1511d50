"""Admin endpoints for the integrity sweep and XP audit."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from progression.dependencies import get_sweep
from progression.integrity.schemas import IntegrityReport, MigrationReport, XPAuditResponse
from progression.integrity.sweep import IntegritySweep

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.get("/integrity", response_model=IntegrityReport)
async def validate_integrity(sweep: IntegritySweep = Depends(get_sweep)):
    """Report dangling references without changing anything."""
    return await sweep.validate()


@router.post("/integrity/clean", response_model=MigrationReport)
async def clean_integrity(sweep: IntegritySweep = Depends(get_sweep)):
    """Repair dangling references. 409 while another sweep is running."""
    return await sweep.clean()


@router.get("/xp-audit", response_model=XPAuditResponse)
async def audit_xp(sweep: IntegritySweep = Depends(get_sweep)):
    """Compare stored XP totals with the XP event ledger."""
    drifted = await sweep.audit_xp_totals()
    return XPAuditResponse(drifted=drifted, total_drifted=len(drifted))

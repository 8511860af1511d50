"""Health, readiness, and version endpoints."""

from fastapi import APIRouter

from progression.config import get_settings
from progression.storage import get_backend

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: returns 200 if the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness() -> dict[str, object]:
    """Readiness probe: checks the backing store."""
    checks: dict[str, object] = {}

    try:
        checks["store"] = "ok" if await get_backend().ping() else "error: ping failed"
    except RuntimeError as exc:
        checks["store"] = f"error: {exc}"

    all_ok = all(v == "ok" for v in checks.values())
    return {"status": "ready" if all_ok else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    """Return engine version and environment."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }

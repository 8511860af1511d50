"""Shared FastAPI dependencies."""

from progression.config import get_settings
from progression.gamification.catalog import get_catalog
from progression.gamification.engine import ProgressionEngine
from progression.integrity.sweep import IntegritySweep
from progression.storage import get_backend


def get_engine() -> ProgressionEngine:
    """Engine bound to the process-wide backend."""
    return ProgressionEngine(get_backend(), get_catalog(), get_settings())


def get_sweep() -> IntegritySweep:
    """Integrity sweep bound to the process-wide backend."""
    return IntegritySweep(get_backend(), get_settings())

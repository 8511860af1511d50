"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from progression.config import get_settings
from progression.gamification.router import router as progression_router
from progression.health.router import router as health_router
from progression.integrity.router import router as integrity_router
from progression.middleware import setup_middleware
from progression.storage import close_storage, init_storage


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    await init_storage(get_settings())
    yield
    await close_storage()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Progression Engine",
        description="XP, levels, streaks, achievements and data integrity for the learning platform",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(progression_router)
    app.include_router(integrity_router)

    return app


app = create_app()

"""Backing store lifecycle: picks and holds the process-wide collection backend."""

import logging

from progression.config import Settings
from progression.redis_client import close_redis, get_redis, init_redis
from progression.store.backend import CollectionBackend, InMemoryBackend
from progression.store.redis_backend import RedisCollectionBackend

logger = logging.getLogger(__name__)

_backend: CollectionBackend | None = None


async def init_storage(settings: Settings) -> CollectionBackend:
    """Initialize the configured backend ("redis" or "memory")."""
    global _backend  # noqa: PLW0603
    if settings.store_backend == "memory":
        _backend = InMemoryBackend()
    elif settings.store_backend == "redis":
        await init_redis(settings.redis_url)
        _backend = RedisCollectionBackend(get_redis(), prefix=settings.store_key_prefix)
    else:
        msg = f"Unknown store backend: {settings.store_backend}"
        raise ValueError(msg)
    logger.info("Storage initialized (backend=%s, prefix=%s)", settings.store_backend, settings.store_key_prefix)
    return _backend


async def close_storage() -> None:
    """Release the backend and any connection pool behind it."""
    global _backend  # noqa: PLW0603
    if isinstance(_backend, RedisCollectionBackend):
        await close_redis()
    _backend = None


def set_backend(backend: CollectionBackend | None) -> None:
    """Install a backend directly (tests, embedding)."""
    global _backend  # noqa: PLW0603
    _backend = backend


def get_backend() -> CollectionBackend:
    """Get the collection backend."""
    if _backend is None:
        msg = "Storage not initialized. Call init_storage() first."
        raise RuntimeError(msg)
    return _backend

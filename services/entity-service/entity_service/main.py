"""FastAPI application wiring for the entity service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .concurrency.allocation_lock import InProcessAllocationLock
from .concurrency.redis_allocation_lock import RedisAllocationLock
from .config import Settings, get_settings
from .domain.allocator import BusinessEntityIdAllocator
from .domain.identifiers import ENTITY_ID_PREFIX
from .domain.service import BusinessEntityService
from .repository import BusinessEntityRepository

logger = logging.getLogger(__name__)

settings = get_settings()


def build_allocation_lock(config: Settings) -> InProcessAllocationLock | RedisAllocationLock:
    """Instantiate the configured allocation lock backend, preferring Redis when available."""
    if config.allocation_lock_backend == "redis" and config.redis_url:
        try:
            import redis

            client = redis.from_url(config.redis_url)
            # ensure connectivity early to fail fast and fall back
            client.ping()
            logger.info("allocation lock configured for redis backend at %s", config.redis_url)
            return RedisAllocationLock(
                client,
                name=f"business-entity-id:{ENTITY_ID_PREFIX}",
                ttl_ms=config.allocation_lock_ttl_ms,
                wait_seconds=config.allocation_lock_wait_seconds,
            )
        except Exception as exc:
            logger.warning("redis allocation lock unavailable, falling back to in-process: %s", exc)

    logger.info("allocation lock using in-process backend")
    return InProcessAllocationLock(wait_seconds=config.allocation_lock_wait_seconds)


def build_service(repository: BusinessEntityRepository, config: Settings) -> BusinessEntityService:
    """Assemble the allocator, lock and service around a repository."""
    allocator = BusinessEntityIdAllocator(
        repository.entity_id_exists,
        max_attempts=config.allocator_max_attempts,
        retry_delay_seconds=config.allocator_retry_delay_ms / 1000,
        timeout_seconds=config.allocation_timeout_seconds,
        allow_fallback=config.allow_fallback_entity_id,
    )
    return BusinessEntityService(
        repository,
        allocator,
        build_allocation_lock(config),
        create_attempts=config.create_attempts,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    app.state.pool = pool
    app.state.entity_service = build_service(BusinessEntityRepository(pool), settings)
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

# CORS for local frontend dev
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)

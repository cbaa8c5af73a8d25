"""Wire substrate backends from settings.

Missing connection settings select the in-memory backends, which is what
local development and the test-suite run on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from psycopg_pool import ConnectionPool
from redis.asyncio import Redis

from .artifacts import ArtifactStore, InMemoryArtifactStore, S3ArtifactStore
from .ledger import BudgetPolicy, CostLedger, InMemoryCostLedger, PostgresCostLedger
from .queue import InMemoryJobQueue, JobQueue, RedisJobQueue
from .rate_limit import InMemoryCounterStore, RateLimiter, RedisCounterStore
from .report_ids import ReportIndex
from .repositories import (
    InMemoryManuscriptRepository,
    InMemoryUserRepository,
    ManuscriptRepository,
    PostgresManuscriptRepository,
    PostgresUserRepository,
    UserRepository,
)
from .sessions import InMemorySessionStore, RedisSessionStore, SessionSigner, SessionStore
from .settings import PipelineSettings

logger = logging.getLogger(__name__)


@dataclass
class Substrate:
    settings: PipelineSettings
    store: ArtifactStore
    index: ReportIndex
    queue: JobQueue
    ledger: CostLedger
    budget: BudgetPolicy
    limiter: RateLimiter
    sessions: SessionStore
    signer: SessionSigner | None
    manuscripts: ManuscriptRepository
    users: UserRepository

    async def aclose(self) -> None:
        await self.queue.aclose()
        await self.ledger.aclose()
        await self.store.aclose()


def build_artifact_store(settings: PipelineSettings) -> ArtifactStore:
    if settings.uses_object_storage:
        return S3ArtifactStore(
            settings.b2_bucket_name or "",
            endpoint_url=settings.b2_endpoint_url,
            access_key_id=settings.b2_key_id,
            secret_access_key=settings.b2_application_key,
            region=settings.b2_region,
        )
    logger.warning("B2 storage not configured; using in-memory artifact store")
    return InMemoryArtifactStore()


def build_substrate(settings: PipelineSettings) -> Substrate:
    store = build_artifact_store(settings)

    if settings.redis_url:
        redis = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
        queue: JobQueue = RedisJobQueue(redis)
        counters = RedisCounterStore(redis)
        sessions: SessionStore = RedisSessionStore(redis, ttl_seconds=settings.session_duration)
    else:
        logger.warning("REDIS_URL not set; using in-memory queue, sessions and rate limits")
        queue = InMemoryJobQueue()
        counters = InMemoryCounterStore()
        sessions = InMemorySessionStore(ttl_seconds=settings.session_duration)

    if settings.database_url:
        pool = ConnectionPool(settings.database_url, min_size=1, max_size=10, open=True)
        ledger: CostLedger = PostgresCostLedger(pool)
        manuscripts: ManuscriptRepository = PostgresManuscriptRepository(pool)
        users: UserRepository = PostgresUserRepository(pool)
    else:
        logger.warning("DATABASE_URL not set; using in-memory ledger and repositories")
        ledger = InMemoryCostLedger()
        manuscripts = InMemoryManuscriptRepository()
        users = InMemoryUserRepository()

    return Substrate(
        settings=settings,
        store=store,
        index=ReportIndex(store),
        queue=queue,
        ledger=ledger,
        budget=BudgetPolicy(ledger, store, monthly_cap_usd=settings.monthly_budget_usd),
        limiter=RateLimiter(counters),
        sessions=sessions,
        signer=SessionSigner(settings.session_secret) if settings.session_secret else None,
        manuscripts=manuscripts,
        users=users,
    )

"""Storage, queueing, metering and session adapters for the manuscript pipeline."""

from .artifacts import (
    CONTENT_LENGTH,
    REPORT_ID_KEY,
    ArtifactStore,
    InMemoryArtifactStore,
    ObjectListing,
    S3ArtifactStore,
    StoredObject,
    artifact_key,
    cover_variation_key,
)
from .factory import Substrate, build_substrate
from .ledger import BudgetPolicy, CostLedger, InMemoryCostLedger, PostgresCostLedger
from .queue import ANALYSIS_QUEUE, InMemoryJobQueue, JobQueue, QueueStats, RedisJobQueue
from .rate_limit import InMemoryCounterStore, RateLimitDecision, RateLimiter, RedisCounterStore
from .report_ids import ReportIndex
from .repositories import (
    InMemoryManuscriptRepository,
    InMemoryUserRepository,
    ManuscriptRepository,
    UserRepository,
)
from .sessions import InMemorySessionStore, RedisSessionStore, SessionSigner, SessionStore
from .settings import PipelineSettings, load_settings

__all__ = [
    "CONTENT_LENGTH",
    "REPORT_ID_KEY",
    "ANALYSIS_QUEUE",
    "ArtifactStore",
    "BudgetPolicy",
    "CostLedger",
    "InMemoryArtifactStore",
    "InMemoryCostLedger",
    "InMemoryCounterStore",
    "InMemoryJobQueue",
    "InMemoryManuscriptRepository",
    "InMemorySessionStore",
    "InMemoryUserRepository",
    "JobQueue",
    "ManuscriptRepository",
    "ObjectListing",
    "PipelineSettings",
    "PostgresCostLedger",
    "QueueStats",
    "RateLimitDecision",
    "RateLimiter",
    "RedisCounterStore",
    "RedisJobQueue",
    "RedisSessionStore",
    "ReportIndex",
    "S3ArtifactStore",
    "SessionSigner",
    "SessionStore",
    "StoredObject",
    "Substrate",
    "UserRepository",
    "artifact_key",
    "build_substrate",
    "cover_variation_key",
    "load_settings",
]

"""Durable job queue with delayed retry and a dead-letter list.

Per queue name there are four structures: ``pending`` (FIFO list),
``processing`` (claimed ids), ``delayed`` (ids scored by due time) and
``dead`` (ids that ran out of retries), plus one record per job. The state
machine lives in :class:`JobQueue`; backends only supply the primitives.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Sequence
from uuid import uuid4

from redis.asyncio import Redis
from redis.asyncio.client import Pipeline
from redis.exceptions import RedisError

from manuscript_observability import record_queue_event, set_queue_depth
from manuscript_schemas import JobRecord, JobStatus

from .errors import NotFoundError, QueueUnavailable

logger = logging.getLogger(__name__)

ANALYSIS_QUEUE = "analysis"
RETRY_DELAYS_SECONDS: tuple[float, ...] = (5.0, 30.0, 300.0)
DEFAULT_MAX_RETRIES = 3
RECORD_TTL_SECONDS = 7 * 24 * 3600
COMPLETED_TTL_SECONDS = 24 * 3600
DEAD_TTL_SECONDS = 7 * 24 * 3600

# KEYS: delayed, pending. ARGV: now, job key prefix, pending status.
PROMOTE_DUE_SCRIPT = """
local ids = redis.call("ZRANGEBYSCORE", KEYS[1], "-inf", ARGV[1])
for _, id in ipairs(ids) do
    redis.call("ZREM", KEYS[1], id)
    local job = ARGV[2] .. id
    if redis.call("EXISTS", job) == 1 then
        redis.call("HSET", job, "status", ARGV[3], "updatedAt", ARGV[1])
        redis.call("HDEL", job, "processAt")
    end
    redis.call("RPUSH", KEYS[2], id)
end
return ids
"""


@dataclass(slots=True)
class QueueStats:
    pending: int
    processing: int
    delayed: int
    dead: int

    def as_dict(self) -> dict[str, int]:
        return {
            "pending": self.pending,
            "processing": self.processing,
            "delayed": self.delayed,
            "dead": self.dead,
        }


class JobQueue(ABC):
    """At-least-once delivery: a job leaves ``processing`` only through
    :meth:`complete` or :meth:`fail`.

    ``max_retries`` counts retries, so a job runs at most ``max_retries + 1``
    times before it is moved to the dead list.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        default_max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delays: Sequence[float] = RETRY_DELAYS_SECONDS,
    ) -> None:
        if not retry_delays:
            raise ValueError("retry_delays must not be empty")
        self._clock = clock
        self.default_max_retries = default_max_retries
        self.retry_delays = tuple(retry_delays)

    def retry_delay(self, attempts: int) -> float:
        index = min(max(attempts - 1, 0), len(self.retry_delays) - 1)
        return self.retry_delays[index]

    async def send(
        self,
        queue: str,
        payload: dict[str, Any],
        *,
        delay_seconds: float | None = None,
        max_retries: int | None = None,
    ) -> str:
        now = self._clock()
        job_id = str(uuid4())
        record = JobRecord(
            id=job_id,
            queue_name=queue,
            payload=payload,
            status=JobStatus.PENDING,
            attempts=0,
            max_retries=self.default_max_retries if max_retries is None else max_retries,
            created_at=now,
            updated_at=now,
            process_at=now + delay_seconds if delay_seconds else None,
        )
        async with self._guard("send"):
            await self._enqueue(queue, record, RECORD_TTL_SECONDS, record.process_at)
        record_queue_event(queue, "sent")
        logger.info("Job enqueued", extra={"queue": queue, "job_id": job_id, "delay_seconds": delay_seconds})
        return job_id

    async def next(self, queue: str, timeout: float = 5.0) -> JobRecord | None:
        """Claim the oldest pending job, waiting up to ``timeout`` seconds."""

        await self.promote_due(queue)
        async with self._guard("next"):
            job_id = await self._claim(queue, timeout)
            if job_id is None:
                return None
            record = await self._load(queue, job_id)
            if record is None:
                logger.warning("Claimed job has no record; dropping", extra={"queue": queue, "job_id": job_id})
                await self._release(queue, job_id)
                return None
            record.status = JobStatus.PROCESSING
            record.attempts += 1
            record.updated_at = self._clock()
            record.process_at = None
            await self._save(queue, record, RECORD_TTL_SECONDS)
        record_queue_event(queue, "claimed")
        return record

    async def complete(self, queue: str, job_id: str, result: dict[str, Any] | None = None) -> JobRecord:
        async with self._guard("complete"):
            record = await self._require(queue, job_id)
            now = self._clock()
            record.status = JobStatus.COMPLETED
            record.completed_at = now
            record.updated_at = now
            record.result = result
            await self._settle(queue, record, COMPLETED_TTL_SECONDS)
        record_queue_event(queue, "completed")
        logger.info("Job completed", extra={"queue": queue, "job_id": job_id, "attempt": record.attempts})
        return record

    async def fail(self, queue: str, job_id: str, error: BaseException | str) -> JobRecord:
        """Schedule a retry with backoff, or dead-letter once retries run out."""

        async with self._guard("fail"):
            record = await self._require(queue, job_id)
            now = self._clock()
            record.last_error = str(error)[:2000]
            record.last_error_at = now
            record.updated_at = now
            if record.attempts <= record.max_retries:
                due = now + self.retry_delay(record.attempts)
                record.status = JobStatus.RETRYING
                record.process_at = due
                await self._settle(queue, record, RECORD_TTL_SECONDS, due=due)
                event = "retried"
            else:
                record.status = JobStatus.DEAD
                record.failed_at = now
                await self._settle(queue, record, DEAD_TTL_SECONDS, dead=True)
                event = "dead"
        record_queue_event(queue, event)
        logger.warning(
            "Job failed",
            extra={
                "queue": queue,
                "job_id": job_id,
                "attempt": record.attempts,
                "outcome": event,
                "process_at": record.process_at,
                "error": record.last_error,
            },
        )
        return record

    async def get(self, queue: str, job_id: str) -> JobRecord | None:
        async with self._guard("get"):
            return await self._load(queue, job_id)

    async def promote_due(self, queue: str) -> int:
        """Move delayed jobs whose due time has passed onto ``pending``."""

        async with self._guard("promote"):
            due_ids = await self._promote_due(queue, self._clock())
        if due_ids:
            logger.debug("Promoted delayed jobs", extra={"queue": queue, "count": len(due_ids)})
        return len(due_ids)

    async def stats(self, queue: str) -> QueueStats:
        async with self._guard("stats"):
            stats = await self._counts(queue)
        for state, value in stats.as_dict().items():
            set_queue_depth(queue, state, value)
        return stats

    async def depth(self, queue: str) -> int:
        stats = await self.stats(queue)
        return stats.pending + stats.delayed

    async def purge(self, queue: str) -> None:
        async with self._guard("purge"):
            await self._purge(queue)
        logger.warning("Queue purged", extra={"queue": queue})

    async def aclose(self) -> None:
        return None

    async def _require(self, queue: str, job_id: str) -> JobRecord:
        record = await self._load(queue, job_id)
        if record is None:
            raise NotFoundError(f"Job {job_id} not found in queue {queue}")
        return record

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        yield

    @abstractmethod
    async def _save(self, queue: str, record: JobRecord, ttl_seconds: int) -> None: ...

    @abstractmethod
    async def _load(self, queue: str, job_id: str) -> JobRecord | None: ...

    @abstractmethod
    async def _enqueue(self, queue: str, record: JobRecord, ttl_seconds: int, due: float | None) -> None:
        """Store a new record and put its id on ``pending`` (or ``delayed`` when ``due`` is set) in one step."""

    @abstractmethod
    async def _promote_due(self, queue: str, now: float) -> list[str]:
        """Move every id due by ``now`` from ``delayed`` to ``pending`` in one step."""

    @abstractmethod
    async def _claim(self, queue: str, timeout: float) -> str | None: ...

    @abstractmethod
    async def _release(self, queue: str, job_id: str) -> None: ...

    @abstractmethod
    async def _settle(
        self, queue: str, record: JobRecord, ttl_seconds: int, *, due: float | None = None, dead: bool = False
    ) -> None:
        """Save ``record`` and take it out of ``processing`` in one step, rescheduling it
        when ``due`` is set or dead-lettering it when ``dead`` is."""

    @abstractmethod
    async def _counts(self, queue: str) -> QueueStats: ...

    @abstractmethod
    async def _purge(self, queue: str) -> None: ...


class RedisJobQueue(JobQueue):
    """Every transition is one MULTI/EXEC pipeline or one Lua script, so a job id
    is always in exactly one of the four structures."""

    def __init__(self, redis: Redis, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._redis = redis
        self._promote = redis.register_script(PROMOTE_DUE_SCRIPT)

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisJobQueue":
        return cls(Redis.from_url(url, encoding="utf-8", decode_responses=True), **kwargs)

    @staticmethod
    def _key(queue: str, part: str) -> str:
        return f"queue:{queue}:{part}"

    def _job_key(self, queue: str, job_id: str) -> str:
        return self._key(queue, f"job:{job_id}")

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except RedisError as err:
            raise QueueUnavailable(f"Queue {operation} failed: {err}") from err

    def _write_record(self, pipe: Pipeline, queue: str, record: JobRecord, ttl_seconds: int) -> None:
        key = self._job_key(queue, record.id)
        pipe.delete(key)
        pipe.hset(key, mapping=record.to_mapping())
        pipe.expire(key, ttl_seconds)

    async def _save(self, queue: str, record: JobRecord, ttl_seconds: int) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            self._write_record(pipe, queue, record, ttl_seconds)
            await pipe.execute()

    async def _load(self, queue: str, job_id: str) -> JobRecord | None:
        mapping = await self._redis.hgetall(self._job_key(queue, job_id))
        if not mapping:
            return None
        return JobRecord.from_mapping(mapping)

    async def _enqueue(self, queue: str, record: JobRecord, ttl_seconds: int, due: float | None) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            self._write_record(pipe, queue, record, ttl_seconds)
            if due is None:
                pipe.rpush(self._key(queue, "pending"), record.id)
            else:
                pipe.zadd(self._key(queue, "delayed"), {record.id: due})
            await pipe.execute()

    async def _promote_due(self, queue: str, now: float) -> list[str]:
        moved = await self._promote(
            keys=[self._key(queue, "delayed"), self._key(queue, "pending")],
            args=[now, self._job_key(queue, ""), JobStatus.PENDING.value],
        )
        return list(moved or [])

    async def _claim(self, queue: str, timeout: float) -> str | None:
        pending = self._key(queue, "pending")
        processing = self._key(queue, "processing")
        if timeout > 0:
            return await self._redis.blmove(pending, processing, timeout, "LEFT", "RIGHT")
        return await self._redis.lmove(pending, processing, "LEFT", "RIGHT")

    async def _release(self, queue: str, job_id: str) -> None:
        await self._redis.lrem(self._key(queue, "processing"), 0, job_id)

    async def _settle(
        self, queue: str, record: JobRecord, ttl_seconds: int, *, due: float | None = None, dead: bool = False
    ) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            self._write_record(pipe, queue, record, ttl_seconds)
            pipe.lrem(self._key(queue, "processing"), 0, record.id)
            if due is not None:
                pipe.zadd(self._key(queue, "delayed"), {record.id: due})
            elif dead:
                pipe.rpush(self._key(queue, "dead"), record.id)
            await pipe.execute()

    async def _counts(self, queue: str) -> QueueStats:
        async with self._redis.pipeline(transaction=False) as pipe:
            pipe.llen(self._key(queue, "pending"))
            pipe.llen(self._key(queue, "processing"))
            pipe.zcard(self._key(queue, "delayed"))
            pipe.llen(self._key(queue, "dead"))
            pending, processing, delayed, dead = await pipe.execute()
        return QueueStats(pending=pending, processing=processing, delayed=delayed, dead=dead)

    async def _purge(self, queue: str) -> None:
        await self._redis.delete(*(self._key(queue, part) for part in ("pending", "processing", "delayed", "dead")))

    async def aclose(self) -> None:
        await self._redis.aclose()


class InMemoryJobQueue(JobQueue):
    """Single-process queue with the same semantics, for tests and local runs."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._records: dict[tuple[str, str], tuple[JobRecord, float]] = {}
        self._pending: dict[str, deque[str]] = defaultdict(deque)
        self._processing: dict[str, list[str]] = defaultdict(list)
        self._delayed: dict[str, dict[str, float]] = defaultdict(dict)
        self._dead: dict[str, list[str]] = defaultdict(list)
        self._condition = asyncio.Condition()

    async def _save(self, queue: str, record: JobRecord, ttl_seconds: int) -> None:
        self._records[(queue, record.id)] = (record.model_copy(deep=True), self._clock() + ttl_seconds)

    async def _load(self, queue: str, job_id: str) -> JobRecord | None:
        entry = self._records.get((queue, job_id))
        if entry is None:
            return None
        record, expires_at = entry
        if expires_at <= self._clock():
            self._records.pop((queue, job_id), None)
            return None
        return record.model_copy(deep=True)

    async def _enqueue(self, queue: str, record: JobRecord, ttl_seconds: int, due: float | None) -> None:
        async with self._condition:
            await self._save(queue, record, ttl_seconds)
            if due is None:
                self._pending[queue].append(record.id)
                self._condition.notify_all()
            else:
                self._delayed[queue][record.id] = due

    async def _promote_due(self, queue: str, now: float) -> list[str]:
        async with self._condition:
            delayed = self._delayed[queue]
            due = sorted((score, job_id) for job_id, score in delayed.items() if score <= now)
            due_ids = [job_id for _, job_id in due]
            for job_id in due_ids:
                delayed.pop(job_id, None)
                entry = self._records.get((queue, job_id))
                if entry is not None:
                    record = entry[0]
                    record.status = JobStatus.PENDING
                    record.updated_at = now
                    record.process_at = None
                self._pending[queue].append(job_id)
            if due_ids:
                self._condition.notify_all()
        return due_ids

    async def _claim(self, queue: str, timeout: float) -> str | None:
        async with self._condition:
            if not self._pending[queue] and timeout > 0:
                try:
                    await asyncio.wait_for(
                        self._condition.wait_for(lambda: bool(self._pending[queue])), timeout
                    )
                except asyncio.TimeoutError:
                    return None
            if not self._pending[queue]:
                return None
            job_id = self._pending[queue].popleft()
            self._processing[queue].append(job_id)
            return job_id

    async def _release(self, queue: str, job_id: str) -> None:
        processing = self._processing[queue]
        while job_id in processing:
            processing.remove(job_id)

    async def _settle(
        self, queue: str, record: JobRecord, ttl_seconds: int, *, due: float | None = None, dead: bool = False
    ) -> None:
        async with self._condition:
            await self._save(queue, record, ttl_seconds)
            await self._release(queue, record.id)
            if due is not None:
                self._delayed[queue][record.id] = due
            elif dead:
                self._dead[queue].append(record.id)

    async def _counts(self, queue: str) -> QueueStats:
        return QueueStats(
            pending=len(self._pending[queue]),
            processing=len(self._processing[queue]),
            delayed=len(self._delayed[queue]),
            dead=len(self._dead[queue]),
        )

    async def _purge(self, queue: str) -> None:
        self._pending.pop(queue, None)
        self._processing.pop(queue, None)
        self._delayed.pop(queue, None)
        self._dead.pop(queue, None)

    def dead_ids(self, queue: str) -> list[str]:
        return list(self._dead[queue])

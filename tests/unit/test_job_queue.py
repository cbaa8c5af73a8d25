"""Delivery, retry and dead-letter behaviour of the job queue."""

import pytest

from manuscript_schemas import JobRecord, JobStatus
from manuscript_substrate import InMemoryJobQueue
from manuscript_substrate.errors import NotFoundError

pytestmark = pytest.mark.anyio("asyncio")

QUEUE = "analysis"


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue(clock):
    return InMemoryJobQueue(clock=clock)


async def test_send_then_next_returns_same_payload(queue):
    payload = {"reportId": "deadbeef", "nested": {"stages": ["assets"]}}
    job_id = await queue.send(QUEUE, payload)

    job = await queue.next(QUEUE, timeout=0)

    assert job.id == job_id
    assert job.payload == payload
    assert job.status is JobStatus.PROCESSING
    assert job.attempts == 1


async def test_pending_jobs_are_claimed_in_send_order(queue):
    first = await queue.send(QUEUE, {"n": 1})
    second = await queue.send(QUEUE, {"n": 2})

    claimed = [(await queue.next(QUEUE, timeout=0)).id, (await queue.next(QUEUE, timeout=0)).id]

    assert claimed == [first, second]
    assert await queue.next(QUEUE, timeout=0) is None


async def test_delayed_job_waits_until_due(queue, clock):
    job_id = await queue.send(QUEUE, {"n": 1}, delay_seconds=10)

    assert await queue.next(QUEUE, timeout=0) is None
    clock.advance(10)
    job = await queue.next(QUEUE, timeout=0)

    assert job.id == job_id


async def test_failed_job_is_rescheduled_with_backoff(queue, clock):
    job_id = await queue.send(QUEUE, {"n": 1})
    expected = [5.0, 30.0, 300.0]

    for attempt, delay in enumerate(expected, start=1):
        job = await queue.next(QUEUE, timeout=0)
        assert job.attempts == attempt
        failed_at = clock.now
        record = await queue.fail(QUEUE, job_id, RuntimeError(f"boom {attempt}"))
        assert record.status is JobStatus.RETRYING
        assert record.process_at >= failed_at + delay
        clock.advance(delay - 1)
        assert await queue.next(QUEUE, timeout=0) is None
        clock.advance(1)

    job = await queue.next(QUEUE, timeout=0)
    record = await queue.fail(QUEUE, job.id, "final boom")

    assert record.status is JobStatus.DEAD
    assert record.attempts == 4
    assert record.last_error == "final boom"
    assert queue.dead_ids(QUEUE) == [job_id]
    clock.advance(3600)
    assert await queue.next(QUEUE, timeout=0) is None
    stats = await queue.stats(QUEUE)
    assert (stats.pending, stats.processing, stats.delayed, stats.dead) == (0, 0, 0, 1)


async def test_zero_retries_dead_letters_on_first_failure(queue):
    job_id = await queue.send(QUEUE, {"n": 1}, max_retries=0)
    await queue.next(QUEUE, timeout=0)

    record = await queue.fail(QUEUE, job_id, "nope")

    assert record.status is JobStatus.DEAD


async def test_complete_stores_result_and_clears_processing(queue):
    job_id = await queue.send(QUEUE, {"n": 1})
    await queue.next(QUEUE, timeout=0)

    record = await queue.complete(QUEUE, job_id, {"status": "complete"})

    assert record.status is JobStatus.COMPLETED
    assert record.result == {"status": "complete"}
    assert (await queue.stats(QUEUE)).processing == 0


async def test_completed_record_expires(queue, clock):
    job_id = await queue.send(QUEUE, {"n": 1})
    await queue.next(QUEUE, timeout=0)
    await queue.complete(QUEUE, job_id)

    clock.advance(24 * 3600 + 1)

    assert await queue.get(QUEUE, job_id) is None


async def test_unknown_job_cannot_be_completed(queue):
    with pytest.raises(NotFoundError):
        await queue.complete(QUEUE, "missing", None)


async def test_depth_counts_pending_and_delayed(queue):
    await queue.send(QUEUE, {"n": 1})
    await queue.send(QUEUE, {"n": 2}, delay_seconds=60)

    assert await queue.depth(QUEUE) == 2


async def test_queues_are_isolated(queue):
    await queue.send("other", {"n": 1})

    assert await queue.next(QUEUE, timeout=0) is None


def test_job_record_mapping_round_trip():
    record = JobRecord(
        id="job-1",
        queue_name=QUEUE,
        payload={"reportId": "deadbeef"},
        created_at=1.0,
        updated_at=2.0,
        process_at=3.0,
    )

    mapping = record.to_mapping()
    restored = JobRecord.from_mapping(mapping)

    assert mapping["payload"] == '{"reportId": "deadbeef"}'
    assert mapping["status"] == "pending"
    assert restored == record


async def test_purge_empties_every_state(queue):
    await queue.send(QUEUE, {"n": 1})
    await queue.send(QUEUE, {"n": 2}, delay_seconds=60)
    await queue.send(QUEUE, {"n": 3})
    await queue.next(QUEUE, timeout=0)

    await queue.purge(QUEUE)

    stats = await queue.stats(QUEUE)
    assert (stats.pending, stats.processing, stats.delayed, stats.dead) == (0, 0, 0, 0)
    assert await queue.next(QUEUE, timeout=0) is None

"""Artifact store semantics and report id allocation."""

import itertools

import pytest

from manuscript_schemas import ArtifactKind, RunState, StatusRecord
from manuscript_substrate import InMemoryArtifactStore, ReportIndex, artifact_key
from manuscript_substrate.errors import IdExhausted, NotFoundError, RequestValidationError

pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


async def test_put_then_get_keeps_content_type_and_metadata():
    store = InMemoryArtifactStore()
    key = artifact_key("U1/M1/book.txt", ArtifactKind.ANALYSIS)

    await store.put(key, b'{"ok": true}', "application/json", {"report-id": "deadbeef"})
    stored = await store.get(key)

    assert key == "U1/M1/book.txt-analysis.json"
    assert stored.body == b'{"ok": true}'
    assert stored.content_type == "application/json"
    assert stored.metadata == {"report-id": "deadbeef"}
    assert stored.json() == {"ok": True}
    assert await store.head(key) == {"report-id": "deadbeef", "content-length": "12"}


async def test_ttl_expiry_reads_as_absent():
    clock = FakeClock()
    store = InMemoryArtifactStore(clock=clock)

    await store.put("status:deadbeef", "{}", "application/json", ttl_seconds=60)
    assert await store.head("status:deadbeef") is not None

    clock.now += 60
    assert await store.get("status:deadbeef") is None
    assert await store.head("status:deadbeef") is None
    assert await store.put_if_absent("status:deadbeef", "{}", "application/json") is True


async def test_put_if_absent_only_writes_once():
    store = InMemoryArtifactStore()

    assert await store.put_if_absent("report-id:deadbeef", "U1/M1/a.txt", "text/plain") is True
    assert await store.put_if_absent("report-id:deadbeef", "U1/M1/b.txt", "text/plain") is False
    assert (await store.get("report-id:deadbeef")).text() == "U1/M1/a.txt"


async def test_metadata_is_limited_to_flat_entries():
    store = InMemoryArtifactStore()

    with pytest.raises(RequestValidationError):
        await store.put("k", b"", metadata={f"key-{index}": "v" for index in range(17)})
    with pytest.raises(RequestValidationError):
        await store.put("k", b"", metadata={"Bad Key": "v"})
    with pytest.raises(RequestValidationError):
        await store.put("", b"")


async def test_list_pages_through_prefix():
    store = InMemoryArtifactStore()
    for kind in (ArtifactKind.ANALYSIS, ArtifactKind.ASSETS, ArtifactKind.COPY_ANALYSIS):
        await store.put_json(artifact_key("U1/M1/book.txt", kind), {})
    await store.put_json("U2/M9/other.txt-analysis.json", {})

    first = await store.list("U1/", limit=2)
    second = await store.list("U1/", cursor=first.cursor, limit=2)

    assert len(first.keys) == 2
    assert first.cursor == first.keys[-1]
    assert len(second.keys) == 1
    assert second.cursor is None
    assert not any(key.startswith("U2/") for key in first.keys + second.keys)


async def test_mint_binds_id_to_prefix_and_status_round_trips():
    store = InMemoryArtifactStore()
    index = ReportIndex(store)

    report_id = await index.mint("U1/M1/book.txt")
    await index.write_status(report_id, StatusRecord(status=RunState.QUEUED, message="Queued"))

    assert len(report_id) == 8
    assert await index.resolve(report_id) == "U1/M1/book.txt"
    status = await index.read_status(report_id)
    assert status.status is RunState.QUEUED
    assert status.progress == 0


async def test_mint_recovers_from_collisions():
    store = InMemoryArtifactStore()
    candidates = iter(["deadbeef", "deadbeef", "deadbeef", "cafef00d"])
    index = ReportIndex(store, id_factory=lambda: next(candidates))

    assert await index.mint("U1/M1/a.txt") == "deadbeef"
    assert await index.mint("U1/M1/b.txt") == "cafef00d"
    assert await index.resolve("deadbeef") == "U1/M1/a.txt"


async def test_mint_gives_up_after_eight_attempts():
    store = InMemoryArtifactStore()
    calls = itertools.count()

    def same_id() -> str:
        next(calls)
        return "deadbeef"

    index = ReportIndex(store, id_factory=same_id)
    await index.mint("U1/M1/a.txt")

    with pytest.raises(IdExhausted):
        await index.mint("U1/M1/b.txt")
    assert next(calls) == 9


async def test_resolve_rejects_malformed_and_unknown_ids():
    index = ReportIndex(InMemoryArtifactStore())

    with pytest.raises(NotFoundError):
        await index.resolve("../../etc")
    with pytest.raises(NotFoundError):
        await index.resolve("0badc0de")
    assert await index.read_status("nope") is None


async def test_cancel_flag_lifecycle():
    index = ReportIndex(InMemoryArtifactStore())

    assert await index.is_cancelled("deadbeef") is False
    await index.request_cancel("deadbeef")
    assert await index.is_cancelled("deadbeef") is True
    await index.clear_cancel("deadbeef")
    assert await index.is_cancelled("deadbeef") is False


async def test_forget_drops_mapping_status_and_flag():
    index = ReportIndex(InMemoryArtifactStore())
    report_id = await index.mint("U1/M1/book.txt")
    await index.write_status(report_id, StatusRecord(status=RunState.PROCESSING, progress=40))
    await index.request_cancel(report_id)

    await index.forget(report_id)

    assert await index.read_status(report_id) is None
    assert await index.is_cancelled(report_id) is False
    with pytest.raises(NotFoundError):
        await index.resolve(report_id)

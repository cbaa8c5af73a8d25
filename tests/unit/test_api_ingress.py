"""HTTP ingress: sessions, ownership, backpressure and report access."""

import httpx
import pytest

from manuscript_schemas import ArtifactKind, ManuscriptRecord, ManuscriptStatus, RunState, UserRecord, UserTier
from manuscript_substrate import (
    ANALYSIS_QUEUE,
    InMemoryCounterStore,
    PipelineSettings,
    REPORT_ID_KEY,
    RateLimiter,
    artifact_key,
    build_substrate,
    cover_variation_key,
)
from manuscript_substrate.ledger import KILL_SWITCH_KEY

from apps.api.app.main import SESSION_COOKIE, create_app

pytestmark = pytest.mark.anyio("asyncio")

KEY = "U1/M1/book.txt"


@pytest.fixture
def anyio_backend():
    return "asyncio"


async def _substrate(**settings):
    substrate = build_substrate(PipelineSettings(session_secret="test-secret", **settings))
    substrate.users.add(UserRecord(id="U1", email="u1@example.com"))
    substrate.users.add(UserRecord(id="U2", email="u2@example.com"))
    substrate.users.add(UserRecord(id="ADMIN", role="admin", subscription_tier=UserTier.ADMIN))
    substrate.manuscripts.add(
        ManuscriptRecord(id="M1", user_id="U1", filename="book.txt", storage_key=KEY, genre="thriller")
    )
    await substrate.store.put(KEY, "Chapter 1: Arrival\n\nShe stepped off the train.", "text/plain")
    return substrate


async def _client(substrate, user_id: str | None = "U1") -> httpx.AsyncClient:
    cookies = {}
    if user_id:
        session = await substrate.sessions.create(user_id)
        cookies[SESSION_COOKIE] = substrate.signer.sign(session.id)
    app = create_app(substrate)
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test", cookies=cookies)


async def _enqueue(client: httpx.AsyncClient, **body) -> httpx.Response:
    return await client.post("/manuscripts/analyze", json={"manuscriptKey": KEY, **body})


async def test_health_needs_no_session():
    substrate = await _substrate()
    async with await _client(substrate, user_id=None) as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_analyze_requires_session():
    substrate = await _substrate()
    async with await _client(substrate, user_id=None) as client:
        response = await _enqueue(client)

    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required"}


async def test_forged_cookie_is_rejected():
    substrate = await _substrate()
    session = await substrate.sessions.create("U1")
    app = create_app(substrate)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport, base_url="http://test", cookies={SESSION_COOKIE: f"{session.id}.forged"}
    ) as client:
        response = await _enqueue(client)

    assert response.status_code == 401


async def test_analyze_enqueues_job_and_publishes_queued_status():
    substrate = await _substrate()
    async with await _client(substrate) as client:
        response = await _enqueue(client, genre="thriller", styleGuide="AP", coverVariations=2)
        report_id = response.json()["reportId"]
        status = await client.get(f"/reports/{report_id}/status")

    assert response.status_code == 202
    assert response.json()["status"] == "queued"
    assert status.status_code == 200
    assert status.json()["status"] == "queued"
    assert status.json()["progress"] == 0
    assert "X-RateLimit-Limit" in status.headers

    job = await substrate.queue.next(ANALYSIS_QUEUE, timeout=0)
    assert job.payload["reportId"] == report_id
    assert job.payload["styleGuide"] == "ap"
    assert job.payload["coverVariations"] == 2
    assert job.payload["manuscriptId"] == "M1"
    assert (await substrate.manuscripts.get("M1")).status is ManuscriptStatus.QUEUED


async def test_analyze_rejects_unknown_style_guide():
    substrate = await _substrate()
    async with await _client(substrate) as client:
        response = await _enqueue(client, styleGuide="harvard")

    assert response.status_code == 400
    assert "style guide" in response.json()["error"]


async def test_analyze_validates_cover_variations():
    substrate = await _substrate()
    async with await _client(substrate) as client:
        response = await _enqueue(client, coverVariations=9)

    assert response.status_code == 422


async def test_analyze_other_users_manuscript_is_forbidden():
    substrate = await _substrate()
    async with await _client(substrate, user_id="U2") as client:
        response = await _enqueue(client)

    assert response.status_code == 403
    assert await substrate.queue.depth(ANALYSIS_QUEUE) == 0


async def test_admin_may_analyze_any_manuscript():
    substrate = await _substrate()
    async with await _client(substrate, user_id="ADMIN") as client:
        response = await _enqueue(client)

    assert response.status_code == 202


async def test_analyze_missing_upload_is_not_found():
    substrate = await _substrate()
    await substrate.store.delete(KEY)
    async with await _client(substrate) as client:
        response = await _enqueue(client)

    assert response.status_code == 404


async def test_analyze_refused_when_budget_exhausted():
    substrate = await _substrate()
    await substrate.store.put(KILL_SWITCH_KEY, "101.000000", "text/plain")
    async with await _client(substrate) as client:
        response = await _enqueue(client)

    assert response.status_code == 402
    assert await substrate.queue.depth(ANALYSIS_QUEUE) == 0


async def test_analyze_refused_under_backpressure():
    substrate = await _substrate(queue_high_watermark=1)
    await substrate.queue.send(ANALYSIS_QUEUE, {"reportId": "cafef00d"})
    async with await _client(substrate) as client:
        response = await _enqueue(client)

    assert response.status_code == 503
    assert await substrate.queue.depth(ANALYSIS_QUEUE) == 1


async def test_rate_limited_requests_get_retry_after():
    substrate = await _substrate()
    substrate.limiter = RateLimiter(InMemoryCounterStore(), tier_limits={UserTier.FREE: 1})
    async with await _client(substrate) as client:
        first = await client.get("/reports/deadbeef/status")
        second = await client.get("/reports/deadbeef/status")

    assert first.status_code == 404
    assert second.status_code == 429
    assert int(second.headers["Retry-After"]) >= 1
    assert second.json()["retryAfter"] == int(second.headers["Retry-After"])


async def test_artifacts_and_exports_are_served_to_the_owner():
    substrate = await _substrate()
    async with await _client(substrate) as client:
        report_id = (await _enqueue(client)).json()["reportId"]
        produced = {REPORT_ID_KEY: report_id}
        await substrate.store.put_json(
            artifact_key(KEY, ArtifactKind.ANALYSIS), {"analysis": {"overallScore": 7}}, metadata=produced
        )

        analysis = await client.get(f"/reports/{report_id}/artifacts/analysis")
        missing = await client.get(f"/reports/{report_id}/artifacts/market-analysis")
        unknown = await client.get(f"/reports/{report_id}/artifacts/horoscope")
        not_ready = await client.get(f"/reports/{report_id}/export/pdf")

        await substrate.store.put(
            artifact_key(KEY, ArtifactKind.FORMATTED_PDF), b"%PDF-1.4", "application/pdf", produced
        )
        pdf = await client.get(f"/reports/{report_id}/export/pdf")

    assert analysis.status_code == 200
    assert analysis.json() == {"analysis": {"overallScore": 7}}
    assert missing.status_code == 404
    assert unknown.status_code == 404
    assert not_ready.status_code == 404
    assert "not ready" in not_ready.json()["error"]
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.headers["content-disposition"] == f'attachment; filename="{report_id}.pdf"'
    assert pdf.content == b"%PDF-1.4"


async def test_outputs_of_an_earlier_run_are_not_served():
    substrate = await _substrate()
    async with await _client(substrate) as client:
        earlier = (await _enqueue(client)).json()["reportId"]
        produced = {REPORT_ID_KEY: earlier}
        await substrate.store.put_json(
            artifact_key(KEY, ArtifactKind.ANALYSIS), {"analysis": {"overallScore": 3}}, metadata=produced
        )
        await substrate.store.put(
            artifact_key(KEY, ArtifactKind.FORMATTED_EPUB), b"PK-old", "application/epub+zip", produced
        )
        current = (await _enqueue(client)).json()["reportId"]

        stale = await client.get(f"/reports/{current}/artifacts/analysis")
        stale_export = await client.get(f"/reports/{current}/export/epub")
        own = await client.get(f"/reports/{earlier}/artifacts/analysis")

    assert current != earlier
    assert stale.status_code == 404
    assert stale_export.status_code == 404
    assert own.status_code == 200


async def test_cover_variations_are_served_by_number():
    substrate = await _substrate()
    async with await _client(substrate) as client:
        report_id = (await _enqueue(client)).json()["reportId"]
        await substrate.store.put(cover_variation_key(KEY, 2), b"\x89PNG-2", "image/png", {REPORT_ID_KEY: report_id})

        second = await client.get(f"/reports/{report_id}/artifacts/cover-variation-2")
        with_suffix = await client.get(f"/reports/{report_id}/artifacts/cover-variation-2.png")
        absent = await client.get(f"/reports/{report_id}/artifacts/cover-variation-3")
        out_of_range = await client.get(f"/reports/{report_id}/artifacts/cover-variation-6")

    assert second.status_code == 200
    assert second.headers["content-type"] == "image/png"
    assert second.content == b"\x89PNG-2"
    assert with_suffix.status_code == 200
    assert absent.status_code == 404
    assert out_of_range.status_code == 404


async def test_analyze_rejects_oversized_manuscript():
    substrate = await _substrate(max_file_size=16)
    async with await _client(substrate) as client:
        response = await _enqueue(client)

    assert response.status_code == 400
    assert "limit" in response.json()["error"]
    assert await substrate.queue.depth(ANALYSIS_QUEUE) == 0


async def test_reports_are_private_to_their_owner():
    substrate = await _substrate()
    async with await _client(substrate) as owner:
        report_id = (await _enqueue(owner)).json()["reportId"]
    async with await _client(substrate, user_id="U2") as other:
        response = await other.get(f"/reports/{report_id}/status")

    assert response.status_code == 403


async def test_cancel_sets_flag_until_run_is_terminal():
    substrate = await _substrate()
    async with await _client(substrate) as client:
        report_id = (await _enqueue(client)).json()["reportId"]
        accepted = await client.post(f"/reports/{report_id}/cancel")
        flagged = await substrate.index.is_cancelled(report_id)

        status = await substrate.index.read_status(report_id)
        await substrate.index.write_status(report_id, status.model_copy(update={"status": RunState.COMPLETE}))
        conflict = await client.post(f"/reports/{report_id}/cancel")

    assert accepted.status_code == 202
    assert accepted.json() == {"reportId": report_id, "status": "cancelling"}
    assert flagged is True
    assert conflict.status_code == 409

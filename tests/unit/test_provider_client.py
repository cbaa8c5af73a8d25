"""Retry, repair and cost recording in the provider client."""

import json

import pytest

from manuscript_providers import (
    CallParams,
    MockImageProvider,
    MockProvider,
    ParseFailure,
    ProviderClient,
    ProviderFailure,
    ProviderHTTPError,
    ProviderRequest,
    ProviderResponse,
    ProviderTransportError,
    repair_json,
)
from manuscript_providers.exceptions import ProviderConfigError
from manuscript_providers.pricing import estimate_cost, estimate_image_cost, stripe_fee
from manuscript_schemas import Attribution, CostCenter
from manuscript_substrate import InMemoryCostLedger

pytestmark = pytest.mark.anyio("asyncio")

ATTRIBUTION = Attribution(user_id="U1", manuscript_id="M1", feature_name="analysis", operation="analyze_developmental")


@pytest.fixture
def anyio_backend():
    return "asyncio"


class _ScriptedProvider(MockProvider):
    """Raises or answers from a script, one entry per attempt."""

    def __init__(self, script) -> None:
        super().__init__()
        self.script = list(script)

    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        self.requests.append(request)
        step = self.script.pop(0) if self.script else {"ok": True}
        if isinstance(step, Exception):
            raise step
        text = step if isinstance(step, str) else json.dumps(step)
        return ProviderResponse(
            text=text, raw={}, model="scripted", prompt_tokens=12, completion_tokens=8, cost_usd=0.0123
        )


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _client(provider, **kwargs):
    sleeps = _Sleeps()
    ledger = InMemoryCostLedger()
    kwargs.setdefault("jitter", 0.0)
    client = ProviderClient(provider, ledger=ledger, sleep=sleeps, **kwargs)
    return client, ledger, sleeps


async def test_rate_limited_calls_back_off_then_succeed():
    provider = _ScriptedProvider([ProviderHTTPError(429, "slow down")] * 3 + [{"overallScore": 8}])
    client, ledger, sleeps = _client(provider)

    call = await client.call("prompt", ATTRIBUTION)

    assert call.parsed == {"overallScore": 8}
    assert call.attempts == 4
    assert len(provider.requests) == 4
    assert sleeps.delays == [2.0, 4.0, 8.0]
    assert len(ledger.entries) == 1
    entry = ledger.entries[0]
    assert entry.operation == "analyze_developmental"
    assert entry.cost_usd == pytest.approx(0.0123)
    assert entry.cost_center is CostCenter.MOCK
    assert entry.metadata["attempts"] == 4
    assert (entry.input_tokens, entry.output_tokens) == (12, 8)


def test_backoff_is_capped_and_jittered():
    client = ProviderClient(MockProvider(), jitter=0.1)

    for attempt in range(1, 10):
        delay = client.backoff_delay(attempt)
        expected = min(2**attempt, 30.0)
        assert expected * 0.9 - 1e-9 <= delay <= min(expected * 1.1, 30.0) + 1e-9


async def test_client_errors_fail_without_retry():
    provider = _ScriptedProvider([ProviderHTTPError(400, "bad request")])
    client, ledger, sleeps = _client(provider)

    with pytest.raises(ProviderFailure) as excinfo:
        await client.call("prompt", ATTRIBUTION)

    assert excinfo.value.upstream_status == 400
    assert excinfo.value.attempts == 1
    assert len(provider.requests) == 1
    assert sleeps.delays == []
    assert ledger.entries == []


async def test_exhausted_retries_raise_with_last_status():
    provider = _ScriptedProvider([ProviderHTTPError(503, "down")] * 3)
    client, ledger, sleeps = _client(provider, max_attempts=3)

    with pytest.raises(ProviderFailure) as excinfo:
        await client.call("prompt", ATTRIBUTION)

    assert excinfo.value.attempts == 3
    assert excinfo.value.upstream_status == 503
    assert len(sleeps.delays) == 2
    assert ledger.entries == []


async def test_transport_errors_are_retried():
    provider = _ScriptedProvider([ProviderTransportError("reset"), {"ok": 1}])
    client, ledger, _ = _client(provider)

    call = await client.call("prompt", ATTRIBUTION)

    assert call.attempts == 2
    assert len(ledger.entries) == 1


async def test_repairable_output_is_accepted_first_time():
    provider = _ScriptedProvider(['Here you go:\n```json\n{"overallScore": 7, "issues": [],}\n```'])
    client, _, sleeps = _client(provider)

    call = await client.call_section("prompt", ATTRIBUTION)

    assert call.parse_failed is False
    assert call.parsed == {"overallScore": 7, "issues": []}
    assert sleeps.delays == []


async def test_unparseable_section_returns_sentinel_after_retries():
    provider = _ScriptedProvider(["no json here"] * 5)
    client, ledger, sleeps = _client(provider)

    call = await client.call_section("prompt", ATTRIBUTION)

    assert call.parse_failed is True
    assert call.parsed == {}
    assert call.text == "no json here"
    assert call.attempts == 5
    assert len(sleeps.delays) == 4
    assert ledger.entries == []


async def test_unparseable_call_raises():
    provider = _ScriptedProvider(["still not json"] * 2)
    client, _, _ = _client(provider, max_attempts=2)

    with pytest.raises(ProviderFailure):
        await client.call("prompt", ATTRIBUTION, CallParams(temperature=0.2))

    assert provider.requests[0].temperature == 0.2
    assert provider.requests[0].metadata == {"operation": "analyze_developmental", "feature": "analysis"}


async def test_images_are_cost_tracked():
    client, ledger, _ = _client(MockProvider(), image_provider=MockImageProvider())

    call = await client.generate_images("a cover", 2, ATTRIBUTION.for_operation("generate_cover"))

    assert len(call.images) == 2
    assert call.images[0].data.startswith(b"\x89PNG")
    assert ledger.entries[0].operation == "generate_cover"
    assert ledger.entries[0].metadata["images"] == 2


async def test_images_require_an_image_provider():
    client, _, _ = _client(MockProvider())

    with pytest.raises(ProviderConfigError):
        await client.generate_images("a cover", 1, ATTRIBUTION)


def test_zero_attempts_is_rejected():
    with pytest.raises(ValueError):
        ProviderClient(MockProvider(), max_attempts=0)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ('{"a": 1, "b": [1, 2,],}', {"a": 1, "b": [1, 2]}),
        ("{score: 7, issues: []}", {"score": 7, "issues": []}),
        ('{"note": "line one\nline two"}', {"note": "line oneline two"}),
        ('Sure! {"a": {"b": "}"}} trailing words', {"a": {"b": "}"}}),
    ],
)
def test_repair_json_recovers_common_defects(text, expected):
    assert repair_json(text) == expected


@pytest.mark.parametrize("text", ["", "   ", "no braces", "{unterminated", "[1, 2, 3]"])
def test_repair_json_gives_up(text):
    with pytest.raises(ParseFailure):
        repair_json(text)


def test_pricing_tables():
    assert estimate_cost("mock", "anything", 1000, 1000) == 0.0
    assert estimate_cost("anthropic", "claude-sonnet-4-5", 1_000_000, 0) == 3.0
    assert estimate_cost("openai", "gpt-4o-2024-08-06", 0, 1_000_000) == 10.0
    assert estimate_cost("unknown", "m", 10, 10) is None
    assert estimate_image_cost("dall-e-3", quality="hd", size="1024x1792", count=2) == 0.24
    assert stripe_fee(10.0) == 0.59
    assert stripe_fee(0) == 0.0

"""Builders shared by the pipeline, worker and ingress tests."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass

from manuscript_providers import ImageProvider, LLMProvider, MockImageProvider, MockProvider, ProviderClient
from manuscript_schemas import ExportFormat, ManuscriptRecord, StatusRecord
from manuscript_substrate import (
    InMemoryArtifactStore,
    InMemoryCostLedger,
    InMemoryManuscriptRepository,
    ReportIndex,
)

from services.orchestrator.app.flows import PipelineOrchestrator

STUB_RENDERERS = {
    ExportFormat.EPUB: lambda document: b"PK-epub:" + document.title.encode("utf-8"),
    ExportFormat.PDF: lambda document: b"%PDF-stub:" + document.title.encode("utf-8"),
}


async def fast_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


class RecordingIndex(ReportIndex):
    """Report index that keeps every status record it publishes."""

    def __init__(self, store, **kwargs) -> None:
        super().__init__(store, **kwargs)
        self.history: dict[str, list[StatusRecord]] = defaultdict(list)

    async def write_status(self, report_id: str, record: StatusRecord) -> None:
        self.history[report_id].append(record)
        await super().write_status(report_id, record)


def sample_manuscript(words: int, *, chapters: int = 3) -> str:
    """Plain-text manuscript of exactly ``words`` body words split into chapters."""

    vocabulary = ("the", "night", "train", "carried", "her", "secret", "north", "quietly")
    per_chapter = words // chapters
    parts = []
    written = 0
    for number in range(1, chapters + 1):
        count = per_chapter if number < chapters else words - written
        body = " ".join(vocabulary[index % len(vocabulary)] for index in range(count))
        parts.append(f"Chapter {number}: Part {number}\n\n{body}")
        written += count
    return "\n\n".join(parts)


@dataclass
class Harness:
    store: InMemoryArtifactStore
    index: RecordingIndex
    manuscripts: InMemoryManuscriptRepository
    ledger: InMemoryCostLedger
    provider: LLMProvider
    client: ProviderClient
    orchestrator: PipelineOrchestrator


def build_harness(
    provider: LLMProvider | None = None,
    *,
    image_provider: ImageProvider | None = None,
    **orchestrator_kwargs,
) -> Harness:
    store = InMemoryArtifactStore()
    index = RecordingIndex(store)
    manuscripts = InMemoryManuscriptRepository()
    ledger = InMemoryCostLedger()
    provider = provider or MockProvider()
    client = ProviderClient(
        provider,
        ledger=ledger,
        image_provider=image_provider or MockImageProvider(),
        sleep=fast_sleep,
    )
    orchestrator_kwargs.setdefault("renderers", STUB_RENDERERS)
    orchestrator = PipelineOrchestrator(
        store=store,
        index=index,
        manuscripts=manuscripts,
        client=client,
        section_pause=0,
        sleep=fast_sleep,
        **orchestrator_kwargs,
    )
    return Harness(store, index, manuscripts, ledger, provider, client, orchestrator)


async def seed_run(
    harness: Harness,
    text: str | None,
    *,
    manuscript_key: str = "U1/M1/book.txt",
    **payload_fields,
) -> dict:
    """Store the manuscript (unless ``text`` is None), register it and mint a report id."""

    if text is not None:
        await harness.store.put(manuscript_key, text, "text/plain")
    harness.manuscripts.add(
        ManuscriptRecord(id="M1", user_id="U1", filename="book.txt", storage_key=manuscript_key, genre="thriller")
    )
    report_id = await harness.index.mint(manuscript_key)
    return {
        "reportId": report_id,
        "manuscriptKey": manuscript_key,
        "manuscriptId": "M1",
        "userId": "U1",
        "genre": "thriller",
        "styleGuide": "chicago",
        **payload_fields,
    }


def operations(provider) -> list[str]:
    return [str(request.metadata.get("operation")) for request in provider.requests]

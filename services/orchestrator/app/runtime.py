"""Per-run handles passed to every stage engine."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from manuscript_providers import ProviderClient
from manuscript_schemas import AnalysisJobPayload, ArtifactKind, Attribution
from manuscript_substrate import REPORT_ID_KEY, ArtifactStore, artifact_key

logger = logging.getLogger(__name__)

SECTION_PAUSE_SECONDS = 1.0


@dataclass
class StageContext:
    payload: AnalysisJobPayload
    store: ArtifactStore
    client: ProviderClient
    manuscript_text: str
    section_pause: float = SECTION_PAUSE_SECONDS
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    outputs: dict[ArtifactKind, Any] = field(default_factory=dict)

    @property
    def prefix(self) -> str:
        return self.payload.prefix

    @property
    def report_id(self) -> str:
        return self.payload.report_id

    def attribute(self, operation: str, feature_name: str = "analysis") -> Attribution:
        return Attribution(
            user_id=self.payload.user_id,
            manuscript_id=self.payload.manuscript_id,
            feature_name=feature_name,
            operation=operation,
        )

    async def write_artifact(self, kind: ArtifactKind, payload: Any) -> str:
        """Store a JSON artifact and keep it for downstream stages of this run."""

        key = artifact_key(self.prefix, kind)
        await self.store.put_json(key, payload, metadata={REPORT_ID_KEY: self.report_id})
        self.outputs[kind] = payload
        logger.info("Artifact written", extra={"report_id": self.report_id, "artifact": kind.value})
        return key

    async def write_binary(self, key: str, body: bytes, content_type: str) -> str:
        await self.store.put(key, body, content_type, {REPORT_ID_KEY: self.report_id})
        logger.info("Artifact written", extra={"report_id": self.report_id, "artifact": key.rsplit("-", 1)[-1]})
        return key

    async def read_artifact(self, kind: ArtifactKind) -> Any | None:
        if kind in self.outputs:
            return self.outputs[kind]
        return await self.store.get_json(artifact_key(self.prefix, kind))


async def gather_scoped(*aws: Awaitable[Any]) -> list[Any]:
    """Await sub-tasks together; the first failure cancels its siblings before it propagates."""

    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(aw) for aw in aws]
    except ExceptionGroup as errors:
        raise errors.exceptions[0]
    return [task.result() for task in tasks]

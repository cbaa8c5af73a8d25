"""Commands the outside world can issue against the pipeline.

The HTTP layer in ``main.py`` only translates requests into these calls; every
precondition (session, ownership, budget, backpressure) is checked here.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from manuscript_schemas import (
    AnalysisJobPayload,
    ArtifactKind,
    ExportFormat,
    ManuscriptRecord,
    ManuscriptStatus,
    PipelineStage,
    RunState,
    StatusRecord,
    UserRecord,
)
from manuscript_schemas.models.jobs import MAX_COVER_VARIATIONS
from manuscript_schemas.utils.validators import normalise_genre, normalise_style_guide
from manuscript_substrate import (
    ANALYSIS_QUEUE,
    CONTENT_LENGTH,
    REPORT_ID_KEY,
    StoredObject,
    Substrate,
    artifact_key,
    cover_variation_key,
)
from manuscript_substrate.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ExportNotReady,
    NotFoundError,
    QueueBusy,
    RequestValidationError,
)

logger = logging.getLogger(__name__)

COVER_VARIATION_SLUG = re.compile(r"^cover-variation-(\d+)(?:\.png)?$")


class IngressAdapter:
    def __init__(self, substrate: Substrate) -> None:
        self.substrate = substrate
        self.settings = substrate.settings

    async def authenticate(self, cookie: str | None) -> UserRecord:
        """Resolve a session cookie to its user or raise ``AuthenticationError``."""

        signer = self.substrate.signer
        session_id = signer.unsign(cookie) if signer else cookie
        user_id = await self.substrate.sessions.lookup(session_id)
        if user_id is None:
            raise AuthenticationError("Authentication required")
        user = await self.substrate.users.get(user_id)
        if user is None:
            raise AuthenticationError("Session user no longer exists")
        return user

    async def _owned_manuscript(self, user: UserRecord, manuscript_key: str) -> ManuscriptRecord:
        manuscript = await self.substrate.manuscripts.get_by_key(manuscript_key)
        if manuscript is None:
            raise NotFoundError("Manuscript not found")
        if manuscript.user_id != user.id and not user.is_admin:
            raise AuthorizationError("Not allowed to access this manuscript")
        return manuscript

    async def _report_prefix(self, user: UserRecord, report_id: str) -> str:
        prefix = await self.substrate.index.resolve(report_id)
        await self._owned_manuscript(user, prefix)
        return prefix

    async def enqueue_analysis(
        self,
        user: UserRecord,
        manuscript_key: str,
        genre: str | None = None,
        style_guide: str = "chicago",
        **options: Any,
    ) -> str:
        """Mint a report id, publish ``queued`` and send the analysis job."""

        if not manuscript_key:
            raise RequestValidationError("manuscriptKey is required")
        try:
            style_guide = normalise_style_guide(style_guide)
            genre = normalise_genre(genre) if genre else None
        except ValueError as exc:
            raise RequestValidationError(str(exc)) from exc

        manuscript = await self._owned_manuscript(user, manuscript_key)
        await self.substrate.budget.ensure_open()
        depth = await self.substrate.queue.depth(ANALYSIS_QUEUE)
        if depth >= self.settings.queue_high_watermark:
            logger.warning("Rejecting enqueue under backpressure", extra={"queue_depth": depth})
            raise QueueBusy("Analysis queue is busy; try again shortly")
        upload = await self.substrate.store.head(manuscript_key)
        if upload is None:
            raise NotFoundError("Manuscript file not found")
        size = int(upload.get(CONTENT_LENGTH) or 0)
        if size > self.settings.max_file_size:
            raise RequestValidationError(
                f"Manuscript is {size} bytes; the limit is {self.settings.max_file_size} bytes"
            )

        index = self.substrate.index
        report_id = await index.mint(manuscript_key)
        await index.write_status(
            report_id,
            StatusRecord(
                status=RunState.QUEUED,
                progress=0,
                message="Queued for analysis",
                current_step=PipelineStage.INITIALIZATION.value,
            ),
        )
        payload = AnalysisJobPayload(
            report_id=report_id,
            manuscript_key=manuscript_key,
            manuscript_id=manuscript.id,
            user_id=user.id,
            genre=genre or manuscript.genre,
            style_guide=style_guide,
            title=options.get("title") or manuscript.title,
            author_data=options.get("authorData") or {},
            series_data=options.get("seriesData"),
            cover_variations=options.get("coverVariations") or 3,
            stages=options.get("stages"),
        )
        job_id = await self.substrate.queue.send(ANALYSIS_QUEUE, payload.model_dump(mode="json", by_alias=True))
        await self.substrate.manuscripts.set_status(manuscript.id, ManuscriptStatus.QUEUED)
        logger.info(
            "Analysis enqueued",
            extra={"report_id": report_id, "job_id": job_id, "user_id": user.id, "manuscript_id": manuscript.id},
        )
        return report_id

    async def get_status(self, user: UserRecord, report_id: str) -> StatusRecord:
        await self._report_prefix(user, report_id)
        record = await self.substrate.index.read_status(report_id)
        if record is None:
            raise NotFoundError("Status not found")
        return record

    async def _run_output(self, report_id: str, key: str) -> StoredObject | None:
        """The object at ``key`` when this run wrote it; leftovers from earlier runs are ignored."""

        stored = await self.substrate.store.get(key)
        if stored is None or stored.metadata.get(REPORT_ID_KEY) != report_id:
            return None
        return stored

    async def get_artifact(self, user: UserRecord, report_id: str, kind: ArtifactKind) -> StoredObject:
        prefix = await self._report_prefix(user, report_id)
        stored = await self._run_output(report_id, artifact_key(prefix, kind))
        if stored is None:
            raise NotFoundError(f"Artifact {kind.value} not found")
        return stored

    async def get_cover_variation(self, user: UserRecord, report_id: str, number: int) -> StoredObject:
        if not 1 <= number <= MAX_COVER_VARIATIONS:
            raise NotFoundError(f"Cover variation {number} does not exist")
        prefix = await self._report_prefix(user, report_id)
        stored = await self._run_output(report_id, cover_variation_key(prefix, number))
        if stored is None:
            raise NotFoundError(f"Cover variation {number} not found")
        return stored

    async def download_export(self, user: UserRecord, report_id: str, export_format: ExportFormat) -> StoredObject:
        prefix = await self._report_prefix(user, report_id)
        stored = await self._run_output(report_id, artifact_key(prefix, export_format.artifact))
        if stored is None:
            raise ExportNotReady(f"{export_format.value.upper()} export is not ready")
        return stored

    async def request_cancel(self, user: UserRecord, report_id: str) -> StatusRecord:
        """Flag a run for cancellation; the worker stops at the next stage boundary."""

        record = await self.get_status(user, report_id)
        if record.status.terminal:
            raise ConflictError(f"Report already {record.status.value}")
        await self.substrate.index.request_cancel(report_id)
        logger.info("Cancellation requested", extra={"report_id": report_id, "user_id": user.id})
        return record

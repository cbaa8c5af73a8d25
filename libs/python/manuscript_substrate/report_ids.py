"""Report ids: short public handles for one analysis run."""

from __future__ import annotations

import logging
import secrets
from typing import Callable

from manuscript_schemas import StatusRecord
from manuscript_schemas.utils.validators import is_report_id

from .artifacts import ArtifactStore, cancel_key, report_key, status_key
from .errors import IdExhausted, NotFoundError

logger = logging.getLogger(__name__)

STATUS_TTL_SECONDS = 7 * 24 * 3600
CANCEL_TTL_SECONDS = 24 * 3600
MAX_MINT_ATTEMPTS = 8


def random_report_id() -> str:
    return secrets.token_hex(4)


class ReportIndex:
    """Maps report ids to manuscript prefixes and holds per-run status."""

    def __init__(
        self,
        store: ArtifactStore,
        *,
        id_factory: Callable[[], str] = random_report_id,
        max_attempts: int = MAX_MINT_ATTEMPTS,
    ) -> None:
        self.store = store
        self._id_factory = id_factory
        self._max_attempts = max_attempts

    async def mint(self, prefix: str) -> str:
        """Allocate an unused id bound to ``prefix``.

        The mapping is written with a conditional put, so two concurrent
        mints can never claim the same id.

        Raises:
            IdExhausted: if every candidate collided.
        """

        for attempt in range(1, self._max_attempts + 1):
            candidate = self._id_factory()
            if not is_report_id(candidate):
                raise ValueError(f"id factory produced an invalid report id: {candidate!r}")
            if await self.store.put_if_absent(report_key(candidate), prefix, "text/plain"):
                logger.info("Minted report id", extra={"report_id": candidate, "attempt": attempt})
                return candidate
            logger.warning("Report id collision", extra={"report_id": candidate, "attempt": attempt})
        raise IdExhausted(f"Could not allocate a report id after {self._max_attempts} attempts")

    async def resolve(self, report_id: str) -> str:
        if not is_report_id(report_id):
            raise NotFoundError("Report not found")
        stored = await self.store.get(report_key(report_id))
        if stored is None:
            raise NotFoundError("Report not found")
        return stored.text()

    async def write_status(self, report_id: str, record: StatusRecord) -> None:
        await self.store.put_json(status_key(report_id), record.to_wire(), ttl_seconds=STATUS_TTL_SECONDS)

    async def read_status(self, report_id: str) -> StatusRecord | None:
        if not is_report_id(report_id):
            return None
        payload = await self.store.get_json(status_key(report_id))
        if payload is None:
            return None
        return StatusRecord.model_validate(payload)

    async def request_cancel(self, report_id: str) -> None:
        await self.store.put(cancel_key(report_id), b"1", "text/plain", ttl_seconds=CANCEL_TTL_SECONDS)

    async def is_cancelled(self, report_id: str) -> bool:
        return await self.store.head(cancel_key(report_id)) is not None

    async def clear_cancel(self, report_id: str) -> None:
        await self.store.delete(cancel_key(report_id))

    async def forget(self, report_id: str) -> None:
        """Drop the mapping, status and cancel flag (manuscript deletion)."""

        for key in (report_key(report_id), status_key(report_id), cancel_key(report_id)):
            await self.store.delete(key)

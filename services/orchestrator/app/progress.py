"""Status record publication for one report.

Progress only moves forward until the run reaches a terminal state. Inside a
stage a background ticker nudges progress toward the stage's end boundary,
stopping five points short of it.
"""

from __future__ import annotations

import asyncio
import logging
import random
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator, Awaitable, Callable

from manuscript_schemas import PipelineStage, RunState, StatusRecord
from manuscript_substrate import ReportIndex

logger = logging.getLogger(__name__)

TICK_SECONDS = 3.0
TICK_STEP = (1, 3)
TICK_MARGIN = 5


class ProgressPublisher:
    def __init__(
        self,
        index: ReportIndex,
        report_id: str,
        *,
        tick_seconds: float = TICK_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._index = index
        self.report_id = report_id
        self.tick_seconds = tick_seconds
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._lock = asyncio.Lock()
        self.progress = 0
        self.step = PipelineStage.INITIALIZATION.value
        self.state: RunState | None = None

    async def publish(
        self,
        state: RunState,
        progress: int,
        message: str,
        step: str | None = None,
        **extra: Any,
    ) -> StatusRecord:
        async with self._lock:
            if state is not RunState.ERROR:
                progress = max(self.progress, progress)
            self.progress = max(0, min(progress, 100))
            self.step = step or self.step
            self.state = state
            record = StatusRecord(
                status=state,
                progress=self.progress,
                message=message,
                current_step=self.step,
                **extra,
            )
            await self._index.write_status(self.report_id, record)
        logger.info(
            "Status published",
            extra={
                "report_id": self.report_id,
                "state": state.value,
                "progress": record.progress,
                "stage": record.current_step,
            },
        )
        return record

    async def fail(self, message: str, *, reason: str | None = None) -> StatusRecord:
        return await self.publish(RunState.ERROR, self.progress, message, reason=reason)

    async def _tick(self, ceiling: int, message: str) -> None:
        while True:
            await self._sleep(self.tick_seconds)
            if self.progress >= ceiling:
                continue
            step = self._rng.randint(*TICK_STEP)
            await self.publish(RunState.PROCESSING, min(self.progress + step, ceiling), message)

    @asynccontextmanager
    async def stage(
        self,
        step: str,
        start: int,
        end: int,
        message: str,
        done_message: str | None = None,
    ) -> AsyncIterator[None]:
        """Publish ``start`` on entry and ``end`` on clean exit, ticking in between."""

        await self.publish(RunState.PROCESSING, start, message, step)
        ceiling = end - TICK_MARGIN
        ticker: asyncio.Task | None = None
        if ceiling > self.progress:
            ticker = asyncio.create_task(self._tick(ceiling, message))
        try:
            yield
        finally:
            if ticker is not None:
                ticker.cancel()
                with suppress(asyncio.CancelledError):
                    await ticker
        await self.publish(RunState.PROCESSING, end, done_message or f"{message}: done", step)

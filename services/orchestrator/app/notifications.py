"""Completion notification hook."""

from __future__ import annotations

import logging
from typing import Protocol

from .models import RunSummary

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def analysis_complete(self, user_id: str | None, summary: RunSummary) -> None: ...


class LoggingNotifier:
    """Default notifier: records the completion in the service log."""

    async def analysis_complete(self, user_id: str | None, summary: RunSummary) -> None:
        logger.info(
            "Analysis complete notification",
            extra={
                "user_id": user_id,
                "report_id": summary.report_id,
                "partial_success": summary.partial_success,
            },
        )

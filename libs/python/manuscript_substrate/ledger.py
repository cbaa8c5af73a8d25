"""Append-only cost ledger and the monthly budget kill switch."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from manuscript_schemas import CostCenter, CostEntry, CostSummaryRow

from .artifacts import ArtifactStore
from .errors import BudgetExhausted

logger = logging.getLogger(__name__)

KILL_SWITCH_KEY = "budget:kill-switch"


def month_start(now: float) -> float:
    moment = datetime.fromtimestamp(now, tz=timezone.utc)
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0).timestamp()


class CostLedger(ABC):
    @abstractmethod
    async def append(self, entry: CostEntry) -> None:
        """Persist one entry. Entries are never updated."""

    @abstractmethod
    async def summarise(self, since: float) -> list[CostSummaryRow]:
        """Totals per cost center and feature for entries created at or after ``since``."""

    async def total_since(self, since: float) -> float:
        rows = await self.summarise(since)
        return round(sum(row.total_usd for row in rows), 6)

    async def aclose(self) -> None:
        return None


class InMemoryCostLedger(CostLedger):
    def __init__(self) -> None:
        self.entries: list[CostEntry] = []

    async def append(self, entry: CostEntry) -> None:
        self.entries.append(entry)

    async def summarise(self, since: float) -> list[CostSummaryRow]:
        buckets: dict[tuple[CostCenter, str], list[float]] = defaultdict(list)
        for entry in self.entries:
            if entry.created_at >= since:
                buckets[(entry.cost_center, entry.feature_name)].append(entry.cost_usd)
        return [
            CostSummaryRow(
                cost_center=center,
                feature_name=feature,
                calls=len(costs),
                total_usd=round(sum(costs), 6),
            )
            for (center, feature), costs in sorted(buckets.items(), key=lambda item: (item[0][0].value, item[0][1]))
        ]


class PostgresCostLedger(CostLedger):
    """``cost_entries`` table; blocking psycopg calls run in a worker thread."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    @classmethod
    def from_url(cls, conninfo: str) -> "PostgresCostLedger":
        return cls(ConnectionPool(conninfo, min_size=1, max_size=5, open=True))

    def _insert(self, entry: CostEntry) -> None:
        with self._pool.connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO cost_entries (
                    id, user_id, manuscript_id, cost_center, feature_name, operation,
                    cost_usd, input_tokens, output_tokens, model, metadata, created_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, to_timestamp(%s))
                """,
                (
                    entry.id,
                    entry.user_id,
                    entry.manuscript_id,
                    entry.cost_center.value,
                    entry.feature_name,
                    entry.operation,
                    entry.cost_usd,
                    entry.input_tokens,
                    entry.output_tokens,
                    entry.model,
                    json.dumps(entry.metadata),
                    entry.created_at,
                ),
            )
            conn.commit()

    def _summary(self, since: float) -> list[CostSummaryRow]:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT cost_center, feature_name, COUNT(*) AS calls, COALESCE(SUM(cost_usd), 0) AS total_usd
                FROM cost_entries
                WHERE created_at >= to_timestamp(%s)
                GROUP BY cost_center, feature_name
                ORDER BY cost_center, feature_name
                """,
                (since,),
            )
            rows = cur.fetchall()
        return [
            CostSummaryRow(
                cost_center=row["cost_center"],
                feature_name=row["feature_name"],
                calls=row["calls"],
                total_usd=float(row["total_usd"]),
            )
            for row in rows
        ]

    async def append(self, entry: CostEntry) -> None:
        await asyncio.to_thread(self._insert, entry)

    async def summarise(self, since: float) -> list[CostSummaryRow]:
        return await asyncio.to_thread(self._summary, since)

    async def aclose(self) -> None:
        await asyncio.to_thread(self._pool.close)


@dataclass(slots=True)
class BudgetSnapshot:
    month_to_date_usd: float
    cap_usd: float | None
    tripped: bool


class BudgetPolicy:
    """Trips a kill switch once month-to-date spend reaches the cap.

    Only new enqueues consult the switch; runs already in flight finish.
    """

    def __init__(
        self,
        ledger: CostLedger,
        flags: ArtifactStore,
        *,
        monthly_cap_usd: float | None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ledger = ledger
        self.flags = flags
        self.monthly_cap_usd = monthly_cap_usd
        self._clock = clock

    async def evaluate(self) -> BudgetSnapshot:
        spent = await self.ledger.total_since(month_start(self._clock()))
        tripped = self.monthly_cap_usd is not None and spent >= self.monthly_cap_usd
        if tripped:
            await self.flags.put(KILL_SWITCH_KEY, f"{spent:.6f}", "text/plain")
            logger.error(
                "Monthly budget exhausted; pausing new analyses",
                extra={"cost_usd": spent, "cap_usd": self.monthly_cap_usd},
            )
        else:
            await self.flags.delete(KILL_SWITCH_KEY)
        return BudgetSnapshot(month_to_date_usd=spent, cap_usd=self.monthly_cap_usd, tripped=tripped)

    async def is_tripped(self) -> bool:
        return await self.flags.head(KILL_SWITCH_KEY) is not None

    async def ensure_open(self) -> None:
        if await self.is_tripped():
            raise BudgetExhausted()

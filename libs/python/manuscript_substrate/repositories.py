"""Relational lookups the pipeline needs: users and manuscripts."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from manuscript_schemas import ManuscriptRecord, ManuscriptStatus, UserRecord

logger = logging.getLogger(__name__)


class ManuscriptRepository(ABC):
    @abstractmethod
    async def get(self, manuscript_id: str) -> ManuscriptRecord | None: ...

    @abstractmethod
    async def get_by_key(self, storage_key: str) -> ManuscriptRecord | None: ...

    @abstractmethod
    async def set_status(self, manuscript_id: str, status: ManuscriptStatus) -> None: ...


class UserRepository(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> UserRecord | None: ...


class InMemoryManuscriptRepository(ManuscriptRepository):
    def __init__(self, records: list[ManuscriptRecord] | None = None) -> None:
        self._records: dict[str, ManuscriptRecord] = {}
        for record in records or []:
            self.add(record)

    def add(self, record: ManuscriptRecord) -> ManuscriptRecord:
        self._records[record.id] = record
        return record

    async def get(self, manuscript_id: str) -> ManuscriptRecord | None:
        return self._records.get(manuscript_id)

    async def get_by_key(self, storage_key: str) -> ManuscriptRecord | None:
        for record in self._records.values():
            if record.storage_key == storage_key:
                return record
        return None

    async def set_status(self, manuscript_id: str, status: ManuscriptStatus) -> None:
        record = self._records.get(manuscript_id)
        if record is not None:
            self._records[manuscript_id] = record.model_copy(update={"status": status})


class InMemoryUserRepository(UserRepository):
    def __init__(self, users: list[UserRecord] | None = None) -> None:
        self._users = {user.id: user for user in users or []}

    def add(self, user: UserRecord) -> UserRecord:
        self._users[user.id] = user
        return user

    async def get(self, user_id: str) -> UserRecord | None:
        return self._users.get(user_id)


_MANUSCRIPT_COLUMNS = "id::text AS id, user_id::text AS user_id, filename, storage_key, genre, title, status, created_at"


def _manuscript_from_row(row: dict) -> ManuscriptRecord:
    return ManuscriptRecord(
        id=row["id"],
        user_id=row["user_id"],
        filename=row["filename"],
        storage_key=row["storage_key"],
        genre=row["genre"] or "general",
        title=row.get("title"),
        status=row["status"],
        created_at=row["created_at"],
    )


class PostgresManuscriptRepository(ManuscriptRepository):
    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def _fetch_one(self, where: str, value: str) -> ManuscriptRecord | None:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(f"SELECT {_MANUSCRIPT_COLUMNS} FROM manuscripts WHERE {where} = %s", (value,))
            row = cur.fetchone()
        return _manuscript_from_row(row) if row else None

    def _update_status(self, manuscript_id: str, status: ManuscriptStatus) -> None:
        with self._pool.connection() as conn, conn.cursor() as cur:
            cur.execute(
                "UPDATE manuscripts SET status = %s, updated_at = NOW() WHERE id = %s",
                (status.value, manuscript_id),
            )
            conn.commit()

    async def get(self, manuscript_id: str) -> ManuscriptRecord | None:
        return await asyncio.to_thread(self._fetch_one, "id::text", manuscript_id)

    async def get_by_key(self, storage_key: str) -> ManuscriptRecord | None:
        return await asyncio.to_thread(self._fetch_one, "storage_key", storage_key)

    async def set_status(self, manuscript_id: str, status: ManuscriptStatus) -> None:
        await asyncio.to_thread(self._update_status, manuscript_id, status)
        logger.info("Manuscript status updated", extra={"manuscript_id": manuscript_id, "status": status.value})


class PostgresUserRepository(UserRepository):
    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def _fetch(self, user_id: str) -> UserRecord | None:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                "SELECT id::text AS id, email, role, subscription_tier FROM users WHERE id::text = %s",
                (user_id,),
            )
            row = cur.fetchone()
        if not row:
            return None
        return UserRecord(
            id=row["id"],
            email=row["email"],
            role=row["role"] or "user",
            subscription_tier=row["subscription_tier"] or "free",
        )

    async def get(self, user_id: str) -> UserRecord | None:
        return await asyncio.to_thread(self._fetch, user_id)

"""Server-side sessions keyed by an opaque random token."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Callable

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .errors import ServiceUnavailable

logger = logging.getLogger(__name__)

DEFAULT_SESSION_SECONDS = 1800
REMEMBER_ME_SECONDS = 7 * 24 * 3600


def generate_session_id() -> str:
    return secrets.token_urlsafe(32)


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class Session:
    id: str
    user_id: str
    created_at: float
    expires_at: float


class SessionStore(ABC):
    def __init__(
        self,
        *,
        ttl_seconds: int = DEFAULT_SESSION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    async def create(self, user_id: str, *, remember_me: bool = False) -> Session:
        now = self._clock()
        ttl = REMEMBER_ME_SECONDS if remember_me else self.ttl_seconds
        session = Session(id=generate_session_id(), user_id=user_id, created_at=now, expires_at=now + ttl)
        await self._write(_hash_token(session.id), session, ttl)
        logger.info("Session created", extra={"user_id": user_id, "remember_me": remember_me})
        return session

    async def lookup(self, session_id: str | None) -> str | None:
        """Return the owning user id, or ``None`` for unknown or expired sessions."""

        if not session_id:
            return None
        session = await self._read(_hash_token(session_id))
        if session is None or session.expires_at <= self._clock():
            return None
        return session.user_id

    async def destroy(self, session_id: str) -> None:
        await self._delete(_hash_token(session_id))

    @abstractmethod
    async def _write(self, token_hash: str, session: Session, ttl_seconds: int) -> None: ...

    @abstractmethod
    async def _read(self, token_hash: str) -> Session | None: ...

    @abstractmethod
    async def _delete(self, token_hash: str) -> None: ...


class InMemorySessionStore(SessionStore):
    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._sessions: dict[str, Session] = {}

    async def _write(self, token_hash: str, session: Session, ttl_seconds: int) -> None:
        self._sessions[token_hash] = session

    async def _read(self, token_hash: str) -> Session | None:
        return self._sessions.get(token_hash)

    async def _delete(self, token_hash: str) -> None:
        self._sessions.pop(token_hash, None)


class RedisSessionStore(SessionStore):
    def __init__(self, redis: Redis, **kwargs) -> None:
        super().__init__(**kwargs)
        self._redis = redis

    @staticmethod
    def _key(token_hash: str) -> str:
        return f"session:{token_hash}"

    async def _write(self, token_hash: str, session: Session, ttl_seconds: int) -> None:
        try:
            await self._redis.set(self._key(token_hash), json.dumps(asdict(session)), ex=ttl_seconds)
        except RedisError as err:
            raise ServiceUnavailable(f"Session store unavailable: {err}") from err

    async def _read(self, token_hash: str) -> Session | None:
        try:
            raw = await self._redis.get(self._key(token_hash))
        except RedisError as err:
            raise ServiceUnavailable(f"Session store unavailable: {err}") from err
        if not raw:
            return None
        return Session(**json.loads(raw))

    async def _delete(self, token_hash: str) -> None:
        try:
            await self._redis.delete(self._key(token_hash))
        except RedisError as err:
            raise ServiceUnavailable(f"Session store unavailable: {err}") from err


class SessionSigner:
    """HMAC-SHA256 signed cookie values: ``{session_id}.{signature}``."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("Session secret must not be empty")
        self._secret = secret.encode("utf-8")

    def _signature(self, session_id: str) -> str:
        return hmac.new(self._secret, session_id.encode("utf-8"), hashlib.sha256).hexdigest()

    def sign(self, session_id: str) -> str:
        return f"{session_id}.{self._signature(session_id)}"

    def unsign(self, cookie: str | None) -> str | None:
        if not cookie or "." not in cookie:
            return None
        session_id, signature = cookie.rsplit(".", 1)
        if not hmac.compare_digest(signature, self._signature(session_id)):
            return None
        return session_id

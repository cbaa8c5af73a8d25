"""Artifact store: opaque blobs under string keys.

Keys for a run's outputs hang off the manuscript storage key, the "prefix":
``{prefix}-analysis.json``, ``{prefix}-cover-variation-2.png`` and so on.
Small control blobs (``status:{id}``, ``report-id:{id}``, ``cancel:{id}``)
share the same store.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from manuscript_schemas import ArtifactKind
from manuscript_schemas.utils.validators import validate_metadata

from .errors import RequestValidationError, StorageUnavailable

logger = logging.getLogger(__name__)

MAX_METADATA_ENTRIES = 16
EXPIRES_AT_KEY = "expires-at"
CONTENT_LENGTH = "content-length"
REPORT_ID_KEY = "report-id"
_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}
_PRECONDITION_CODES = {"412", "PreconditionFailed", "ConditionalRequestConflict"}


def artifact_key(prefix: str, kind: ArtifactKind) -> str:
    return f"{prefix}-{kind.value}"


def cover_variation_key(prefix: str, number: int) -> str:
    return f"{prefix}-cover-variation-{number}.png"


def status_key(report_id: str) -> str:
    return f"status:{report_id}"


def report_key(report_id: str) -> str:
    return f"report-id:{report_id}"


def cancel_key(report_id: str) -> str:
    return f"cancel:{report_id}"


@dataclass(slots=True)
class StoredObject:
    key: str
    body: bytes
    content_type: str = "application/octet-stream"
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.body)

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding)

    def json(self) -> Any:
        return json.loads(self.body)


@dataclass(slots=True)
class ObjectListing:
    keys: list[str]
    cursor: str | None = None


class ArtifactStore(ABC):
    """Common behaviour over a backend's raw put/get/head/delete/list.

    Object stores have no per-object TTL, so ``ttl_seconds`` is written as an
    ``expires-at`` metadata entry and expired objects read as absent.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    async def put(
        self,
        key: str,
        body: bytes | str,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
        *,
        ttl_seconds: float | None = None,
    ) -> None:
        data, meta = self._prepare(key, body, metadata, ttl_seconds)
        await self._put(key, data, content_type, meta, if_absent=False)

    async def put_if_absent(
        self,
        key: str,
        body: bytes | str,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> bool:
        """Write only when ``key`` does not exist; return whether this call wrote it."""

        data, meta = self._prepare(key, body, metadata, None)
        return await self._put(key, data, content_type, meta, if_absent=True)

    async def get(self, key: str) -> StoredObject | None:
        stored = await self._get(key)
        if stored is None or self._expired(stored.metadata):
            return None
        return stored

    async def head(self, key: str) -> dict[str, str] | None:
        """Object metadata plus its byte size under ``content-length``."""

        metadata = await self._head(key)
        if metadata is None or self._expired(metadata):
            return None
        return metadata

    async def delete(self, key: str) -> None:
        await self._delete(key)

    async def list(self, prefix: str, cursor: str | None = None, limit: int = 100) -> ObjectListing:
        if limit < 1:
            raise RequestValidationError("limit must be positive")
        return await self._list(prefix, cursor, limit)

    async def put_json(
        self,
        key: str,
        payload: Any,
        metadata: dict[str, str] | None = None,
        *,
        ttl_seconds: float | None = None,
    ) -> None:
        await self.put(
            key,
            json.dumps(payload, ensure_ascii=False, default=str),
            "application/json",
            metadata,
            ttl_seconds=ttl_seconds,
        )

    async def get_json(self, key: str) -> Any | None:
        stored = await self.get(key)
        return stored.json() if stored is not None else None

    async def aclose(self) -> None:
        return None

    def _prepare(
        self,
        key: str,
        body: bytes | str,
        metadata: dict[str, str] | None,
        ttl_seconds: float | None,
    ) -> tuple[bytes, dict[str, str]]:
        if not key:
            raise RequestValidationError("Artifact key must not be empty")
        meta = dict(metadata or {})
        if ttl_seconds is not None:
            meta[EXPIRES_AT_KEY] = f"{self._clock() + ttl_seconds:.3f}"
        try:
            meta = validate_metadata(meta, limit=MAX_METADATA_ENTRIES)
        except ValueError as err:
            raise RequestValidationError(str(err)) from err
        data = body.encode("utf-8") if isinstance(body, str) else bytes(body)
        return data, meta

    def _expired(self, metadata: dict[str, str]) -> bool:
        raw = metadata.get(EXPIRES_AT_KEY)
        if raw is None:
            return False
        try:
            return float(raw) <= self._clock()
        except ValueError:
            return False

    @abstractmethod
    async def _put(
        self, key: str, data: bytes, content_type: str, metadata: dict[str, str], *, if_absent: bool
    ) -> bool: ...

    @abstractmethod
    async def _get(self, key: str) -> StoredObject | None: ...

    @abstractmethod
    async def _head(self, key: str) -> dict[str, str] | None: ...

    @abstractmethod
    async def _delete(self, key: str) -> None: ...

    @abstractmethod
    async def _list(self, prefix: str, cursor: str | None, limit: int) -> ObjectListing: ...


class InMemoryArtifactStore(ArtifactStore):
    """Process-local store for development and tests."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        super().__init__(clock=clock)
        self._objects: dict[str, StoredObject] = {}
        self._lock = asyncio.Lock()

    async def _put(
        self, key: str, data: bytes, content_type: str, metadata: dict[str, str], *, if_absent: bool
    ) -> bool:
        async with self._lock:
            existing = self._objects.get(key)
            if if_absent and existing is not None and not self._expired(existing.metadata):
                return False
            self._objects[key] = StoredObject(key=key, body=data, content_type=content_type, metadata=metadata)
            return True

    async def _get(self, key: str) -> StoredObject | None:
        stored = self._objects.get(key)
        if stored is None:
            return None
        return StoredObject(stored.key, stored.body, stored.content_type, dict(stored.metadata))

    async def _head(self, key: str) -> dict[str, str] | None:
        stored = self._objects.get(key)
        if stored is None:
            return None
        return {**stored.metadata, CONTENT_LENGTH: str(stored.size)}

    async def _delete(self, key: str) -> None:
        async with self._lock:
            self._objects.pop(key, None)

    async def _list(self, prefix: str, cursor: str | None, limit: int) -> ObjectListing:
        keys = sorted(
            key
            for key, stored in self._objects.items()
            if key.startswith(prefix) and (cursor is None or key > cursor) and not self._expired(stored.metadata)
        )
        page = keys[:limit]
        return ObjectListing(keys=page, cursor=page[-1] if len(keys) > limit else None)

    def keys(self) -> list[str]:
        return sorted(self._objects)


class S3ArtifactStore(ArtifactStore):
    """S3-compatible bucket (Backblaze B2) through boto3.

    boto3 is blocking, so every call runs in a worker thread.
    """

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        region: str | None = None,
        client: Any | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(clock=clock)
        self.bucket = bucket
        self._client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
            config=Config(signature_version="s3v4", retries={"max_attempts": 3, "mode": "adaptive"}),
        )
        logger.info("S3ArtifactStore initialised", extra={"bucket": bucket, "endpoint": endpoint_url})

    async def _call(self, operation: str, **params: Any) -> Any:
        method = getattr(self._client, operation)
        try:
            return await asyncio.to_thread(method, Bucket=self.bucket, **params)
        except BotoCoreError as err:
            raise StorageUnavailable(f"{operation} failed: {err}") from err

    @staticmethod
    def _error_code(err: ClientError) -> str:
        return str(err.response.get("Error", {}).get("Code", ""))

    async def _put(
        self, key: str, data: bytes, content_type: str, metadata: dict[str, str], *, if_absent: bool
    ) -> bool:
        params: dict[str, Any] = {"Key": key, "Body": data, "ContentType": content_type, "Metadata": metadata}
        if if_absent:
            params["IfNoneMatch"] = "*"
        try:
            await self._call("put_object", **params)
        except ClientError as err:
            if if_absent and self._error_code(err) in _PRECONDITION_CODES:
                return False
            raise StorageUnavailable(f"put_object failed for {key}: {err}") from err
        return True

    async def _get(self, key: str) -> StoredObject | None:
        try:
            response = await self._call("get_object", Key=key)
        except ClientError as err:
            if self._error_code(err) in _MISSING_CODES:
                return None
            raise StorageUnavailable(f"get_object failed for {key}: {err}") from err
        body = await asyncio.to_thread(response["Body"].read)
        return StoredObject(
            key=key,
            body=body,
            content_type=response.get("ContentType", "application/octet-stream"),
            metadata=dict(response.get("Metadata") or {}),
        )

    async def _head(self, key: str) -> dict[str, str] | None:
        try:
            response = await self._call("head_object", Key=key)
        except ClientError as err:
            if self._error_code(err) in _MISSING_CODES:
                return None
            raise StorageUnavailable(f"head_object failed for {key}: {err}") from err
        return {**(response.get("Metadata") or {}), CONTENT_LENGTH: str(response.get("ContentLength", 0))}

    async def _delete(self, key: str) -> None:
        try:
            await self._call("delete_object", Key=key)
        except ClientError as err:
            raise StorageUnavailable(f"delete_object failed for {key}: {err}") from err

    async def _list(self, prefix: str, cursor: str | None, limit: int) -> ObjectListing:
        params: dict[str, Any] = {"Prefix": prefix, "MaxKeys": limit}
        if cursor:
            params["ContinuationToken"] = cursor
        try:
            response = await self._call("list_objects_v2", **params)
        except ClientError as err:
            raise StorageUnavailable(f"list_objects_v2 failed for {prefix}: {err}") from err
        keys = [item["Key"] for item in response.get("Contents", [])]
        next_cursor = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return ObjectListing(keys=keys, cursor=next_cursor)

"""Content record persistence.

This module owns the storage side of the portal. A `ContentStore` exposes
four operations (create, get, update-by-id, list-recent) plus an explicit
lifecycle: `open()` at startup, `close()` at shutdown. The store object is
created once and injected into the service; there is no module-level
connection cache.

Two backends implement the protocol:

- `PostgresContentStore`: one psycopg async connection, opened with
  exponential-backoff retries, table created on open when missing. Writes
  are serialized through an `asyncio.Lock`; each update is a single
  ``UPDATE ... RETURNING`` statement so it replaces the targeted fields
  atomically.
- `MemoryContentStore`: process-local dictionary used when no DSN is
  configured (local development and tests), with the same locking rules.

Driver errors never leak: they surface as `PersistenceError`.
"""
from __future__ import annotations

import asyncio
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import Settings
from .errors import PersistenceError, RecordStateError
from .models.content import ContentRecord, ContentStatus, NewContentRecord

logger = logging.getLogger(__name__)

__all__ = [
    "ContentStore",
    "MemoryContentStore",
    "PostgresContentStore",
    "UPDATABLE_FIELDS",
    "clamp_history_limit",
    "create_store",
]

DEFAULT_HISTORY_LIMIT = 20
MAX_HISTORY_LIMIT = 50
DEFAULT_TABLE = "content_items"
UPDATABLE_FIELDS = frozenset({"result", "status", "task_id", "error"})


def clamp_history_limit(raw: Any) -> int:
    """Clamp a requested history size to [1, 50]; unusable input gives 20."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_HISTORY_LIMIT
    if value != value or value in (float("inf"), float("-inf")):
        return DEFAULT_HISTORY_LIMIT
    return int(min(max(value, 1), MAX_HISTORY_LIMIT))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_update_fields(
    fields: Mapping[str, Any], result_patch: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"fields cannot be updated: {sorted(unknown)}")
    if result_patch is not None and "result" in fields:
        raise ValueError("pass either 'result' or result_patch, not both")
    return dict(fields)


def _status_mismatch(record_id: str, actual: ContentStatus, expected: ContentStatus) -> RecordStateError:
    return RecordStateError(
        f"record {record_id} is {actual.value}, expected {expected.value}; update rejected"
    )


class ContentStore(Protocol):
    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def create(self, record: NewContentRecord) -> ContentRecord: ...

    async def get(self, record_id: str) -> Optional[ContentRecord]: ...

    async def update(
        self,
        record_id: str,
        fields: Mapping[str, Any],
        *,
        result_patch: Optional[Mapping[str, Any]] = None,
        expected_status: Optional[ContentStatus] = None,
    ) -> Optional[ContentRecord]: ...

    async def list_recent(self, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ContentRecord]: ...


class MemoryContentStore:
    """In-process store. Records are copied on the way in and out."""

    def __init__(self) -> None:
        self._records: Dict[str, ContentRecord] = {}
        self._order: List[str] = []
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        logger.info("Using in-memory content store (records are lost on restart)")

    async def close(self) -> None:
        return None

    async def create(self, record: NewContentRecord) -> ContentRecord:
        async with self._lock:
            now = _utcnow()
            stored = ContentRecord(
                id=uuid.uuid4().hex,
                created_at=now,
                updated_at=now,
                **record.model_dump(),
            )
            self._records[stored.id] = stored
            self._order.append(stored.id)
            return stored.model_copy(deep=True)

    async def get(self, record_id: str) -> Optional[ContentRecord]:
        record = self._records.get(record_id)
        return record.model_copy(deep=True) if record else None

    async def update(
        self,
        record_id: str,
        fields: Mapping[str, Any],
        *,
        result_patch: Optional[Mapping[str, Any]] = None,
        expected_status: Optional[ContentStatus] = None,
    ) -> Optional[ContentRecord]:
        """Replace `fields` on one record; see `PostgresContentStore.update`."""
        changes = _check_update_fields(fields, result_patch)
        async with self._lock:
            current = self._records.get(record_id)
            if current is None:
                return None
            if expected_status is not None and current.status != expected_status:
                raise _status_mismatch(record_id, current.status, expected_status)
            if result_patch is not None:
                changes["result"] = {**current.result, **result_patch}
            updated = ContentRecord.model_validate(
                {**current.model_dump(), **changes, "updated_at": _utcnow()}
            )
            self._records[record_id] = updated
            return updated.model_copy(deep=True)

    async def list_recent(self, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ContentRecord]:
        ids = list(reversed(self._order))[: clamp_history_limit(limit)]
        return [self._records[i].model_copy(deep=True) for i in ids]


class PostgresContentStore:
    """PostgreSQL-backed store using a single explicitly owned async connection."""

    def __init__(self, dsn: str, *, table: str = DEFAULT_TABLE):
        if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", table):
            raise ValueError("Invalid table name")
        self._dsn = dsn
        self._table = table
        self._conn: Optional[psycopg.AsyncConnection[Any]] = None
        self._lock = asyncio.Lock()

    @retry(
        reraise=True,
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
        retry=retry_if_exception_type(psycopg.OperationalError),
    )
    async def _connect(self) -> psycopg.AsyncConnection[Any]:
        return await psycopg.AsyncConnection.connect(self._dsn, autocommit=True)

    async def open(self) -> None:
        if self._conn is not None:
            return
        if not self._dsn:
            raise PersistenceError("PG_DSN is empty; cannot open the content store")
        try:
            self._conn = await self._connect()
            await self._ensure_schema()
        except psycopg.Error as e:
            logger.error("Content store unavailable: %s", e)
            raise PersistenceError(f"content store unavailable: {e}") from e
        logger.info("Content store opened table=%s", self._table)

    async def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await conn.close()
        except psycopg.Error:  # pragma: no cover - best effort
            logger.debug("Error closing Postgres connection", exc_info=True)

    async def _ensure_schema(self) -> None:
        assert self._conn is not None
        table = f'"{self._table}"'
        async with self._conn.cursor() as cur:
            await cur.execute(
                f"CREATE TABLE IF NOT EXISTS {table} ("
                "id TEXT PRIMARY KEY, "
                "kind TEXT NOT NULL, "
                "prompt TEXT NOT NULL, "
                "metadata JSONB NOT NULL DEFAULT '{}'::jsonb, "
                "result JSONB NOT NULL DEFAULT '{}'::jsonb, "
                "status TEXT NOT NULL, "
                "task_id TEXT, "
                "error TEXT, "
                "created_at TIMESTAMPTZ NOT NULL DEFAULT now(), "
                "updated_at TIMESTAMPTZ NOT NULL DEFAULT now())"
            )
            await cur.execute(
                f'CREATE INDEX IF NOT EXISTS "{self._table}_created_at_idx" '
                f"ON {table} (created_at DESC)"
            )

    async def _fetch(self, sql: str, params: tuple[Any, ...]) -> List[Dict[str, Any]]:
        if self._conn is None:
            raise PersistenceError("content store is not open")
        async with self._lock:
            try:
                async with self._conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(sql, params)
                    if cur.description is None:
                        return []
                    return list(await cur.fetchall())
            except psycopg.Error as e:
                logger.error("Content store query failed: %s", e)
                raise PersistenceError(f"content store error: {e}") from e

    async def create(self, record: NewContentRecord) -> ContentRecord:
        rows = await self._fetch(
            f'INSERT INTO "{self._table}" '
            "(id, kind, prompt, metadata, result, status, task_id, error) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s, %s) RETURNING *",
            (
                uuid.uuid4().hex,
                record.kind.value,
                record.prompt,
                Jsonb(record.metadata),
                Jsonb(record.result),
                record.status.value,
                record.task_id,
                record.error,
            ),
        )
        if not rows:
            raise PersistenceError("content store did not return the created record")
        return ContentRecord.model_validate(rows[0])

    async def get(self, record_id: str) -> Optional[ContentRecord]:
        rows = await self._fetch(f'SELECT * FROM "{self._table}" WHERE id = %s', (record_id,))
        return ContentRecord.model_validate(rows[0]) if rows else None

    async def update(
        self,
        record_id: str,
        fields: Mapping[str, Any],
        *,
        result_patch: Optional[Mapping[str, Any]] = None,
        expected_status: Optional[ContentStatus] = None,
    ) -> Optional[ContentRecord]:
        """Apply one atomic ``UPDATE ... RETURNING``.

        `result_patch` is merged into the stored ``result`` server side
        (``jsonb ||``) instead of replacing it from a value read earlier.
        With `expected_status` the row is only written while it still has
        that status; otherwise `RecordStateError` is raised. Returns None
        when no record has `record_id`.
        """
        changes = _check_update_fields(fields, result_patch)
        if not changes and result_patch is None and expected_status is None:
            return await self.get(record_id)
        assignments: List[str] = []
        params: List[Any] = []
        for column, value in sorted(changes.items()):
            assignments.append(f"{column} = %s")
            if column == "result":
                params.append(Jsonb(value))
            elif column == "status":
                params.append(getattr(value, "value", value))
            else:
                params.append(value)
        if result_patch is not None:
            assignments.append("result = result || %s")
            params.append(Jsonb(dict(result_patch)))
        assignments.append("updated_at = now()")
        where = "id = %s"
        params.append(record_id)
        if expected_status is not None:
            where += " AND status = %s"
            params.append(expected_status.value)
        rows = await self._fetch(
            f'UPDATE "{self._table}" SET {", ".join(assignments)} WHERE {where} RETURNING *',
            tuple(params),
        )
        if rows:
            return ContentRecord.model_validate(rows[0])
        if expected_status is None:
            return None
        current = await self.get(record_id)
        if current is None:
            return None
        raise _status_mismatch(record_id, current.status, expected_status)

    async def list_recent(self, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ContentRecord]:
        rows = await self._fetch(
            f'SELECT * FROM "{self._table}" ORDER BY created_at DESC, id DESC LIMIT %s',
            (clamp_history_limit(limit),),
        )
        return [ContentRecord.model_validate(r) for r in rows]


def create_store(settings: Settings) -> ContentStore:
    """Pick the store backend: Postgres when a DSN is configured, memory otherwise."""
    if settings.PG_DSN:
        return PostgresContentStore(settings.PG_DSN, table=settings.CONTENT_TABLE)
    logger.warning("PG_DSN not set; history is kept in memory only")
    return MemoryContentStore()

"""
Async database access helpers (raw SQL) using asyncpg.

There is no module-level pool. Callers build one with `create_pool()` and hand a
`Database` wrapping it to every component at construction time.

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
- list values are bound as one array parameter and matched with `= ANY($n::text[])`
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from . import settings

logger = logging.getLogger(__name__)


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def database_url() -> str:
    url = settings.database_url()
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")
    return _sanitize_database_url(url)


async def create_pool(dsn: str | None = None) -> asyncpg.Pool:
    return await asyncpg.create_pool(
        dsn=_sanitize_database_url(dsn) if dsn else database_url(),
        min_size=settings.pool_min_size(),
        max_size=settings.pool_max_size(),
        command_timeout=settings.command_timeout_s(),
    )


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


class Database:
    """
    Store handle shared by the repositories.

    Every query helper accepts an optional `conn`; when given, the statement
    runs on that connection (usually one yielded by `transaction()`), otherwise
    on a pooled connection.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def close(self) -> None:
        await self._pool.close()

    def _target(self, conn: asyncpg.Connection | None) -> Any:
        return conn if conn is not None else self._pool

    async def fetch_one(self, sql: str, *args: Any, conn: asyncpg.Connection | None = None) -> dict[str, Any] | None:
        """
        Run a query and return a single row as a dict (or None).
        """
        row = await self._target(conn).fetchrow(sql, *args)
        return _record_to_dict(row) if row is not None else None

    async def fetch_all(self, sql: str, *args: Any, conn: asyncpg.Connection | None = None) -> list[dict[str, Any]]:
        """
        Run a query and return all rows as a list of dicts.
        """
        rows = await self._target(conn).fetch(sql, *args)
        return [_record_to_dict(r) for r in rows]

    async def fetch_val(self, sql: str, *args: Any, conn: asyncpg.Connection | None = None) -> Any:
        return await self._target(conn).fetchval(sql, *args)

    async def execute(self, sql: str, *args: Any, conn: asyncpg.Connection | None = None) -> None:
        """
        Run a statement (INSERT/UPDATE/DELETE). No result returned.
        """
        await self._target(conn).execute(sql, *args)

    @asynccontextmanager
    async def transaction(
        self,
        *,
        isolation: str | None = None,
        readonly: bool = False,
    ) -> AsyncIterator[asyncpg.Connection]:
        """
        Scope a multi-statement sequence on one connection.

        Commits when the block exits normally and rolls back on any exception.
        A failed rollback is logged; the exception raised inside the block is
        the one that propagates.
        """
        async with self._pool.acquire() as conn:
            tx = conn.transaction(isolation=isolation, readonly=readonly)
            await tx.start()
            try:
                yield conn
            except BaseException:
                try:
                    await tx.rollback()
                except Exception:
                    logger.exception("transaction_rollback_failed isolation=%s readonly=%s", isolation, readonly)
                raise
            else:
                await tx.commit()

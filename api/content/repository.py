"""
Content persistence (raw SQL): mutations and plain listing reads.

Every mutation runs in one transaction. Tag associations are replaced in the
same transaction as the content row, by pruning stale pairs and inserting
missing ones, so readers never observe a half-updated tag set.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import asyncpg

from core.db import Database
from core.errors import WriteFailure

from . import rows
from .schemas import ContentInput, Status

INSERT_CONTENT = """
INSERT INTO content (
  id, title, slug, description, type, status, body, rendered_body,
  metadata, children, created_at, updated_at, published_at, likes, saves
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb, $10::jsonb, $11, $11, $12, 0, 0)
"""

SELECT_PUBLICATION_STATE_FOR_UPDATE = """
SELECT status, published_at
FROM content
WHERE id = $1
FOR UPDATE
"""

UPDATE_CONTENT = """
UPDATE content
SET title = $2,
    slug = $3,
    description = $4,
    type = $5,
    status = $6,
    body = $7,
    rendered_body = $8,
    metadata = $9::jsonb,
    children = $10::jsonb,
    updated_at = $11,
    published_at = $12
WHERE id = $1
"""

DELETE_STALE_CONTENT_TAGS = """
DELETE FROM content_to_tags
WHERE content_id = $1
  AND tag_id <> ALL($2::text[])
"""

# Unknown tag ids are skipped; pairs already present are left untouched.
INSERT_MISSING_CONTENT_TAGS = """
INSERT INTO content_to_tags (content_id, tag_id)
SELECT $1, t.id
FROM tags t
WHERE t.id = ANY($2::text[])
ON CONFLICT DO NOTHING
"""

DELETE_CONTENT_TAGS = """
DELETE FROM content_to_tags
WHERE content_id = $1
"""

DELETE_CONTENT = """
DELETE FROM content
WHERE id = $1
RETURNING id
"""

SELECT_PUBLISHED_ID_BY_SLUG = """
SELECT c.id
FROM content c
WHERE c.slug = $1
  AND c.status = 'published'
ORDER BY c.published_at DESC NULLS LAST, c.id ASC
LIMIT 1
"""

SELECT_PUBLISHED_ID_BY_SLUG_AND_TYPE = """
SELECT c.id
FROM content c
WHERE c.slug = $1
  AND c.type = $2
  AND c.status = 'published'
LIMIT 1
"""

SELECT_SAVED_PREVIEWS = f"""
SELECT {rows.PREVIEW_COLUMNS}
FROM saves s
JOIN content c ON c.id = s.target_id
WHERE s.user_id = $1
ORDER BY s.created_at ASC, s.target_id ASC
LIMIT $2
OFFSET $3
"""

SELECT_ADMIN_PREVIEWS = f"""
SELECT {rows.PREVIEW_COLUMNS}
FROM content c
ORDER BY c.updated_at DESC, c.id DESC
LIMIT $1
OFFSET $2
"""

COUNT_ALL_CONTENT = "SELECT count(*) AS n FROM content"

COUNT_PUBLISHED_CONTENT = "SELECT count(*) AS n FROM content WHERE status = 'published'"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_published_at(
    previous_status: str | None,
    previous_published_at: datetime | None,
    new_status: str,
    now: datetime,
) -> datetime | None:
    """
    published_at is set iff the status is published.

    - entering published: stamped with `now`
    - leaving published: cleared
    - staying published: unchanged (an old row without a stamp gets `now`)
    - staying unpublished: None
    """
    published = Status.PUBLISHED.value
    if new_status != published:
        return None
    if previous_status == published and previous_published_at is not None:
        return previous_published_at
    return now


def _status_value(status: Status | str) -> str:
    return status.value if isinstance(status, Status) else str(status)


def _content_args(data: ContentInput) -> tuple[Any, ...]:
    return (
        data.title,
        data.slug,
        data.description,
        data.type,
        _status_value(data.status),
        data.body,
        data.rendered_body,
        rows.json_arg(data.metadata or {}),
        rows.json_arg(list(data.children)),
    )


class ContentRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    async def create(self, data: ContentInput) -> str:
        """
        Insert a content row and its tag associations. Returns the new id.
        """
        content_id = str(uuid4())
        now = _utc_now()
        published_at = resolve_published_at(None, None, _status_value(data.status), now)
        try:
            async with self._db.transaction() as conn:
                await self._db.execute(
                    INSERT_CONTENT,
                    content_id,
                    *_content_args(data),
                    now,
                    published_at,
                    conn=conn,
                )
                await self._replace_tags(conn, content_id, data.tags)
        except Exception as e:
            raise WriteFailure(f"Failed to create content slug={data.slug}.") from e
        return content_id

    async def update(self, content_id: str, data: ContentInput) -> bool:
        """
        Rewrite all mutable fields and replace the tag set.
        Returns False when the content does not exist.
        """
        now = _utc_now()
        try:
            async with self._db.transaction() as conn:
                current = await self._db.fetch_one(SELECT_PUBLICATION_STATE_FOR_UPDATE, content_id, conn=conn)
                if current is None:
                    return False

                published_at = resolve_published_at(
                    current.get("status"),
                    current.get("published_at"),
                    _status_value(data.status),
                    now,
                )
                await self._db.execute(
                    UPDATE_CONTENT,
                    content_id,
                    *_content_args(data),
                    now,
                    published_at,
                    conn=conn,
                )
                await self._replace_tags(conn, content_id, data.tags)
        except Exception as e:
            raise WriteFailure(f"Failed to update content {content_id}.") from e
        return True

    async def delete(self, content_id: str) -> bool:
        """
        Delete a content row together with its tag associations.
        Returns False when nothing was deleted.
        """
        try:
            async with self._db.transaction() as conn:
                await self._db.execute(DELETE_CONTENT_TAGS, content_id, conn=conn)
                row = await self._db.fetch_one(DELETE_CONTENT, content_id, conn=conn)
        except Exception as e:
            raise WriteFailure(f"Failed to delete content {content_id}.") from e
        return row is not None

    async def _replace_tags(self, conn: asyncpg.Connection, content_id: str, tag_ids: list[str]) -> None:
        tag_ids = list(dict.fromkeys(str(t) for t in tag_ids))
        await self._db.execute(DELETE_STALE_CONTENT_TAGS, content_id, tag_ids, conn=conn)
        if tag_ids:
            await self._db.execute(INSERT_MISSING_CONTENT_TAGS, content_id, tag_ids, conn=conn)

    async def published_id_by_slug(self, slug: str, content_type: str | None = None) -> str | None:
        if content_type:
            row = await self._db.fetch_one(SELECT_PUBLISHED_ID_BY_SLUG_AND_TYPE, slug, content_type)
        else:
            row = await self._db.fetch_one(SELECT_PUBLISHED_ID_BY_SLUG, slug)
        return str(row["id"]) if row is not None else None

    async def content_ids(self, sql: str, params: list[Any]) -> list[str]:
        return [str(row["id"]) for row in await self._db.fetch_all(sql, *params)]

    async def count(self, sql: str, params: list[Any]) -> int:
        return int(await self._db.fetch_val(sql, *params) or 0)

    async def saved_previews(self, user_id: str, *, limit: int, offset: int) -> list[dict[str, Any]]:
        return await self._db.fetch_all(SELECT_SAVED_PREVIEWS, user_id, limit, offset)

    async def admin_previews(self, *, limit: int, offset: int) -> list[dict[str, Any]]:
        return await self._db.fetch_all(SELECT_ADMIN_PREVIEWS, limit, offset)

    async def count_all(self) -> int:
        return int(await self._db.fetch_val(COUNT_ALL_CONTENT) or 0)

    async def count_published(self) -> int:
        return int(await self._db.fetch_val(COUNT_PUBLISHED_CONTENT) or 0)

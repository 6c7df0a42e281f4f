"""
Tag persistence (raw SQL).

Pure lookups: slug/id to tag record, and content id to its tags. Callers inside
a transaction pass their connection so the reads share its snapshot.
"""

from __future__ import annotations

from typing import Any
from uuid import uuid4

import asyncpg

from core.db import Database

from .schemas import Tag, TagInput

TAG_COLUMNS = "t.id, t.name, t.slug, t.color, t.created_at, t.updated_at"

SELECT_TAG_BY_SLUG = f"""
SELECT {TAG_COLUMNS}
FROM tags t
WHERE t.slug = $1
"""

SELECT_TAG_BY_ID = f"""
SELECT {TAG_COLUMNS}
FROM tags t
WHERE t.id = $1
"""

SELECT_ALL_TAGS = f"""
SELECT {TAG_COLUMNS}
FROM tags t
ORDER BY t.name ASC, t.id ASC
"""

SELECT_TAGS_FOR_CONTENT = f"""
SELECT {TAG_COLUMNS}
FROM tags t
JOIN content_to_tags ctt ON ctt.tag_id = t.id
WHERE ctt.content_id = $1
"""

SELECT_TAGS_FOR_CONTENTS = f"""
SELECT ctt.content_id, {TAG_COLUMNS}
FROM tags t
JOIN content_to_tags ctt ON ctt.tag_id = t.id
WHERE ctt.content_id = ANY($1::text[])
"""

INSERT_TAG = f"""
INSERT INTO tags AS t (id, name, slug, color, created_at, updated_at)
VALUES ($1, $2, $3, $4, now(), now())
RETURNING {TAG_COLUMNS}
"""


def _to_tag(row: dict[str, Any]) -> Tag:
    return Tag(
        id=str(row["id"]),
        name=str(row["name"]),
        slug=str(row["slug"]),
        color=row.get("color"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class TagStore:
    def __init__(self, database: Database) -> None:
        self._db = database

    async def lookup_by_slug(self, slug: str, *, conn: asyncpg.Connection | None = None) -> Tag | None:
        slug = (slug or "").strip()
        if not slug:
            return None
        row = await self._db.fetch_one(SELECT_TAG_BY_SLUG, slug, conn=conn)
        return _to_tag(row) if row is not None else None

    async def lookup_by_id(self, tag_id: str, *, conn: asyncpg.Connection | None = None) -> Tag | None:
        if not tag_id:
            return None
        row = await self._db.fetch_one(SELECT_TAG_BY_ID, str(tag_id), conn=conn)
        return _to_tag(row) if row is not None else None

    async def list_tags(self) -> list[Tag]:
        return [_to_tag(row) for row in await self._db.fetch_all(SELECT_ALL_TAGS)]

    async def tags_for_content(self, content_id: str, *, conn: asyncpg.Connection | None = None) -> list[Tag]:
        """
        Tags associated with one content item. Order is not guaranteed.
        """
        rows = await self._db.fetch_all(SELECT_TAGS_FOR_CONTENT, content_id, conn=conn)
        return [_to_tag(row) for row in rows]

    async def tags_for_contents(
        self,
        content_ids: list[str],
        *,
        conn: asyncpg.Connection | None = None,
    ) -> list[list[Tag]]:
        """
        Batch variant of `tags_for_content`: one query, one result list per input id,
        in input order (duplicated ids get their own copy).
        """
        if not content_ids:
            return []

        by_content: dict[str, list[Tag]] = {}
        rows = await self._db.fetch_all(SELECT_TAGS_FOR_CONTENTS, list(dict.fromkeys(content_ids)), conn=conn)
        for row in rows:
            by_content.setdefault(str(row["content_id"]), []).append(_to_tag(row))
        return [list(by_content.get(content_id, [])) for content_id in content_ids]

    async def create_tag(self, payload: TagInput) -> Tag:
        row = await self._db.fetch_one(
            INSERT_TAG,
            str(uuid4()),
            payload.name.strip(),
            payload.slug,
            payload.color,
        )
        if row is None:
            raise RuntimeError("Failed to insert tag.")
        return _to_tag(row)

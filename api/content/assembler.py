"""
Content aggregate assembly.

Read sequence, all inside one read-only REPEATABLE READ transaction so every
statement sees the same snapshot:
1) content row by id
2) its tags
3) collections only: the listed children that still exist, in list order
4) the children's tags (children get an empty children list; no deeper levels)

Steps 3-4 run in a savepoint. If they fail the parent is still returned, with
no children.
"""

from __future__ import annotations

import logging

import asyncpg

from core.db import Database
from core.errors import NotFound, ReadFailure
from tags.repository import TagStore

from . import rows
from .schemas import COLLECTION_TYPE, ContentAggregate

logger = logging.getLogger(__name__)

SELECT_CONTENT_BY_ID = f"""
SELECT {rows.CONTENT_COLUMNS}
FROM content c
WHERE c.id = $1
"""

SELECT_CONTENT_BY_IDS = f"""
SELECT {rows.CONTENT_COLUMNS}
FROM content c
WHERE c.id = ANY($1::text[])
"""


class ContentAssembler:
    def __init__(self, database: Database, tags: TagStore) -> None:
        self._db = database
        self._tags = tags

    async def resolve(self, content_id: str) -> ContentAggregate | None:
        """
        Load one content aggregate. Returns None when the id does not exist.

        Store errors roll the transaction back and raise ReadFailure.
        """
        content_id = str(content_id or "").strip()
        if not content_id:
            return None

        try:
            async with self._db.transaction(isolation="repeatable_read", readonly=True) as conn:
                return await self._assemble(conn, content_id)
        except NotFound:
            logger.debug("content_not_found content_id=%s", content_id)
            return None
        except Exception as e:
            raise ReadFailure(f"Failed to read content {content_id}.") from e

    async def _assemble(self, conn: asyncpg.Connection, content_id: str) -> ContentAggregate:
        row = await self._db.fetch_one(SELECT_CONTENT_BY_ID, content_id, conn=conn)
        if row is None:
            # Raising ends the transaction with a rollback.
            raise NotFound(f"Content {content_id} not found.")

        tags = await self._tags.tags_for_content(content_id, conn=conn)
        aggregate = rows.to_aggregate(row, tags)

        if aggregate.type == COLLECTION_TYPE:
            child_ids = rows.parse_child_ids(row.get("children"))
            if child_ids:
                try:
                    # Nested transaction is a savepoint.
                    async with conn.transaction():
                        aggregate.children = await self._children(conn, child_ids)
                except Exception:
                    logger.warning("collection_children_failed content_id=%s", content_id, exc_info=True)
                    aggregate.children = []
        return aggregate

    async def _children(self, conn: asyncpg.Connection, child_ids: list[str]) -> list[ContentAggregate]:
        """
        Resolve listed child ids one level deep. Ids that no longer exist are dropped.
        """
        if not child_ids:
            return []

        found = {
            str(row["id"]): row
            for row in await self._db.fetch_all(SELECT_CONTENT_BY_IDS, list(dict.fromkeys(child_ids)), conn=conn)
        }
        surviving = [child_id for child_id in child_ids if child_id in found]
        dropped = len(child_ids) - len(surviving)
        if dropped:
            logger.debug("collection_children_dropped count=%s", dropped)
        if not surviving:
            return []

        child_tags = await self._tags.tags_for_contents(surviving, conn=conn)
        return [rows.to_aggregate(found[child_id], tags) for child_id, tags in zip(surviving, child_tags)]

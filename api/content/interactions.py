"""
Per-user interaction flags.

A like/save is the existence of a (user_id, target_id) row in `likes`/`saves`.
"""

from __future__ import annotations

from typing import Sequence, TypeVar

from core.db import Database
from core.errors import ReadFailure

from .schemas import ContentBase

SELECT_USER_LIKED = """
SELECT 1 AS ok
FROM likes
WHERE user_id = $1
  AND target_id = $2
LIMIT 1
"""

SELECT_USER_SAVED = """
SELECT 1 AS ok
FROM saves
WHERE user_id = $1
  AND target_id = $2
LIMIT 1
"""

RowT = TypeVar("RowT", bound=ContentBase)


class InteractionAnnotator:
    def __init__(self, database: Database) -> None:
        self._db = database

    async def has_liked(self, user_id: str, target_id: str) -> bool:
        return await self._db.fetch_one(SELECT_USER_LIKED, user_id, target_id) is not None

    async def has_saved(self, user_id: str, target_id: str) -> bool:
        return await self._db.fetch_one(SELECT_USER_SAVED, user_id, target_id) is not None

    async def annotate(self, user_id: str | None, items: Sequence[RowT]) -> list[RowT]:
        """
        Set `liked`/`saved` on every item for `user_id`. Without a user the items
        are returned untouched.
        """
        items = list(items)
        if not user_id:
            return items

        try:
            for item in items:
                item.liked = await self.has_liked(user_id, item.id)
                item.saved = await self.has_saved(user_id, item.id)
        except Exception as e:
            raise ReadFailure(f"Failed to load interactions for user {user_id}.") from e
        return items

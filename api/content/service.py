"""
Content service (orchestration).

This is the boundary of the content layer:
- filter builder -> id list -> assembler hydrates each id -> interaction flags
- store failures are logged here and reported as None / False / [] / 0
- ValidationFailure propagates so callers can reject bad input
"""

from __future__ import annotations

import logging
from typing import Any

from core import settings
from core.db import Database
from core.errors import ContentError, NotFound, ValidationFailure
from search.adapter import SearchAdapter
from tags.repository import TagStore

from . import rows
from .assembler import ContentAssembler
from .interactions import InteractionAnnotator
from .query_builder import FilterQueryBuilder
from .repository import ContentRepository
from .schemas import (
    ContentAggregate,
    ContentFilters,
    ContentInput,
    ContentPreview,
    SortOrder,
    parse_content_input,
    parse_filters,
)

logger = logging.getLogger(__name__)


def _check_page(limit: int, offset: int, *, max_limit: int, min_limit: int = 0) -> None:
    if limit < min_limit or limit > max_limit:
        raise ValidationFailure(f"Invalid limit: must be between {min_limit} and {max_limit}.")
    if offset < 0:
        raise ValidationFailure("Invalid offset: must be >= 0.")


class ContentService:
    def __init__(
        self,
        database: Database,
        search: SearchAdapter,
        *,
        tags: TagStore | None = None,
    ) -> None:
        self._db = database
        self.tags = tags or TagStore(database)
        self.assembler = ContentAssembler(database, self.tags)
        self.interactions = InteractionAnnotator(database)
        self.repository = ContentRepository(database)
        self.queries = FilterQueryBuilder(search)

    # Reads

    async def get_content_by_id(self, content_id: str, *, user_id: str | None = None) -> ContentAggregate | None:
        try:
            aggregate = await self.assembler.resolve(content_id)
            if aggregate is None:
                return None
            [aggregate] = await self.interactions.annotate(user_id, [aggregate])
            return aggregate
        except ContentError:
            logger.exception("content_read_failed content_id=%s", content_id)
            return None

    async def require_content(self, content_id: str, *, user_id: str | None = None) -> ContentAggregate:
        aggregate = await self.get_content_by_id(content_id, user_id=user_id)
        if aggregate is None:
            raise NotFound(f"Content {content_id} not found.")
        return aggregate

    async def get_content_by_slug(
        self,
        slug: str,
        *,
        content_type: str | None = None,
        user_id: str | None = None,
    ) -> ContentAggregate | None:
        """
        Published content by slug (optionally scoped to a type), fully assembled.
        """
        slug = (slug or "").strip()
        if not slug:
            return None
        try:
            content_id = await self.repository.published_id_by_slug(slug, content_type)
        except Exception:
            logger.exception("content_read_failed slug=%s type=%s", slug, content_type)
            return None
        if content_id is None:
            return None
        return await self.get_content_by_id(content_id, user_id=user_id)

    async def list_content(
        self,
        filters: ContentFilters | dict[str, Any] | None = None,
        *,
        user_id: str | None = None,
    ) -> list[ContentAggregate]:
        """
        Filtered, sorted, paginated list of assembled content.

        Ids that disappear between the id query and assembly are skipped.
        """
        parsed = parse_filters(filters)
        try:
            query = await self.queries.build_list_query(parsed)
            if query is None:
                return []
            content_ids = await self.repository.content_ids(query.sql, query.params)
        except Exception:
            logger.exception("content_list_failed filters=%s", parsed.model_dump(exclude_none=True))
            return []

        items: list[ContentAggregate] = []
        for content_id in content_ids:
            try:
                aggregate = await self.assembler.resolve(content_id)
            except ContentError:
                logger.exception("content_read_failed content_id=%s", content_id)
                continue
            if aggregate is not None:
                items.append(aggregate)

        try:
            return await self.interactions.annotate(user_id, items)
        except ContentError:
            logger.exception("content_interactions_failed user_id=%s", user_id)
            return []

    async def count_content(self, filters: ContentFilters | dict[str, Any] | None = None) -> int:
        parsed = parse_filters(filters)
        try:
            query = await self.queries.build_count_query(parsed)
            if query is None:
                return 0
            return await self.repository.count(query.sql, query.params)
        except Exception:
            logger.exception("content_count_failed filters=%s", parsed.model_dump(exclude_none=True))
            return 0

    async def get_content_by_tag(self, tag_slug: str, *, limit: int = 10, offset: int = 0) -> list[ContentAggregate]:
        _check_page(limit, offset, max_limit=settings.content_max_limit(), min_limit=1)
        return await self.list_content({"tags": tag_slug, "limit": limit, "offset": offset})

    async def get_content_by_type(self, content_type: str, *, limit: int = 10, offset: int = 0) -> list[ContentAggregate]:
        _check_page(limit, offset, max_limit=settings.content_max_limit(), min_limit=1)
        return await self.list_content({"type": content_type, "limit": limit, "offset": offset})

    async def search_posts(
        self,
        search_term: str,
        *,
        tags: list[str] | None = None,
        content_type: str = "blog",
    ) -> list[ContentAggregate]:
        return await self.list_content(
            {
                "type": content_type,
                "search": search_term,
                "tags": tags or None,
                "sort": SortOrder.LATEST.value,
            }
        )

    async def list_saved_content(self, user_id: str, *, limit: int = 20, offset: int = 0) -> list[ContentPreview]:
        """
        Items the user saved, any status, oldest save first, with tags and flags.
        """
        if not user_id:
            return []
        _check_page(limit, offset, max_limit=settings.content_max_limit())
        try:
            saved = await self.repository.saved_previews(user_id, limit=limit, offset=offset)
            return await self._previews(saved, user_id)
        except Exception:
            logger.exception("saved_content_failed user_id=%s", user_id)
            return []

    async def list_admin_content(
        self,
        *,
        limit: int = 50,
        offset: int = 0,
        user_id: str | None = None,
    ) -> list[ContentPreview]:
        """
        Every item regardless of status, most recently updated first.
        """
        _check_page(limit, offset, max_limit=settings.admin_max_limit())
        try:
            admin_rows = await self.repository.admin_previews(limit=limit, offset=offset)
            return await self._previews(admin_rows, user_id)
        except Exception:
            logger.exception("admin_content_failed limit=%s offset=%s", limit, offset)
            return []

    async def count_all_content(self) -> int:
        try:
            return await self.repository.count_all()
        except Exception:
            logger.exception("content_count_failed scope=all")
            return 0

    async def count_published_content(self) -> int:
        try:
            return await self.repository.count_published()
        except Exception:
            logger.exception("content_count_failed scope=published")
            return 0

    async def _previews(self, preview_rows: list[dict[str, Any]], user_id: str | None) -> list[ContentPreview]:
        ids = [str(row["id"]) for row in preview_rows]
        tag_lists = await self.tags.tags_for_contents(ids)
        previews = [rows.to_preview(row, tags) for row, tags in zip(preview_rows, tag_lists)]
        return await self.interactions.annotate(user_id, previews)

    # Mutations

    async def create_content(self, data: ContentInput | dict[str, Any]) -> str | None:
        payload = parse_content_input(data)
        try:
            content_id = await self.repository.create(payload)
        except ContentError:
            logger.exception("content_create_failed slug=%s type=%s", payload.slug, payload.type)
            return None
        logger.info("content_created content_id=%s status=%s", content_id, payload.status.value)
        return content_id

    async def update_content(self, content_id: str, data: ContentInput | dict[str, Any]) -> bool:
        payload = parse_content_input(data)
        try:
            updated = await self.repository.update(content_id, payload)
        except ContentError:
            logger.exception("content_update_failed content_id=%s", content_id)
            return False
        if not updated:
            logger.debug("content_not_found content_id=%s", content_id)
        return updated

    async def delete_content(self, content_id: str) -> bool:
        try:
            deleted = await self.repository.delete(content_id)
        except ContentError:
            logger.exception("content_delete_failed content_id=%s", content_id)
            return False
        if deleted:
            logger.info("content_deleted content_id=%s", content_id)
        return deleted

"""
Search adapters.

Contract shared by every adapter:
- `search(query)` returns content ids ranked best-first, without duplicates
- an empty list means "no matches"; blank queries match nothing
- failures to reach the index raise `SearchError`

Adapters:
- FullTextSearchAdapter: Postgres full-text search over the content table
- HttpSearchAdapter: external search-index service over HTTP
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx

from core import settings
from core.db import Database
from core.errors import SearchError


class SearchAdapter(Protocol):
    async def search(self, query: str) -> list[str]: ...


def _unique_ids(values: list[Any]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        if value is None:
            continue
        seen.setdefault(str(value), None)
    return list(seen)


SEARCH_CONTENT_FTS = """
WITH q AS (
  SELECT websearch_to_tsquery('english', $1) AS tsq
),
docs AS (
  SELECT
    c.id,
    setweight(to_tsvector('english', coalesce(c.title, '')), 'A')
      || setweight(to_tsvector('english', coalesce(c.description, '')), 'B')
      || setweight(to_tsvector('english', coalesce(c.body, '')), 'C') AS tsv
  FROM content c
)
SELECT docs.id, ts_rank_cd(docs.tsv, (SELECT tsq FROM q)) AS score
FROM docs
WHERE docs.tsv @@ (SELECT tsq FROM q)
ORDER BY score DESC, docs.id ASC
LIMIT $2
"""


class FullTextSearchAdapter:
    """
    Full-text search over title, description and body. Uses websearch syntax
    (quotes, -, OR, etc).
    """

    def __init__(self, database: Database, *, max_results: int | None = None) -> None:
        self._db = database
        self._max_results = max_results

    async def search(self, query: str) -> list[str]:
        query = (query or "").strip()
        if not query:
            return []

        limit = self._max_results or settings.search_max_results()
        try:
            rows = await self._db.fetch_all(SEARCH_CONTENT_FTS, query, limit)
        except Exception as e:
            raise SearchError("Full-text search query failed.") from e
        return _unique_ids([row["id"] for row in rows])


def _normalize_base_url(base_url: str) -> str:
    base_url = (base_url or "").strip()
    if not base_url:
        raise SearchError("SEARCH_SERVICE_URL is empty.")
    return base_url.rstrip("/")


class HttpSearchAdapter:
    """
    Client for an external search-index service.

    Used endpoint:
    - GET /search?q=...&limit=N -> {"ids": ["...", ...]}
      (a {"results": [{"id": "..."}, ...]} body is accepted as well)
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_s: float | None = None,
        max_results: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = _normalize_base_url(base_url if base_url is not None else settings.search_service_url())
        self._timeout_s = timeout_s if timeout_s is not None else settings.search_timeout_s()
        self._max_results = max_results or settings.search_max_results()
        self._transport = transport

    async def search(self, query: str) -> list[str]:
        query = (query or "").strip()
        if not query:
            return []

        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout_s,
                transport=self._transport,
            ) as client:
                resp = await client.get("/search", params={"q": query, "limit": self._max_results})
        except httpx.HTTPError as e:
            raise SearchError(f"Search service request failed: {e}") from e

        if resp.status_code != 200:
            # Avoid dumping huge bodies; include a small snippet.
            body = resp.text[:500]
            raise SearchError(f"Search service request failed: {resp.status_code} {body}")

        try:
            data = resp.json()
        except ValueError as e:
            raise SearchError("Search service returned invalid JSON.") from e
        if not isinstance(data, dict):
            raise SearchError("Search service returned an unexpected payload.")

        ids = data.get("ids")
        if isinstance(ids, list):
            return _unique_ids(ids)[: self._max_results]

        results = data.get("results")
        if isinstance(results, list):
            return _unique_ids([item.get("id") for item in results if isinstance(item, dict)])[: self._max_results]

        raise SearchError("Search service response has no ids.")

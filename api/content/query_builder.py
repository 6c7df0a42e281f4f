"""
Filter/search query builder.

Turns `ContentFilters` into one SQL statement (id list or COUNT) plus its
positional parameters. Clause text and values travel together in
`SqlFragment`s and placeholders are numbered only when fragments are
appended, so the n-th `$n` always refers to the n-th value.

Parameter order follows clause order:
  search ids, explicit status, type, tag slugs, tag count, limit, offset
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NamedTuple

from search.adapter import SearchAdapter

from .schemas import STATUS_ALL, ContentFilters, SortOrder, Status

# Marks a bound value inside fragment text; replaced by $n on emission.
PARAM = "{}"


@dataclass(frozen=True)
class SqlFragment:
    text: str
    params: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        if self.text.count(PARAM) != len(self.params):
            raise ValueError(
                f"Fragment has {self.text.count(PARAM)} placeholders but {len(self.params)} params: {self.text!r}"
            )

    @classmethod
    def join(cls, separator: str, fragments: list[SqlFragment]) -> SqlFragment:
        params: tuple[Any, ...] = ()
        for fragment in fragments:
            params += fragment.params
        return cls(separator.join(f.text for f in fragments), params)


@dataclass
class QueryBuilder:
    parts: list[str] = field(default_factory=list)
    params: list[Any] = field(default_factory=list)

    def add(self, fragment: SqlFragment | str) -> QueryBuilder:
        if isinstance(fragment, str):
            fragment = SqlFragment(fragment)
        text = fragment.text
        for value in fragment.params:
            self.params.append(value)
            text = text.replace(PARAM, f"${len(self.params)}", 1)
        self.parts.append(text)
        return self

    def build(self) -> BuiltQuery:
        return BuiltQuery(" ".join(self.parts), list(self.params))


class BuiltQuery(NamedTuple):
    sql: str
    params: list[Any]


TAG_JOIN = "JOIN content_to_tags ctt ON ctt.content_id = c.id JOIN tags t ON t.id = ctt.tag_id"

# NULL published_at (drafts) sorts as the smallest value in both directions.
ORDER_BY = {
    SortOrder.LATEST: "ORDER BY c.published_at DESC NULLS LAST, c.created_at DESC, c.id DESC",
    SortOrder.OLDEST: "ORDER BY c.published_at ASC NULLS FIRST, c.created_at ASC, c.id ASC",
    SortOrder.POPULAR: "ORDER BY c.likes DESC, c.saves DESC, c.id DESC",
}


@dataclass(frozen=True)
class _Predicates:
    where: list[SqlFragment]
    tag_count: int

    @property
    def joins_tags(self) -> bool:
        return self.tag_count > 0

    @property
    def grouped(self) -> bool:
        return self.tag_count > 1


def _predicates(filters: ContentFilters, candidate_ids: list[str] | None) -> _Predicates:
    where: list[SqlFragment] = []

    if candidate_ids is not None:
        where.append(SqlFragment(f"c.id = ANY({PARAM}::text[])", (list(candidate_ids),)))

    if filters.status is None:
        where.append(SqlFragment(f"c.status = '{Status.PUBLISHED.value}'"))
    elif filters.status != STATUS_ALL:
        where.append(SqlFragment(f"c.status = {PARAM}", (filters.status,)))

    if filters.type is not None:
        where.append(SqlFragment(f"c.type = {PARAM}", (filters.type,)))

    slugs = filters.tag_slugs
    if slugs:
        where.append(SqlFragment(f"t.slug = ANY({PARAM}::text[])", (slugs,)))

    return _Predicates(where=where, tag_count=len(slugs))


def _add_body(qb: QueryBuilder, preds: _Predicates) -> None:
    qb.add("FROM content c")
    if preds.joins_tags:
        qb.add(TAG_JOIN)
    if preds.where:
        qb.add("WHERE")
        qb.add(SqlFragment.join(" AND ", preds.where))
    if preds.grouped:
        qb.add("GROUP BY c.id")
        qb.add(SqlFragment(f"HAVING COUNT(DISTINCT t.slug) = {PARAM}", (preds.tag_count,)))


def list_query(filters: ContentFilters, candidate_ids: list[str] | None = None) -> BuiltQuery:
    """
    SELECT of matching content ids, sorted and paginated.

    `candidate_ids` restricts the result to a search allow-list; None means no
    search constraint.
    """
    preds = _predicates(filters, candidate_ids)
    qb = QueryBuilder()
    # Slugs are unique and (content_id, tag_id) is a key, so a single-tag join
    # cannot duplicate rows; several tags are collapsed by GROUP BY.
    qb.add("SELECT c.id")
    _add_body(qb, preds)
    qb.add(ORDER_BY[filters.sort_order])

    # Offset is only honoured together with a limit.
    if filters.limit:
        qb.add(SqlFragment(f"LIMIT {PARAM}", (filters.limit,)))
        if filters.offset:
            qb.add(SqlFragment(f"OFFSET {PARAM}", (filters.offset,)))
    return qb.build()


def count_query(filters: ContentFilters, candidate_ids: list[str] | None = None) -> BuiltQuery:
    """
    COUNT over the same predicates as `list_query`, ignoring sort and pagination.
    With several tags the groups are counted, not the joined rows.
    """
    preds = _predicates(filters, candidate_ids)
    qb = QueryBuilder()
    if preds.grouped:
        qb.add("SELECT COUNT(*) AS total FROM (SELECT c.id")
        _add_body(qb, preds)
        qb.add(") AS grouped")
    else:
        qb.add("SELECT COUNT(DISTINCT c.id) AS total")
        _add_body(qb, preds)
    return qb.build()


class FilterQueryBuilder:
    """
    Resolves the search constraint through a `SearchAdapter`, then builds the SQL.

    `build_list_query` / `build_count_query` return None when a search matched
    nothing: the result is known to be empty and the store need not be queried.
    """

    def __init__(self, search: SearchAdapter) -> None:
        self._search = search

    async def _candidates(self, filters: ContentFilters) -> tuple[bool, list[str] | None]:
        query = filters.search_text
        if not query:
            return True, None
        ids = await self._search.search(query)
        return bool(ids), list(ids)

    async def build_list_query(self, filters: ContentFilters) -> BuiltQuery | None:
        has_rows, candidate_ids = await self._candidates(filters)
        if not has_rows:
            return None
        return list_query(filters, candidate_ids)

    async def build_count_query(self, filters: ContentFilters) -> BuiltQuery | None:
        has_rows, candidate_ids = await self._candidates(filters)
        if not has_rows:
            return None
        return count_query(filters, candidate_ids)

"""
Integration tests against a real Postgres.

Skipped unless TEST_DATABASE_URL points at a database the tests may create
schemas in. Each test gets a throwaway schema.
"""

import os
import uuid

import asyncpg
import pytest
import pytest_asyncio

from content.service import ContentService
from core.db import Database
from search.adapter import FullTextSearchAdapter

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "").strip()

pytestmark = pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL is not set")

SCHEMA_SQL = """
CREATE TABLE content (
  id text PRIMARY KEY,
  title text NOT NULL,
  slug text NOT NULL,
  description text,
  type text NOT NULL,
  status text NOT NULL DEFAULT 'draft',
  body text,
  rendered_body text,
  metadata jsonb NOT NULL DEFAULT '{}'::jsonb,
  children jsonb NOT NULL DEFAULT '[]'::jsonb,
  created_at timestamptz NOT NULL DEFAULT now(),
  updated_at timestamptz NOT NULL DEFAULT now(),
  published_at timestamptz,
  likes integer NOT NULL DEFAULT 0,
  saves integer NOT NULL DEFAULT 0,
  UNIQUE (type, slug)
);
CREATE TABLE tags (
  id text PRIMARY KEY,
  name text NOT NULL,
  slug text NOT NULL UNIQUE,
  color text,
  created_at timestamptz NOT NULL DEFAULT now(),
  updated_at timestamptz NOT NULL DEFAULT now()
);
CREATE TABLE content_to_tags (
  content_id text NOT NULL REFERENCES content(id),
  tag_id text NOT NULL REFERENCES tags(id),
  PRIMARY KEY (content_id, tag_id)
);
CREATE TABLE likes (user_id text NOT NULL, target_id text NOT NULL, created_at timestamptz NOT NULL DEFAULT now());
CREATE TABLE saves (user_id text NOT NULL, target_id text NOT NULL, created_at timestamptz NOT NULL DEFAULT now());
"""


@pytest_asyncio.fixture
async def database():
    schema = f"test_{uuid.uuid4().hex[:12]}"
    admin = await asyncpg.connect(TEST_DATABASE_URL)
    await admin.execute(f"CREATE SCHEMA {schema}")
    pool = await asyncpg.create_pool(
        TEST_DATABASE_URL,
        min_size=1,
        max_size=3,
        server_settings={"search_path": schema},
    )
    try:
        async with pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        yield Database(pool)
    finally:
        await pool.close()
        await admin.execute(f"DROP SCHEMA {schema} CASCADE")
        await admin.close()


@pytest_asyncio.fixture
async def service(database):
    return ContentService(database, FullTextSearchAdapter(database))


async def _tag(database, slug):
    await database.execute("INSERT INTO tags (id, name, slug) VALUES ($1, $2, $1)", slug, slug.title())


async def _create(service, slug, *, status="published", tags=(), type="blog", **extra):
    content_id = await service.create_content(
        {"title": slug.title(), "slug": slug, "type": type, "status": status, "tags": list(tags), **extra}
    )
    assert content_id is not None
    return content_id


@pytest.mark.asyncio
async def test_status_switch_and_tag_intersection(database, service):
    for slug in ("a", "b"):
        await _tag(database, slug)
    both = await _create(service, "both", tags=["a", "b"])
    only_a = await _create(service, "only-a", tags=["a"])
    draft = await _create(service, "draft", status="draft", tags=["a", "b"])

    assert {c.id for c in await service.list_content()} == {both, only_a}
    assert {c.id for c in await service.list_content({"status": "all"})} == {both, only_a, draft}
    assert [c.id for c in await service.list_content({"status": "draft"})] == [draft]
    assert [c.id for c in await service.list_content({"tags": ["a", "b"]})] == [both]
    assert {c.id for c in await service.list_content({"tags": "a"})} == {both, only_a}
    assert await service.count_content({"tags": ["a", "b"], "status": "all"}) == 2


@pytest.mark.asyncio
async def test_popular_sort(database, service):
    low = await _create(service, "low")
    high = await _create(service, "high")
    await database.execute("UPDATE content SET likes = 5, saves = 0 WHERE id = $1", low)
    await database.execute("UPDATE content SET likes = 5, saves = 1 WHERE id = $1", high)

    items = await service.list_content({"sort": "popular"})

    assert [c.id for c in items] == [high, low]


@pytest.mark.asyncio
async def test_publication_and_retagging(database, service):
    for slug in ("t1", "t2", "t3", "t4"):
        await _tag(database, slug)
    content_id = await _create(service, "post", status="draft", tags=["t1", "t2", "t3"])

    base = {"title": "Post", "slug": "post", "type": "blog"}
    assert await service.update_content(content_id, {**base, "status": "published", "tags": ["t2", "t3", "t4"]})
    item = await service.get_content_by_id(content_id)
    assert item.published_at is not None
    assert {t.slug for t in item.tags} == {"t2", "t3", "t4"}

    assert await service.update_content(content_id, {**base, "status": "published", "tags": ["t2", "t3", "t4"]})
    assert (await service.get_content_by_id(content_id)).published_at == item.published_at

    assert await service.update_content(content_id, {**base, "status": "draft"})
    item = await service.get_content_by_id(content_id)
    assert item.published_at is None
    assert item.tags == []


@pytest.mark.asyncio
async def test_collection_children_and_delete(database, service):
    await _tag(database, "x")
    child = await _create(service, "child", tags=["x"])
    doomed = await _create(service, "doomed")
    coll = await _create(service, "coll", type="collection", children=[doomed, child])

    assert await service.delete_content(doomed)
    aggregate = await service.get_content_by_id(coll)

    assert [c.id for c in aggregate.children] == [child]
    assert [t.slug for t in aggregate.children[0].tags] == ["x"]
    assert await database.fetch_val("SELECT count(*) FROM content_to_tags WHERE content_id = $1", doomed) == 0


@pytest.mark.asyncio
async def test_full_text_search_filter(database, service):
    await _create(service, "rust", body="ownership and borrowing")
    await _create(service, "python", body="generators")

    items = await service.list_content({"search": "borrowing"})

    assert [c.slug for c in items] == ["rust"]
    assert await service.list_content({"search": "haskell"}) == []

"""Unit tests for content mutations and publication state."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from content.repository import (
    DELETE_CONTENT,
    INSERT_MISSING_CONTENT_TAGS,
    UPDATE_CONTENT,
    ContentRepository,
    resolve_published_at,
)
from content.schemas import ContentInput
from core.errors import WriteFailure

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
EARLIER = NOW - timedelta(days=3)


def _input(**overrides) -> ContentInput:
    data = {"title": "Hello", "slug": "hello", "type": "article"}
    data.update(overrides)
    return ContentInput(**data)


class TestResolvePublishedAt:
    def test_entering_published_stamps_now(self):
        assert resolve_published_at("draft", None, "published", NOW) == NOW

    def test_create_as_published_stamps_now(self):
        assert resolve_published_at(None, None, "published", NOW) == NOW

    def test_leaving_published_clears(self):
        assert resolve_published_at("published", EARLIER, "draft", NOW) is None

    def test_staying_published_preserves(self):
        assert resolve_published_at("published", EARLIER, "published", NOW) == EARLIER

    def test_staying_draft_stays_null(self):
        assert resolve_published_at("draft", None, "draft", NOW) is None

    def test_published_without_stamp_is_repaired(self):
        assert resolve_published_at("published", None, "published", NOW) == NOW


@pytest.fixture
def repo(database):
    return ContentRepository(database)


@pytest.fixture
def tagged(store):
    for n in range(1, 5):
        store.add_tag(str(n), slug=f"t{n}")
    return store


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_inserts_row_and_tags_in_one_transaction(self, store, tagged, repo):
        content_id = await repo.create(_input(tags=["1", "2", "unknown"], metadata={"npm": "pkg"}))

        row = store.content[content_id]
        assert row["status"] == "draft"
        assert row["published_at"] is None
        assert row["created_at"] == row["updated_at"]
        assert json.loads(row["metadata"]) == {"npm": "pkg"}
        assert store.tag_ids_for(content_id) == {"1", "2"}
        assert store.events == [("begin", None, False), ("commit",)]

    @pytest.mark.asyncio
    async def test_create_published_sets_published_at(self, store, repo):
        content_id = await repo.create(_input(status="published"))
        assert store.content[content_id]["published_at"] is not None

    @pytest.mark.asyncio
    async def test_create_generates_distinct_string_ids(self, repo):
        first = await repo.create(_input(slug="one"))
        second = await repo.create(_input(slug="two"))
        assert isinstance(first, str)
        assert first != second

    @pytest.mark.asyncio
    async def test_failed_tag_insert_rolls_back_row(self, store, tagged, repo):
        store.failing.add(INSERT_MISSING_CONTENT_TAGS)

        with pytest.raises(WriteFailure):
            await repo.create(_input(tags=["1"]))

        assert store.content == {}
        assert store.links == []

    @pytest.mark.asyncio
    async def test_duplicate_slug_is_write_failure(self, repo):
        await repo.create(_input())
        with pytest.raises(WriteFailure):
            await repo.create(_input())


class TestUpdate:
    @pytest.mark.asyncio
    async def test_publication_transitions(self, store, repo):
        content_id = await repo.create(_input())
        assert store.content[content_id]["published_at"] is None

        assert await repo.update(content_id, _input(status="published")) is True
        published_at = store.content[content_id]["published_at"]
        assert published_at is not None

        assert await repo.update(content_id, _input(status="published", title="Renamed")) is True
        assert store.content[content_id]["published_at"] == published_at
        assert store.content[content_id]["title"] == "Renamed"

        assert await repo.update(content_id, _input(status="draft")) is True
        assert store.content[content_id]["published_at"] is None

        assert await repo.update(content_id, _input(status="draft")) is True
        assert store.content[content_id]["published_at"] is None

    @pytest.mark.asyncio
    async def test_tag_replacement_prunes_and_adds(self, store, tagged, repo):
        store.add_content("c")
        store.link("c", "1", "2", "3")
        store.add_content("other")
        store.link("other", "1")

        assert await repo.update("c", _input(tags=["2", "3", "4"])) is True

        assert store.tag_ids_for("c") == {"2", "3", "4"}
        assert store.tag_ids_for("other") == {"1"}
        # 2 and 3 keep their original association rows.
        assert store.links.index(("c", "2")) < store.links.index(("c", "4"))

    @pytest.mark.asyncio
    async def test_no_zero_tag_state_visible_outside_transaction(self, store, tagged, repo):
        store.add_content("c")
        store.link("c", "1", "2", "3")
        observed = []

        def watch(statement):
            if statement.executor == "pool":
                return
            observed.append(sorted(store.tag_ids_for("c")))

        store.after_statement = watch
        await repo.update("c", _input(tags=["2", "3", "4"]))

        # Every intermediate state keeps at least the surviving tags.
        assert all(state for state in observed)
        events = [e[0] for e in store.events]
        assert events == ["begin", "commit"]

    @pytest.mark.asyncio
    async def test_empty_tag_set_removes_all(self, store, tagged, repo):
        store.add_content("c")
        store.link("c", "1", "2")

        await repo.update("c", _input(tags=[]))

        assert store.tag_ids_for("c") == set()

    @pytest.mark.asyncio
    async def test_update_missing_returns_false_without_writes(self, store, repo):
        assert await repo.update("ghost", _input()) is False
        assert all(s.sql != UPDATE_CONTENT for s in store.statements)

    @pytest.mark.asyncio
    async def test_failed_tag_replacement_rolls_back_row_update(self, store, tagged, repo):
        store.add_content("c", title="Before")
        store.link("c", "1")
        store.failing.add(INSERT_MISSING_CONTENT_TAGS)

        with pytest.raises(WriteFailure):
            await repo.update("c", _input(title="After", tags=["2"]))

        assert store.content["c"]["title"] == "Before"
        assert store.tag_ids_for("c") == {"1"}


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_removes_row_and_associations(self, store, tagged, repo):
        store.add_content("c")
        store.link("c", "1", "2")
        store.add_content("keep")
        store.link("keep", "1")

        assert await repo.delete("c") is True

        assert "c" not in store.content
        assert store.tag_ids_for("c") == set()
        assert store.tag_ids_for("keep") == {"1"}

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, repo):
        assert await repo.delete("ghost") is False

    @pytest.mark.asyncio
    async def test_delete_failure_keeps_associations(self, store, tagged, repo):
        store.add_content("c")
        store.link("c", "1")
        store.failing.add(DELETE_CONTENT)

        with pytest.raises(WriteFailure):
            await repo.delete("c")

        assert store.tag_ids_for("c") == {"1"}

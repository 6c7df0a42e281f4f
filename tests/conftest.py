"""
Pytest configuration and shared fixtures.

- store: in-memory tables behind the fake pool
- database: `core.db.Database` over the fake pool
- service: `ContentService` wired with a mocked search adapter
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from content.service import ContentService
from core.db import Database
from tests.fakes import FakePool, FakeStore


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def database(store: FakeStore) -> Database:
    return Database(FakePool(store))


@pytest.fixture
def search() -> AsyncMock:
    adapter = AsyncMock()
    adapter.search.return_value = []
    return adapter


@pytest.fixture
def service(database: Database, search: AsyncMock) -> ContentService:
    return ContentService(database, search)

"""Shared test fixtures."""

from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest

from src.accounts.storage import UserStore
from src.content.storage import PostStore

# Fixed "now" used by every time-dependent test.
NOW = dt.datetime(2026, 3, 10, 12, 0, tzinfo=dt.timezone.utc)


@pytest.fixture
def now() -> dt.datetime:
    return NOW


@pytest.fixture
def post_store(tmp_path: Path) -> PostStore:
    store = PostStore(tmp_path / "posts.db")
    yield store
    store.close()


@pytest.fixture
def user_store(tmp_path: Path) -> UserStore:
    store = UserStore(tmp_path / "users.db")
    yield store
    store.close()

"""Shared pytest configuration."""

from __future__ import annotations

import pytest

from app.config import get_database_settings, get_settings
from tests.fakes import InMemoryStore


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture(autouse=True)
def _clear_settings_cache():
  get_settings.cache_clear()
  get_database_settings.cache_clear()
  yield
  get_settings.cache_clear()
  get_database_settings.cache_clear()


@pytest.fixture
def store() -> InMemoryStore:
  return InMemoryStore()

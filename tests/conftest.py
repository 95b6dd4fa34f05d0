"""Pytest fixtures for product renewal tests."""

from __future__ import annotations

import tempfile
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from product_renewal.config import Settings, override_settings, reset_settings
from product_renewal.core.database import Database
from product_renewal.core.errors import ProductFetchError, RateLimitExceededError
from product_renewal.core.freshness_store import FreshnessStore
from product_renewal.core.renewal_queue import RenewalQueue

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
TTL = timedelta(days=1)


class FrozenClock:
    """Deterministic clock; advance it explicitly."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeProductSource:
    """In-memory product data source.

    ``products`` maps key -> data. Keys in ``failing`` raise ProductFetchError,
    keys in ``throttled`` raise RateLimitExceededError.
    """

    def __init__(self, products: dict[str, dict[str, Any]] | None = None) -> None:
        self.products = products or {}
        self.failing: set[str] = set()
        self.throttled: set[str] = set()
        self.calls: list[set[str]] = []

    def fetch(self, keys: set[str]) -> dict[str, dict[str, Any]]:
        self.calls.append(set(keys))
        if keys & self.throttled:
            raise RateLimitExceededError("HTTP 429")
        if keys & self.failing:
            raise ProductFetchError("HTTP 500")
        return {key: self.products[key] for key in keys if key in self.products}


# ---------------------------------------------------------------------------
# Basic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def temp_storage() -> Generator[Path, None, None]:
    """Provide temporary storage directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_settings(temp_storage: Path) -> Generator[Settings, None, None]:
    """Provide test settings with temp storage."""
    settings = Settings(
        storage_path=temp_storage / "renewal-db",
        product_api_url="http://products.test",
        log_level="DEBUG",
    )
    override_settings(settings)
    yield settings
    reset_settings()


@pytest.fixture
def database(temp_storage: Path) -> Generator[Database, None, None]:
    """Provide a connected database."""
    db = Database(temp_storage / "renewal-db")
    db.connect()
    yield db
    db.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store(database: Database, clock: FrozenClock) -> FreshnessStore:
    return FreshnessStore(database, ttl=TTL, clock=clock)


@pytest.fixture
def queue(database: Database, clock: FrozenClock) -> RenewalQueue:
    return RenewalQueue(database, lease=timedelta(minutes=10), clock=clock)


@pytest.fixture
def source() -> FakeProductSource:
    return FakeProductSource({
        "B000000001": {"title": "First", "overrides": {"title": "First (override)"}},
        "B000000002": {"title": "Second"},
        "B000000003": {"title": "Third"},
    })

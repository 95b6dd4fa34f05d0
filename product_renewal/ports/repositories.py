"""Protocol interfaces between the renewal services and their infrastructure.

Using typing.Protocol enables structural subtyping, so tests can hand the
services in-memory fakes or mocks instead of LanceDB-backed implementations.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any, Protocol

from product_renewal.core.models import FreshnessRecord, ProductKey, QueueItem


class FreshnessStoreProtocol(Protocol):
    """Persistent key -> last renewal time mapping.

    FreshnessStore is the primary implementation.
    """

    ttl: timedelta

    def get(self, key: ProductKey) -> FreshnessRecord | None:
        ...

    def is_stale(
        self,
        key: ProductKey,
        now: datetime | None = None,
        ttl: timedelta | None = None,
    ) -> bool:
        ...

    def stale_keys(self, now: datetime | None = None) -> list[ProductKey]:
        ...

    def has_stale_data(self, now: datetime | None = None) -> bool:
        ...

    def count_stale(self, now: datetime | None = None) -> int:
        ...

    def all_keys(self) -> list[ProductKey]:
        ...

    def mark_renewed(
        self,
        key: ProductKey,
        now: datetime | None = None,
        product_data: dict[str, Any] | None = None,
    ) -> FreshnessRecord:
        ...

    def track(self, keys: Iterable[ProductKey]) -> int:
        ...

    def reset_all(self) -> int:
        ...


class RenewalQueueProtocol(Protocol):
    """Claim/release work queue.

    RenewalQueue is the primary implementation. ``delete``, ``release`` and
    ``drop`` raise QueueItemNotClaimedError unless the caller holds the claim.
    """

    def enqueue(self, key: ProductKey, forced: bool = False) -> QueueItem:
        ...

    def claim(
        self,
        now: datetime | None = None,
        max_sequence: int | None = None,
    ) -> QueueItem | None:
        ...

    def delete(self, item: QueueItem) -> None:
        ...

    def release(self, item: QueueItem) -> QueueItem:
        ...

    def drop(self, item: QueueItem) -> None:
        ...

    def count(self) -> int:
        ...

    def count_claimed(self, now: datetime | None = None) -> int:
        ...

    def pending_keys(self, now: datetime | None = None) -> set[ProductKey]:
        ...

    def max_sequence(self) -> int:
        ...


class ProductDataSourceProtocol(Protocol):
    """External product data fetch."""

    def fetch(self, keys: set[ProductKey]) -> dict[ProductKey, dict[str, Any]]:
        """Fetch fresh product data.

        Args:
            keys: Product keys to fetch.

        Returns:
            Mapping of key -> product data. Keys the source does not know are
            absent from the mapping.

        Raises:
            RateLimitExceededError: The source will not accept more work now.
            ProductFetchError: Any other fetch failure.
        """
        ...

"""Queue worker: renews the product behind a single queue item.

Fetch failures are converted into tagged outcomes here and never escape;
storage failures are infrastructure errors and propagate to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from product_renewal.core.errors import ProductFetchError, RateLimitExceededError
from product_renewal.core.models import QueueItem, WorkResult
from product_renewal.core.utils import utc_now

if TYPE_CHECKING:
    from product_renewal.core.rate_limiter import RateLimiter
    from product_renewal.ports.repositories import (
        FreshnessStoreProtocol,
        ProductDataSourceProtocol,
    )

logger = logging.getLogger(__name__)


class QueueWorker:
    """Fetches fresh product data for one item and records the renewal."""

    def __init__(
        self,
        store: FreshnessStoreProtocol,
        source: ProductDataSourceProtocol,
        rate_limiter: RateLimiter | None = None,
        clock: Callable[[], datetime] = utc_now,
        max_wait_seconds: float = 30.0,
    ) -> None:
        """Initialize the worker.

        Args:
            store: Freshness store updated on success.
            source: External product data source.
            rate_limiter: Optional fetch throttle the worker paces itself on.
            clock: Source of the renewal timestamp.
            max_wait_seconds: Longest pause for the throttle before the item
                is released for a later run.
        """
        self._store = store
        self._source = source
        self._rate_limiter = rate_limiter
        self._clock = clock
        self._max_wait_seconds = max_wait_seconds

    def process_item(self, item: QueueItem) -> WorkResult:
        """Renew the product behind ``item``.

        1. Unforced items whose key is already fresh succeed without a fetch
           (duplicate requests are no-ops).
        2. Wait for the local fetch budget. If it stays empty past
           ``max_wait_seconds`` -> TRANSIENT_FAILURE.
        3. A throttling source (RateLimitExceededError) -> FATAL_SUSPEND,
           freshness untouched. Other fetch errors, or the key missing from
           the response -> TRANSIENT_FAILURE.
        4. Otherwise the key is marked renewed with the fetched data -> SUCCESS.

        Args:
            item: The claimed queue item.

        Returns:
            WorkResult tagged with the outcome.

        Raises:
            StorageError: If the freshness store cannot be read or written.
        """
        key = item.key

        if not item.forced and not self._store.is_stale(key, now=self._clock()):
            logger.debug(f"{key} is already fresh, skipping fetch")
            return WorkResult.success(key, skipped=True)

        if self._rate_limiter is not None and not self._rate_limiter.wait(
            timeout=self._max_wait_seconds
        ):
            logger.warning(
                f"Fetch budget still empty after {self._max_wait_seconds}s, "
                f"releasing {key}"
            )
            return WorkResult.transient(key, "Local fetch budget wait timed out")

        try:
            products = self._source.fetch({key})
        except RateLimitExceededError as e:
            logger.warning(f"Product source suspended processing at {key}: {e}")
            return WorkResult.suspend(key, str(e))
        except ProductFetchError as e:
            logger.warning(f"Failed to fetch {key}: {e}")
            return WorkResult.transient(key, str(e))

        product_data = products.get(key)
        if product_data is None:
            logger.warning(f"Product source returned no data for {key}")
            return WorkResult.transient(key, "Product not returned by source")

        self._store.mark_renewed(key, now=self._clock(), product_data=product_data)
        return WorkResult.success(key)

"""Product service: the facade the command line talks to."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from product_renewal.core.models import ProductKey
from product_renewal.core.validation import validate_product_key, validate_product_keys

if TYPE_CHECKING:
    from product_renewal.ports.repositories import (
        FreshnessStoreProtocol,
        ProductDataSourceProtocol,
        RenewalQueueProtocol,
    )

logger = logging.getLogger(__name__)


class ProductService:
    """Read access to cached product data plus freshness bookkeeping."""

    def __init__(
        self,
        store: FreshnessStoreProtocol,
        queue: RenewalQueueProtocol,
        source: ProductDataSourceProtocol,
    ) -> None:
        self._store = store
        self._queue = queue
        self._source = source

    @property
    def store(self) -> FreshnessStoreProtocol:
        return self._store

    def get_product_data(self, keys: Iterable[ProductKey]) -> dict[ProductKey, dict[str, Any]]:
        """Get product data, fetching keys that have nothing cached yet.

        Freshly fetched products are recorded as renewed. Keys the source does
        not know are absent from the result.

        Args:
            keys: Product keys to look up.

        Returns:
            Mapping of key -> product data.

        Raises:
            ValidationError: If a key is malformed.
            ProductFetchError: If the source fails for uncached keys.
            StorageError: If the store fails.
        """
        keys = validate_product_keys(keys)
        data: dict[ProductKey, dict[str, Any]] = {}
        missing: set[ProductKey] = set()

        for key in keys:
            record = self._store.get(key)
            if record is not None and record.product_data is not None:
                data[key] = record.product_data
            else:
                missing.add(key)

        if missing:
            logger.debug(f"Fetching {len(missing)} uncached products")
            fetched = self._source.fetch(missing)
            for key, product in fetched.items():
                if key not in missing:
                    continue
                self._store.mark_renewed(key, product_data=product)
                data[key] = product

        return {key: data[key] for key in keys if key in data}

    def get_overrides(self, key: ProductKey) -> dict[str, Any] | None:
        """Overrides configured for one product, or None if there are none."""
        key = validate_product_key(key)
        product = self.get_product_data([key]).get(key)
        if product is None:
            return None
        overrides = product.get("overrides")
        return overrides if isinstance(overrides, dict) else None

    def all_keys(self) -> list[ProductKey]:
        return self._store.all_keys()

    def track(self, keys: Iterable[ProductKey]) -> int:
        return self._store.track(keys)

    def has_stale_data(self) -> bool:
        return self._store.has_stale_data()

    def count_stale(self) -> int:
        return self._store.count_stale()

    def reset_all(self) -> int:
        return self._store.reset_all()

    def queue_depth(self) -> tuple[int, int]:
        """Return (total items, items under a live claim)."""
        return self._queue.count(), self._queue.count_claimed()

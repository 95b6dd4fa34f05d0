"""Service factory for dependency injection and initialization.

Centralizes configuration and wiring of the store, queue, worker, coordinator
and product service so the command line stays thin and services stay testable.

Usage:
    from product_renewal.factory import ServiceFactory

    factory = ServiceFactory(settings)
    services = factory.create_all()
    services.coordinator.drain_queue()
    services.close()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from product_renewal.adapters.http_product_source import HttpProductDataSource
from product_renewal.config import Settings
from product_renewal.core.database import Database
from product_renewal.core.freshness_store import FreshnessStore
from product_renewal.core.rate_limiter import RateLimiter
from product_renewal.core.renewal_queue import RenewalQueue
from product_renewal.ports.repositories import ProductDataSourceProtocol
from product_renewal.services.coordinator import RenewalCoordinator
from product_renewal.services.product import ProductService
from product_renewal.services.queue_worker import QueueWorker

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Container for all initialized services.

    Attributes:
        database: LanceDB connection and locks.
        store: Freshness store.
        queue: Renewal queue.
        source: Product data source.
        rate_limiter: Fetch throttle consulted by the worker.
        worker: Queue worker.
        coordinator: Sweep/drain orchestration.
        products: Facade used by the command line.
    """

    database: Database
    store: FreshnessStore
    queue: RenewalQueue
    source: ProductDataSourceProtocol
    rate_limiter: RateLimiter
    worker: QueueWorker
    coordinator: RenewalCoordinator
    products: ProductService

    def close(self) -> None:
        """Release the HTTP client and the database connection."""
        close = getattr(self.source, "close", None)
        if callable(close):
            close()
        self.database.close()


class ServiceFactory:
    """Factory for creating and wiring services.

    Example:
        factory = ServiceFactory(settings)
        services = factory.create_all()
    """

    def __init__(
        self,
        settings: Settings,
        source: ProductDataSourceProtocol | None = None,
    ) -> None:
        """Initialize the factory.

        Args:
            settings: Application settings.
            source: Optional product data source override (tests inject fakes).
        """
        self._settings = settings
        self._source = source

    def create_database(self) -> Database:
        """Create and connect the database."""
        database = Database(
            storage_path=self._settings.storage_path,
            read_consistency_interval_ms=self._settings.read_consistency_interval_ms,
            filelock_enabled=self._settings.filelock_enabled,
            filelock_timeout=self._settings.filelock_timeout_seconds,
            filelock_poll_interval=self._settings.filelock_poll_interval_seconds,
        )
        database.connect()
        return database

    def create_store(self, database: Database) -> FreshnessStore:
        return FreshnessStore(database, ttl=self._settings.renewal_interval)

    def create_queue(self, database: Database) -> RenewalQueue:
        return RenewalQueue(
            database,
            lease=timedelta(seconds=self._settings.claim_lease_seconds),
        )

    def create_source(self) -> ProductDataSourceProtocol:
        if self._source is not None:
            return self._source
        return HttpProductDataSource(
            base_url=self._settings.product_api_url,
            api_key=self._settings.product_api_key,
            timeout=self._settings.product_api_timeout_seconds,
        )

    def create_rate_limiter(self) -> RateLimiter:
        return RateLimiter(
            rate=self._settings.fetch_rate_per_second,
            capacity=self._settings.fetch_burst,
        )

    def create_all(self) -> ServiceContainer:
        """Create all services with proper dependency wiring.

        Returns:
            ServiceContainer with all services initialized.

        Raises:
            ConfigurationError: If the product API URL is unusable.
            StorageError: If the database cannot be opened.
        """
        source = self.create_source()
        database = self.create_database()
        store = self.create_store(database)
        queue = self.create_queue(database)
        rate_limiter = self.create_rate_limiter()
        worker = QueueWorker(
            store,
            source,
            rate_limiter=rate_limiter,
            max_wait_seconds=self._settings.fetch_max_wait_seconds,
        )
        coordinator = RenewalCoordinator(
            store,
            queue,
            worker,
            max_item_attempts=self._settings.max_item_attempts,
        )
        products = ProductService(store, queue, source)
        logger.debug(f"Services wired for storage at {self._settings.storage_path}")

        return ServiceContainer(
            database=database,
            store=store,
            queue=queue,
            source=source,
            rate_limiter=rate_limiter,
            worker=worker,
            coordinator=coordinator,
            products=products,
        )

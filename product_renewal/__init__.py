"""Product Renewal - freshness tracking and queued renewal of cached product data."""

__version__ = "0.1.0"

from product_renewal.config import Settings, get_settings
from product_renewal.core import (
    DrainResult,
    FreshnessStore,
    ItemOutcome,
    ProductFetchError,
    ProductRenewalError,
    QueueItem,
    QueueItemNotClaimedError,
    RateLimitExceededError,
    RenewalQueue,
    StorageError,
    ValidationError,
)
from product_renewal.services import ProductService, QueueWorker, RenewalCoordinator

__all__ = [
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    # Errors
    "ProductRenewalError",
    "ValidationError",
    "StorageError",
    "QueueItemNotClaimedError",
    "ProductFetchError",
    "RateLimitExceededError",
    # Components
    "FreshnessStore",
    "RenewalQueue",
    "QueueWorker",
    "RenewalCoordinator",
    "ProductService",
    # Models
    "QueueItem",
    "ItemOutcome",
    "DrainResult",
]

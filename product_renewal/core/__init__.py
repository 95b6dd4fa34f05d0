"""Core components for the product renewal tooling."""

from product_renewal.core.database import Database, ProcessLockManager
from product_renewal.core.errors import (
    ConfigurationError,
    FileLockError,
    ProductFetchError,
    ProductRenewalError,
    QueueItemNotClaimedError,
    RateLimitExceededError,
    StorageError,
    ValidationError,
)
from product_renewal.core.freshness_store import FreshnessStore
from product_renewal.core.models import (
    DrainResult,
    FreshnessRecord,
    ItemOutcome,
    ProductKey,
    QueueItem,
    WorkResult,
)
from product_renewal.core.rate_limiter import RateLimiter
from product_renewal.core.renewal_queue import RenewalQueue
from product_renewal.core.utils import NEVER_RENEWED, to_aware_utc, to_naive_utc, utc_now

__all__ = [
    # Storage
    "Database",
    "ProcessLockManager",
    "FreshnessStore",
    "RenewalQueue",
    "RateLimiter",
    # Errors
    "ProductRenewalError",
    "ValidationError",
    "ConfigurationError",
    "StorageError",
    "FileLockError",
    "QueueItemNotClaimedError",
    "ProductFetchError",
    "RateLimitExceededError",
    # Models
    "ProductKey",
    "FreshnessRecord",
    "QueueItem",
    "ItemOutcome",
    "WorkResult",
    "DrainResult",
    # Utils
    "NEVER_RENEWED",
    "utc_now",
    "to_naive_utc",
    "to_aware_utc",
]

"""Custom exceptions for the product renewal tooling."""

from pathlib import Path


def sanitize_path_for_error(path: str | Path) -> str:
    """Extract only the filename from a path for safe error messages.

    Args:
        path: Full path or filename.

    Returns:
        Just the filename portion.
    """
    if isinstance(path, Path):
        return path.name
    return Path(path).name


class ProductRenewalError(Exception):
    """Base exception for all product renewal errors."""

    pass


class ValidationError(ProductRenewalError):
    """Raised when input validation fails."""

    pass


class ConfigurationError(ProductRenewalError):
    """Raised when configuration is invalid."""

    pass


class StorageError(ProductRenewalError):
    """Raised when the freshness store or renewal queue cannot be read or written.

    Storage errors are infrastructure failures. They are never converted into
    per-item outcomes and always surface to the caller.
    """

    pass


class FileLockError(StorageError):
    """Raised when the cross-process file lock cannot be acquired."""

    def __init__(
        self,
        lock_path: str,
        timeout: float,
        message: str | None = None,
    ) -> None:
        self.lock_path = lock_path
        self.timeout = timeout
        safe_name = sanitize_path_for_error(lock_path)
        self.message = message or f"Failed to acquire file lock at {safe_name} after {timeout}s"
        super().__init__(self.message)


class QueueItemNotClaimedError(ProductRenewalError):
    """Raised when a queue item is deleted, released or dropped without a live claim."""

    def __init__(self, item_id: str, key: str) -> None:
        self.item_id = item_id
        self.key = key
        super().__init__(f"Queue item {item_id} ({key}) is not claimed by this caller")


# =============================================================================
# Product data fetch errors
# =============================================================================


class ProductFetchError(ProductRenewalError):
    """Raised when product data could not be fetched; the item can be retried."""

    pass


class RateLimitExceededError(ProductFetchError):
    """Raised when the product data source refuses further work for now.

    The drain loop stops processing when it sees this, leaving the remaining
    queue for the next run.
    """

    def __init__(self, message: str = "Product data source rate limit exceeded",
                 retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message)

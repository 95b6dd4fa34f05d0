"""Port interfaces for the product renewal services."""

from product_renewal.ports.repositories import (
    FreshnessStoreProtocol,
    ProductDataSourceProtocol,
    RenewalQueueProtocol,
)

__all__ = [
    "FreshnessStoreProtocol",
    "ProductDataSourceProtocol",
    "RenewalQueueProtocol",
]

"""Infrastructure adapters for the product renewal tooling."""

from product_renewal.adapters.http_product_source import HttpProductDataSource

__all__ = [
    "HttpProductDataSource",
]

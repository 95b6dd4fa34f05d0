"""Renewal services: worker, coordinator and product facade."""

from product_renewal.services.coordinator import RenewalCoordinator
from product_renewal.services.product import ProductService
from product_renewal.services.queue_worker import QueueWorker

__all__ = [
    "ProductService",
    "QueueWorker",
    "RenewalCoordinator",
]

"""HTTP adapter for the external product data API.

Request:  GET {base_url}/products?keys=KEY1,KEY2
Response: {"products": {"KEY1": {...}, ...}} or a bare {"KEY1": {...}} mapping.

HTTP 429 and 503 mean "stop sending work for now" and raise
RateLimitExceededError; every other failure raises ProductFetchError.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from product_renewal.core.errors import (
    ConfigurationError,
    ProductFetchError,
    RateLimitExceededError,
)
from product_renewal.core.models import ProductKey

logger = logging.getLogger(__name__)

SUSPEND_STATUS_CODES = frozenset({429, 503})


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class HttpProductDataSource:
    """Fetches product data over HTTP with httpx.

    Example:
        with HttpProductDataSource("https://products.example.com", api_key="...") as source:
            data = source.fetch({"B00TEST123"})
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the data source.

        Args:
            base_url: Base URL of the product data API.
            api_key: Optional bearer token.
            timeout: Request timeout in seconds.
            client: Preconfigured client (tests pass one with a MockTransport).

        Raises:
            ConfigurationError: If ``base_url`` is not an absolute http(s) URL.
        """
        try:
            url = httpx.URL(base_url)
        except httpx.InvalidURL as e:
            raise ConfigurationError(f"Invalid product API URL {base_url!r}: {e}") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise ConfigurationError(
                f"Product API URL must be an absolute http(s) URL, got {base_url!r}"
            )
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._owns_client = client is None
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpProductDataSource:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def fetch(self, keys: set[ProductKey]) -> dict[ProductKey, dict[str, Any]]:
        """Fetch product data for ``keys``.

        Raises:
            RateLimitExceededError: On HTTP 429/503.
            ProductFetchError: On any other HTTP, network or payload error.
        """
        if not keys:
            return {}

        requested = sorted(keys)
        try:
            response = self._client.get("/products", params={"keys": ",".join(requested)})
        except httpx.RequestError as e:
            logger.error(f"Network error fetching {len(requested)} products: {e}")
            raise ProductFetchError(f"Network error: {e}") from e

        if response.status_code in SUSPEND_STATUS_CODES:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(
                f"Product API throttled the request (HTTP {response.status_code}, "
                f"retry_after={retry_after})"
            )
            raise RateLimitExceededError(
                f"Product API returned HTTP {response.status_code}",
                retry_after=retry_after,
            )

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error fetching products: {e.response.status_code}")
            raise ProductFetchError(f"HTTP {e.response.status_code}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise ProductFetchError(f"Invalid JSON from product API: {e}") from e

        if isinstance(payload, dict) and isinstance(payload.get("products"), dict):
            payload = payload["products"]
        if not isinstance(payload, dict):
            raise ProductFetchError(
                f"Unexpected product API payload: {type(payload).__name__}"
            )

        wanted = set(requested)
        products = {
            key: value
            for key, value in payload.items()
            if key in wanted and isinstance(value, dict)
        }
        logger.debug(f"Fetched {len(products)}/{len(requested)} products")
        return products

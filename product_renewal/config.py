"""Configuration system for the product renewal tooling."""

from datetime import timedelta
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Product Renewal Configuration."""

    # Storage
    storage_path: Path = Field(
        default=Path("./.product-renewal"),
        description="Path to LanceDB storage directory",
    )
    read_consistency_interval_ms: int = Field(
        default=0,
        ge=0,
        description="Interval for read consistency checks (0 = strong consistency)",
    )

    # Cross-process locking
    filelock_enabled: bool = Field(
        default=True,
        description="Serialize store and queue writes across processes with a lock file",
    )
    filelock_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Maximum seconds to wait for the cross-process lock",
    )
    filelock_poll_interval_seconds: float = Field(
        default=0.1,
        gt=0.0,
        description="Seconds between lock acquisition attempts",
    )

    # Renewal policy
    renewal_interval_hours: float = Field(
        default=24.0,
        gt=0.0,
        description="Age after which a product record is considered stale",
    )
    claim_lease_seconds: int = Field(
        default=3600,
        ge=1,
        description="How long a claimed queue item stays exclusive to its worker",
    )
    max_item_attempts: int = Field(
        default=5,
        ge=1,
        description="Failed attempts after which a queue item is dropped",
    )

    # Product data API
    product_api_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the product data API",
    )
    product_api_key: str | None = Field(
        default=None,
        description="Bearer token for the product data API",
    )
    product_api_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Timeout for a single product data request",
    )

    # Fetch throttling
    fetch_rate_per_second: float = Field(
        default=1.0,
        gt=0.0,
        description="Sustained product fetches per second; the drain paces itself to it",
    )
    fetch_burst: int = Field(
        default=10,
        ge=1,
        description="Fetches allowed in a burst before throttling applies",
    )
    fetch_max_wait_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Longest pause for the fetch budget before an item is retried later",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_json: bool = Field(
        default=False,
        description="Emit structured JSON log lines",
    )

    model_config = {
        "env_prefix": "PRODUCT_RENEWAL_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @property
    def renewal_interval(self) -> timedelta:
        """Renewal interval as a timedelta."""
        return timedelta(hours=self.renewal_interval_hours)


# Settings singleton with dependency injection support
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the settings instance (lazy-loaded singleton).

    Returns:
        The Settings instance.

    Example:
        from product_renewal.config import get_settings
        settings = get_settings()
        print(settings.storage_path)
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def override_settings(new_settings: Settings) -> None:
    """Override the settings instance (for testing).

    Args:
        new_settings: The new Settings instance to use.
    """
    global _settings
    _settings = new_settings


def reset_settings() -> None:
    """Reset settings to None (forces reload on next get_settings call)."""
    global _settings
    _settings = None


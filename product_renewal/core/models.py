"""Data models for the freshness store, renewal queue and drain loop. Pure data, no I/O."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from product_renewal.core.utils import is_never_renewed

# Opaque catalog identifier (e.g. an ASIN).
ProductKey = str


@dataclass(frozen=True)
class FreshnessRecord:
    """Last renewal of a single product key."""

    key: ProductKey
    last_renewed_at: datetime
    product_data: dict[str, Any] | None = None

    @property
    def never_renewed(self) -> bool:
        return is_never_renewed(self.last_renewed_at)


@dataclass(frozen=True)
class QueueItem:
    """A renewal work request.

    Owned by the queue while unclaimed; ``claim_id`` identifies the caller
    currently holding it. Only the holder of a live claim may delete, release
    or drop the item.
    """

    item_id: str
    key: ProductKey
    enqueued_at: datetime
    sequence: int
    attempts: int = 0
    forced: bool = False
    claim_id: str | None = None
    claimed_until: datetime | None = None

    @property
    def is_claimed(self) -> bool:
        return self.claim_id is not None

    def with_claim(self, claim_id: str | None, claimed_until: datetime | None) -> QueueItem:
        return replace(self, claim_id=claim_id, claimed_until=claimed_until)


class ItemOutcome(str, Enum):
    """Outcome of processing a single queue item."""

    SUCCESS = "success"  # Item is done, delete it
    TRANSIENT_FAILURE = "transient_failure"  # Release for a later attempt
    FATAL_SUSPEND = "fatal_suspend"  # Release and stop the drain


@dataclass
class WorkResult:
    """Tagged result of ``QueueWorker.process_item``."""

    outcome: ItemOutcome
    key: ProductKey
    error: str | None = None
    skipped: bool = False  # Key was already fresh, nothing fetched

    @classmethod
    def success(cls, key: ProductKey, skipped: bool = False) -> WorkResult:
        return cls(outcome=ItemOutcome.SUCCESS, key=key, skipped=skipped)

    @classmethod
    def transient(cls, key: ProductKey, error: str) -> WorkResult:
        return cls(outcome=ItemOutcome.TRANSIENT_FAILURE, key=key, error=error)

    @classmethod
    def suspend(cls, key: ProductKey, error: str) -> WorkResult:
        return cls(outcome=ItemOutcome.FATAL_SUSPEND, key=key, error=error)


@dataclass
class DrainResult:
    """Summary of one ``RenewalCoordinator.drain_queue`` run."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    dropped: int = 0
    suspended: bool = False
    suspend_reason: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        """True when the run stopped because no claimable items were left."""
        return not self.suspended
